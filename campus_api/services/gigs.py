from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from campus_api.errors import ForbiddenError, NotFoundError
from campus_api.models import Gig, GigStatus, GigTag, UserRole
from campus_api.schemas import GigCreate, GigFilters, GigUpdate
from campus_api.settings import get_settings

logger = logging.getLogger("campus.marketplace")


def _tag_rows(tags: Iterable[str]) -> list[GigTag]:
    return [GigTag(position=index, tag=tag) for index, tag in enumerate(tags)]


def list_gigs(db: Session, filters: GigFilters | None = None) -> list[Gig]:
    filters = filters or GigFilters()
    stmt = select(Gig)
    if filters.category:
        stmt = stmt.where(Gig.category == filters.category)
    if filters.status is not None:
        stmt = stmt.where(Gig.status == filters.status)
    if filters.owner_id:
        stmt = stmt.where(Gig.owner_id == filters.owner_id)
    if filters.min_price is not None:
        stmt = stmt.where(Gig.price >= filters.min_price)
    if filters.max_price is not None:
        stmt = stmt.where(Gig.price <= filters.max_price)
    if filters.search:
        # Search text is literal; % and _ are not wildcards.
        tagged = select(GigTag.gig_id).where(GigTag.tag == filters.search)
        stmt = stmt.where(
            or_(
                Gig.title.icontains(filters.search, autoescape=True),
                Gig.description.icontains(filters.search, autoescape=True),
                Gig.id.in_(tagged),
            )
        )
    stmt = stmt.order_by(Gig.created_at.desc(), Gig.id.desc()).limit(get_settings().gig_list_limit)
    return list(db.scalars(stmt).all())


def get_gig(db: Session, gig_id: str) -> Gig | None:
    return db.get(Gig, gig_id)


def create_gig(db: Session, owner_id: str, payload: GigCreate) -> Gig:
    gig = Gig(
        owner_id=owner_id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        price=payload.price,
        currency=payload.currency or "NGN",
        delivery_time_days=payload.delivery_time_days,
        attachments=list(payload.attachments or []),
        status=payload.status or GigStatus.ACTIVE,
    )
    gig.tag_rows = _tag_rows(payload.tags or [])
    db.add(gig)
    db.commit()
    db.refresh(gig)
    logger.info("gig_created", extra={"gig_id": gig.id, "owner_id": owner_id})
    return gig


def update_gig(
    db: Session,
    gig_id: str,
    caller_id: str,
    caller_roles: Iterable[str],
    patch: GigUpdate,
) -> Gig:
    gig = db.get(Gig, gig_id)
    if gig is None:
        raise NotFoundError("Gig not found.", code="GIG_NOT_FOUND")
    if gig.owner_id != caller_id and UserRole.ADMIN.value not in set(caller_roles):
        raise ForbiddenError("Only the gig owner can update this gig.")

    changes = patch.model_dump(exclude_none=True)
    tags = changes.pop("tags", None)
    attachments = changes.pop("attachments", None)
    for field_name, value in changes.items():
        setattr(gig, field_name, value)
    if attachments is not None:
        gig.attachments = list(attachments)
    if tags is not None:
        gig.tag_rows = _tag_rows(tags)
    gig.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(gig)
    logger.info("gig_updated", extra={"gig_id": gig.id, "fields": sorted(patch.model_dump(exclude_none=True))})
    return gig
