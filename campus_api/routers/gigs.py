from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.errors import NotFoundError
from campus_api.models import GigStatus
from campus_api.schemas import Envelope, GigCreate, GigFilters, GigRead, GigUpdate, ListEnvelope
from campus_api.security import AuthUser, require_user
from campus_api.services.gigs import create_gig, get_gig, list_gigs, update_gig

router = APIRouter(prefix="/gigs", tags=["gigs"])

MAX_PAGE_SIZE = 100


@router.get("", response_model=ListEnvelope[GigRead])
def list_gigs_endpoint(
    search: str | None = Query(default=None, max_length=120),
    category: str | None = Query(default=None),
    min_price: Decimal | None = Query(default=None, alias="minPrice", ge=0),
    max_price: Decimal | None = Query(default=None, alias="maxPrice", ge=0),
    gig_status: GigStatus | None = Query(default=None, alias="status"),
    owner_id: str | None = Query(default=None, alias="ownerId"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
) -> ListEnvelope[GigRead]:
    filters = GigFilters(
        search=search,
        category=category,
        min_price=min_price,
        max_price=max_price,
        status=gig_status,
        owner_id=owner_id,
    )
    gigs = list_gigs(db, filters)
    offset = (page - 1) * page_size
    return ListEnvelope(
        data=[GigRead.model_validate(gig) for gig in gigs[offset : offset + page_size]],
        meta={"total": len(gigs), "page": page, "pageSize": page_size},
    )


@router.get("/{gig_id}", response_model=Envelope[GigRead])
def get_gig_endpoint(gig_id: str, db: Session = Depends(get_db)) -> Envelope[GigRead]:
    gig = get_gig(db, gig_id)
    if gig is None:
        raise NotFoundError("Gig not found.", code="GIG_NOT_FOUND")
    return Envelope(data=GigRead.model_validate(gig))


@router.post("", response_model=Envelope[GigRead], status_code=status.HTTP_201_CREATED)
def create_gig_endpoint(
    payload: GigCreate,
    request: Request,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[GigRead]:
    gig = create_gig(db, user.id, payload)
    audit_request(db, request, user, action="GIG_CREATED", entity_type="gig", entity_id=gig.id)
    return Envelope(data=GigRead.model_validate(gig))


@router.patch("/{gig_id}", response_model=Envelope[GigRead])
def update_gig_endpoint(
    gig_id: str,
    payload: GigUpdate,
    request: Request,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[GigRead]:
    gig = update_gig(db, gig_id, user.id, user.roles, payload)
    audit_request(
        db,
        request,
        user,
        action="GIG_UPDATED",
        entity_type="gig",
        entity_id=gig.id,
        details={"fields": sorted(payload.model_dump(exclude_none=True))},
    )
    return Envelope(data=GigRead.model_validate(gig))
