from typing import Any, Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.errors import ValidationFailedError
from campus_api.models import IdentifierPool
from campus_api.schemas import (
    AutoGenerateRead,
    Envelope,
    ListEnvelope,
    PoolInitRead,
    PoolMarkUsedRead,
    RegistrationNumberMarkUsedRequest,
    StaffIdMarkUsedRequest,
)
from campus_api.security import AuthUser, require_admin
from campus_api.services import identifier_pools as pools


def _initialize_with_defaults(db: Session, pool: IdentifierPool) -> pools.PoolInitResult:
    defaults = pools.pool_defaults(pool)
    return pools.initialize_pool(db, pool, prefix=defaults.prefix, start=defaults.start, count=defaults.count)


def build_pool_router(
    pool: IdentifierPool,
    *,
    prefix: str,
    label: str,
    mark_used_model: type[RegistrationNumberMarkUsedRequest] | type[StaffIdMarkUsedRequest],
    value_of: Callable[[Any], str],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["identifier-pools"])

    @router.get("/available", response_model=ListEnvelope[str])
    def available(
        _admin: AuthUser = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> ListEnvelope[str]:
        init_result = None
        if pools.available_count(db, pool) == 0:
            init_result = _initialize_with_defaults(db, pool)
        values = pools.list_available(db, pool)
        return ListEnvelope(
            data=values,
            meta={
                "available": len(values),
                "total": pools.pool_size(db, pool),
                "poolInitialized": bool(init_result and init_result.initialized),
            },
        )

    @router.post("/mark-used", response_model=Envelope[PoolMarkUsedRead])
    def mark_used(
        payload: mark_used_model,  # type: ignore[valid-type]
        request: Request,
        admin: AuthUser = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> Envelope[PoolMarkUsedRead]:
        value = value_of(payload)
        claimed = pools.mark_used(db, pool, value, admin.id)
        audit_request(
            db,
            request,
            admin,
            action="POOL_MARK_USED",
            entity_type=pool.value.lower(),
            entity_id=value,
            success=claimed,
        )
        if not claimed:
            raise ValidationFailedError(f"{label} is not available or already used.", code="POOL_ENTRY_UNAVAILABLE")
        return Envelope(data=PoolMarkUsedRead(value=value, used=True))

    @router.post("/initialize", response_model=Envelope[PoolInitRead])
    def initialize(
        request: Request,
        admin: AuthUser = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> Envelope[PoolInitRead]:
        result = _initialize_with_defaults(db, pool)
        audit_request(
            db,
            request,
            admin,
            action="POOL_INITIALIZED",
            entity_type=pool.value.lower(),
            details={"initialized": result.initialized, "count": result.count},
        )
        return Envelope(data=PoolInitRead(initialized=result.initialized, count=result.count))

    @router.post("/auto-generate", response_model=Envelope[AutoGenerateRead])
    def auto_generate(
        request: Request,
        admin: AuthUser = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> Envelope[AutoGenerateRead]:
        result = pools.auto_generate(db, pool)
        audit_request(
            db,
            request,
            admin,
            action="POOL_AUTO_GENERATED",
            entity_type=pool.value.lower(),
            details={"generated": result.generated, "new_count": result.new_count},
        )
        return Envelope(data=AutoGenerateRead(generated=result.generated, new_count=result.new_count))

    return router


registration_numbers_router = build_pool_router(
    IdentifierPool.REGISTRATION_NUMBER,
    prefix="/api/registration-numbers",
    label="Registration number",
    mark_used_model=RegistrationNumberMarkUsedRequest,
    value_of=lambda payload: payload.registration_number,
)

staff_ids_router = build_pool_router(
    IdentifierPool.STAFF_ID,
    prefix="/api/staff-ids",
    label="Staff id",
    mark_used_model=StaffIdMarkUsedRequest,
    value_of=lambda payload: payload.staff_id,
)
