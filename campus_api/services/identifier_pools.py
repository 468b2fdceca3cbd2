from __future__ import annotations

import logging
import random
import re
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.errors import ConflictError
from campus_api.models import IdentifierPool, IdentifierPoolEntry
from campus_api.settings import get_settings

logger = logging.getLogger("campus.pools")

DEFAULT_WIDTH = 7


@dataclass(frozen=True)
class PoolInitResult:
    initialized: bool
    count: int


@dataclass(frozen=True)
class AutoGenerateResult:
    generated: int
    new_count: int


@dataclass(frozen=True)
class PoolDefaults:
    prefix: str
    start: int
    count: int


class GenerationStrategy(Protocol):
    def generate(self, existing: set[str], count: int) -> list[str]:
        ...


class SequentialStrategy:
    """Zero-padded sequential values continuing after the highest known suffix."""

    def __init__(
        self,
        prefix: str,
        *,
        width: int = DEFAULT_WIDTH,
        default_start: int = 1,
        suffix_pattern: str | None = None,
    ):
        self.prefix = prefix
        self.width = width
        self.default_start = default_start
        self._suffix_re = re.compile(suffix_pattern or rf"^{re.escape(prefix)}(\d+)$")

    def format(self, number: int) -> str:
        return f"{self.prefix}{number:0{self.width}d}"

    def next_start(self, existing: set[str]) -> int:
        highest: int | None = None
        for value in existing:
            match = self._suffix_re.match(value)
            if match is None:
                continue
            number = int(match.group(1))
            if highest is None or number > highest:
                highest = number
        if highest is None:
            return self.default_start
        return highest + 1

    def generate(self, existing: set[str], count: int) -> list[str]:
        values: list[str] = []
        number = self.next_start(existing)
        while len(values) < count:
            candidate = self.format(number)
            if candidate not in existing:
                values.append(candidate)
            number += 1
        return values


class RandomCodeStrategy:
    """Random codes of upper-case letters followed by digits, e.g. ``AG6785``."""

    def __init__(self, *, letters: int = 2, digits: int = 4, rng: random.Random | None = None):
        self.letters = letters
        self.digits = digits
        self._rng = rng or random.SystemRandom()

    def candidate(self) -> str:
        head = "".join(self._rng.choice(string.ascii_uppercase) for _ in range(self.letters))
        tail = "".join(self._rng.choice(string.digits) for _ in range(self.digits))
        return head + tail

    def generate(self, existing: set[str], count: int) -> list[str]:
        values: list[str] = []
        seen = set(existing)
        max_attempts = count * 100
        attempts = 0
        while len(values) < count and attempts < max_attempts:
            attempts += 1
            candidate = self.candidate()
            if candidate in seen:
                continue
            seen.add(candidate)
            values.append(candidate)
        if len(values) < count:
            logger.warning(
                "pool_random_generation_exhausted",
                extra={"requested": count, "generated": len(values), "attempts": attempts},
            )
        return values


def pool_defaults(pool: IdentifierPool) -> PoolDefaults:
    settings = get_settings()
    if pool == IdentifierPool.REGISTRATION_NUMBER:
        return PoolDefaults(
            prefix=f"CMS/{settings.registration_pool_year}/",
            start=settings.registration_pool_start,
            count=settings.registration_pool_count,
        )
    return PoolDefaults(
        prefix=f"CMS/STAFF/{settings.staff_pool_year}/",
        start=settings.staff_pool_start,
        count=settings.staff_pool_count,
    )


def default_strategy(pool: IdentifierPool) -> GenerationStrategy:
    if pool == IdentifierPool.REGISTRATION_NUMBER:
        year = datetime.now(timezone.utc).year
        return SequentialStrategy(
            f"CMS/{year}/",
            default_start=get_settings().registration_pool_start,
            suffix_pattern=r"^CMS/\d{4}/(\d+)$",
        )
    return RandomCodeStrategy()


def pool_size(db: Session, pool: IdentifierPool) -> int:
    return int(
        db.scalar(select(func.count()).select_from(IdentifierPoolEntry).where(IdentifierPoolEntry.pool == pool)) or 0
    )


def _insert_values(db: Session, pool: IdentifierPool, values: list[str]) -> None:
    db.add_all(IdentifierPoolEntry(pool=pool, value=value, is_used=False) for value in values)


def initialize_pool(
    db: Session,
    pool: IdentifierPool,
    *,
    prefix: str,
    start: int,
    count: int,
    width: int = DEFAULT_WIDTH,
) -> PoolInitResult:
    existing = pool_size(db, pool)
    if existing > 0:
        logger.info("pool_already_initialized", extra={"pool": pool.value, "count": existing})
        return PoolInitResult(initialized=False, count=existing)

    strategy = SequentialStrategy(prefix, width=width, default_start=start)
    values = [strategy.format(start + offset) for offset in range(count)]
    _insert_values(db, pool, values)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Pool was initialized concurrently.", code="POOL_CONFLICT") from exc

    logger.info("pool_initialized", extra={"pool": pool.value, "count": count, "prefix": prefix})
    return PoolInitResult(initialized=True, count=count)


def list_available(db: Session, pool: IdentifierPool) -> list[str]:
    stmt = (
        select(IdentifierPoolEntry.value)
        .where(IdentifierPoolEntry.pool == pool, IdentifierPoolEntry.is_used.is_(False))
        .order_by(IdentifierPoolEntry.value.asc())
    )
    return list(db.scalars(stmt).all())


def mark_used(db: Session, pool: IdentifierPool, value: str, used_by: str, *, commit: bool = True) -> bool:
    """Claim ``value`` for ``used_by``.

    The conditional update makes the claim atomic: of two concurrent callers
    only one sees a changed row.
    """
    result = db.execute(
        update(IdentifierPoolEntry)
        .where(
            IdentifierPoolEntry.pool == pool,
            IdentifierPoolEntry.value == value,
            IdentifierPoolEntry.is_used.is_(False),
        )
        .values(is_used=True, used_by=used_by, used_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    claimed = (result.rowcount or 0) > 0
    if commit:
        db.commit()
    logger.info(
        "pool_mark_used",
        extra={"pool": pool.value, "value": value, "used_by": used_by, "claimed": claimed},
    )
    return claimed


def is_available(db: Session, pool: IdentifierPool, value: str) -> bool:
    is_used = db.scalar(
        select(IdentifierPoolEntry.is_used).where(
            IdentifierPoolEntry.pool == pool,
            IdentifierPoolEntry.value == value,
        )
    )
    if is_used is None:
        return False
    return not is_used


def available_count(db: Session, pool: IdentifierPool) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(IdentifierPoolEntry)
            .where(IdentifierPoolEntry.pool == pool, IdentifierPoolEntry.is_used.is_(False))
        )
        or 0
    )


def auto_generate(
    db: Session,
    pool: IdentifierPool,
    *,
    threshold: int | None = None,
    batch_size: int | None = None,
    strategy: GenerationStrategy | None = None,
) -> AutoGenerateResult:
    settings = get_settings()
    threshold = settings.pool_low_watermark if threshold is None else threshold
    batch_size = settings.pool_batch_size if batch_size is None else batch_size

    current = available_count(db, pool)
    if current >= threshold:
        return AutoGenerateResult(generated=0, new_count=current)

    logger.info(
        "pool_auto_generate_started",
        extra={"pool": pool.value, "available": current, "batch_size": batch_size},
    )
    existing = set(db.scalars(select(IdentifierPoolEntry.value).where(IdentifierPoolEntry.pool == pool)).all())
    values = (strategy or default_strategy(pool)).generate(existing, batch_size)
    _insert_values(db, pool, values)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Generated identifiers collided with existing entries.", code="POOL_CONFLICT") from exc

    new_count = available_count(db, pool)
    logger.info(
        "pool_auto_generate_finished",
        extra={"pool": pool.value, "generated": len(values), "available": new_count},
    )
    return AutoGenerateResult(generated=len(values), new_count=new_count)


def reset_pool(
    db: Session,
    pool: IdentifierPool,
    *,
    prefix: str,
    start: int,
    count: int,
    force: bool = False,
) -> PoolInitResult:
    used = int(
        db.scalar(
            select(func.count())
            .select_from(IdentifierPoolEntry)
            .where(IdentifierPoolEntry.pool == pool, IdentifierPoolEntry.is_used.is_(True))
        )
        or 0
    )
    if used and not force:
        raise ConflictError(
            f"Pool has {used} used entries; pass force to wipe it anyway.",
            code="POOL_HAS_USED_ENTRIES",
        )

    db.execute(delete(IdentifierPoolEntry).where(IdentifierPoolEntry.pool == pool))
    db.flush()
    logger.warning("pool_reset", extra={"pool": pool.value, "discarded_used": used, "force": force})
    return initialize_pool(db, pool, prefix=prefix, start=start, count=count)
