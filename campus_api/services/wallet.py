from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from campus_api.models import TransactionStatus, Wallet, WalletTransaction

ESCROW_REFERENCE_PREFIX = "ESCROW-"


@dataclass(frozen=True)
class WalletSummary:
    wallet_id: str
    balance: Decimal
    holds: Decimal
    available: Decimal


def escrow_reference(order_id: str) -> str:
    return f"{ESCROW_REFERENCE_PREFIX}{order_id}"


def ensure_wallet(db: Session, user_id: str) -> Wallet:
    """Return the user's wallet, adding one to the session when missing.

    Does not commit; callers own the surrounding transaction.
    """
    wallet = db.scalar(select(Wallet).where(Wallet.user_id == user_id))
    if wallet is None:
        wallet = Wallet(user_id=user_id, balance=Decimal("0"))
        db.add(wallet)
        db.flush()
    return wallet


def get_wallet_summary(db: Session, user_id: str) -> WalletSummary:
    wallet = ensure_wallet(db, user_id)
    db.commit()
    holds = db.scalar(
        select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.wallet_id == wallet.id,
            WalletTransaction.status == TransactionStatus.PENDING,
            WalletTransaction.reference.like(f"{ESCROW_REFERENCE_PREFIX}%"),
        )
    )
    balance = Decimal(wallet.balance or 0)
    holds_value = Decimal(holds or 0)
    return WalletSummary(
        wallet_id=wallet.id,
        balance=balance,
        holds=holds_value,
        available=balance - holds_value,
    )


def list_transactions(db: Session, user_id: str) -> list[WalletTransaction]:
    stmt = (
        select(WalletTransaction)
        .join(Wallet, Wallet.id == WalletTransaction.wallet_id)
        .where(Wallet.user_id == user_id)
        .order_by(WalletTransaction.created_at.desc())
    )
    return list(db.scalars(stmt).all())
