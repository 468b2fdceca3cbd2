from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.errors import ConflictError, ForbiddenError, NotFoundError
from campus_api.models import (
    Gig,
    Order,
    OrderStatus,
    Proposal,
    ProposalStatus,
    TransactionStatus,
    TransactionType,
    UserRole,
    WalletTransaction,
)
from campus_api.schemas import ProposalCreate
from campus_api.services.wallet import ensure_wallet, escrow_reference

logger = logging.getLogger("campus.marketplace")


def create_proposal(db: Session, proposer_id: str, payload: ProposalCreate) -> Proposal:
    if db.get(Gig, payload.gig_id) is None:
        raise NotFoundError("Gig not found.", code="GIG_NOT_FOUND")

    proposal = Proposal(
        gig_id=payload.gig_id,
        proposer_id=proposer_id,
        message=payload.message,
        amount=payload.amount,
        delivery_time_days=payload.delivery_time_days,
        status=ProposalStatus.PENDING,
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


def list_proposals_for_gig(db: Session, gig_id: str) -> list[Proposal]:
    if db.get(Gig, gig_id) is None:
        raise NotFoundError("Gig not found.", code="GIG_NOT_FOUND")
    stmt = select(Proposal).where(Proposal.gig_id == gig_id).order_by(Proposal.created_at.desc())
    return list(db.scalars(stmt).all())


def accept_proposal(
    db: Session,
    proposal_id: str,
    caller_id: str,
    caller_roles: Iterable[str],
) -> Order:
    """Accept a pending proposal and open an order with its escrow entry.

    Proposal status, order and escrow transaction are committed together;
    any failure leaves none of them behind.
    """
    proposal = db.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError("Proposal not found.", code="PROPOSAL_NOT_FOUND")

    gig = proposal.gig
    if gig.owner_id != caller_id and UserRole.ADMIN.value not in set(caller_roles):
        raise ForbiddenError("Only the gig owner can accept proposals.")
    if proposal.status != ProposalStatus.PENDING:
        raise ConflictError(
            f"Proposal is already {proposal.status.value}.",
            code="PROPOSAL_NOT_PENDING",
        )

    now = datetime.now(timezone.utc)
    try:
        proposal.status = ProposalStatus.ACCEPTED
        order = Order(
            gig_id=gig.id,
            buyer_id=proposal.proposer_id,
            seller_id=gig.owner_id,
            proposal_id=proposal.id,
            amount=proposal.amount,
            status=OrderStatus.IN_PROGRESS,
            escrow_released=False,
            due_date=now + timedelta(days=proposal.delivery_time_days),
        )
        db.add(order)
        db.flush()

        wallet = ensure_wallet(db, proposal.proposer_id)
        db.add(
            WalletTransaction(
                wallet_id=wallet.id,
                order_id=order.id,
                amount=proposal.amount,
                type=TransactionType.CREDIT,
                status=TransactionStatus.PENDING,
                reference=escrow_reference(order.id),
            )
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Proposal was accepted concurrently.", code="PROPOSAL_NOT_PENDING") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "proposal_accepted",
        extra={
            "proposal_id": proposal.id,
            "order_id": order.id,
            "buyer_id": order.buyer_id,
            "seller_id": order.seller_id,
            "amount": str(order.amount),
        },
    )
    return order


def list_orders_for_user(db: Session, user_id: str) -> list[Order]:
    stmt = (
        select(Order)
        .where(or_(Order.buyer_id == user_id, Order.seller_id == user_id))
        .order_by(Order.created_at.desc())
    )
    return list(db.scalars(stmt).all())
