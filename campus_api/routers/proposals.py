from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.schemas import (
    Envelope,
    ListEnvelope,
    OrderRead,
    ProposalAcceptRequest,
    ProposalCreate,
    ProposalRead,
)
from campus_api.security import AuthUser, require_user
from campus_api.services.proposals import (
    accept_proposal,
    create_proposal,
    list_orders_for_user,
    list_proposals_for_gig,
)

router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.get("/orders/me", response_model=ListEnvelope[OrderRead])
def my_orders(
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[OrderRead]:
    orders = list_orders_for_user(db, user.id)
    return ListEnvelope(data=[OrderRead.model_validate(order) for order in orders])


@router.get("/{gig_id}", response_model=ListEnvelope[ProposalRead])
def proposals_for_gig(
    gig_id: str,
    _user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[ProposalRead]:
    proposals = list_proposals_for_gig(db, gig_id)
    return ListEnvelope(data=[ProposalRead.model_validate(item) for item in proposals])


@router.post("", response_model=Envelope[ProposalRead], status_code=status.HTTP_201_CREATED)
def submit_proposal(
    payload: ProposalCreate,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[ProposalRead]:
    proposal = create_proposal(db, user.id, payload)
    return Envelope(data=ProposalRead.model_validate(proposal))


@router.post("/accept", response_model=Envelope[OrderRead], status_code=status.HTTP_201_CREATED)
def accept(
    payload: ProposalAcceptRequest,
    request: Request,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[OrderRead]:
    order = accept_proposal(db, payload.proposal_id, user.id, user.roles)
    audit_request(
        db,
        request,
        user,
        action="PROPOSAL_ACCEPTED",
        entity_type="order",
        entity_id=order.id,
        details={"proposal_id": payload.proposal_id, "amount": str(order.amount)},
    )
    return Envelope(data=OrderRead.model_validate(order))
