from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from campus_api.db import get_db
from campus_api.schemas import Envelope, ListEnvelope, TransactionRead, WalletSummaryRead
from campus_api.security import AuthUser, require_user
from campus_api.services.wallet import get_wallet_summary, list_transactions

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("", response_model=Envelope[WalletSummaryRead])
def wallet_summary(
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[WalletSummaryRead]:
    summary = get_wallet_summary(db, user.id)
    return Envelope(
        data=WalletSummaryRead(
            wallet_id=summary.wallet_id,
            balance=float(summary.balance),
            holds=float(summary.holds),
            available=float(summary.available),
        )
    )


@router.get("/transactions", response_model=ListEnvelope[TransactionRead])
def wallet_transactions(
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[TransactionRead]:
    return ListEnvelope(data=[TransactionRead.model_validate(item) for item in list_transactions(db, user.id)])
