from __future__ import annotations

from fastapi import APIRouter, Depends

from app.uow import UowFactory
from deps.auth import CurrentUser, get_current_user
from deps.services import get_payout_provider, get_uow_factory
from schemas import WithdrawRequest, WithdrawResponse
from services.errors import FinanceError, raise_http_from_finance_error
from services.withdrawal import withdraw

router = APIRouter(prefix="/v1/withdraw", tags=["withdrawal"])


@router.post("", response_model=WithdrawResponse)
def withdraw_winnings(
    req: WithdrawRequest,
    user: CurrentUser = Depends(get_current_user),
    uow_factory: UowFactory = Depends(get_uow_factory),
    provider=Depends(get_payout_provider),
):
    try:
        result = withdraw(
            user.user_id,
            user.handle,
            req.winnings_ids,
            req.payment_memo,
            uow_factory=uow_factory,
            provider=provider,
        )
    except FinanceError as exc:
        raise_http_from_finance_error(exc)
    return WithdrawResponse(**result)
