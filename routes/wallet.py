# routes/wallet.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.uow import UowFactory
from app.winnings.model import PaymentStatus
from deps.auth import CurrentUser, get_current_user
from deps.services import get_uow_factory
from schemas import WalletSummaryResponse, WinningListResponse, WinningOut
from services.errors import FinanceError, raise_http_from_finance_error
from services.wallet import get_wallet_summary
from services.winnings import search_winnings

router = APIRouter(prefix="/v1", tags=["wallet"])


@router.get("/winnings", response_model=WinningListResponse)
def list_my_winnings(
    status: Optional[PaymentStatus] = None,
    category: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    # always scoped to the caller, whatever the query says
    filters = {
        "winner_id": user.user_id,
        "category": category,
        "status": status.value if status else None,
        "limit": limit,
        "offset": offset,
    }

    try:
        rows = search_winnings(filters, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)

    return WinningListResponse(
        winnings=[WinningOut.from_domain(w, ps) for w, ps in rows],
        count=len(rows),
        limit=limit,
        offset=offset,
    )


@router.get("/wallet", response_model=WalletSummaryResponse)
def my_wallet(
    user: CurrentUser = Depends(get_current_user),
    uow_factory: UowFactory = Depends(get_uow_factory),
):
    try:
        summary = get_wallet_summary(user.user_id, uow_factory=uow_factory)
    except FinanceError as exc:
        raise_http_from_finance_error(exc)
    return WalletSummaryResponse(**summary)
