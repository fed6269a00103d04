from __future__ import annotations

import logging
from typing import Any

from app.uow import PgUnitOfWork, UowFactory
from services.errors import ConflictError, InvalidRequestError

logger = logging.getLogger("finance.recipients")


def link_recipient(user_id: str, recipient_id: str, *, uow_factory: UowFactory = PgUnitOfWork) -> dict[str, Any]:
    """
    Record the provider recipient that pays out to `user_id`.

    A user has at most one recipient and a recipient belongs to one user;
    linking the same pair again returns the existing row. The payment method
    starts INACTIVE and turns CONNECTED once a primary account webhook lands.
    """
    user_id = (user_id or "").strip()
    recipient_id = (recipient_id or "").strip()
    if not (user_id and recipient_id):
        raise InvalidRequestError("user_id and recipient_id are required")

    with uow_factory() as uow:
        mine = uow.recipients.get_by_user_id(user_id)
        if mine is not None:
            if mine["recipient_id"] != recipient_id:
                raise ConflictError("user already has a different provider recipient")
            return mine

        theirs = uow.recipients.get_by_recipient_id(recipient_id)
        if theirs is not None:
            raise ConflictError("provider recipient already belongs to another user")

        upm_id = uow.payment_methods.get_or_create_for_provider(user_id)
        row = uow.recipients.create(user_id=user_id, recipient_id=recipient_id, user_payment_method_id=upm_id)

    logger.info("provider recipient linked user_id=%s recipient_id=%s", user_id, recipient_id)
    return row
