from fastapi import Depends

from app.providers.factory import get_provider
from app.uow import PgUnitOfWork, UowFactory
from services.access_control import AccessControl, build_access_control


def get_uow_factory() -> UowFactory:
    return PgUnitOfWork


def get_payout_provider():
    return get_provider()


def get_access_control(uow_factory: UowFactory = Depends(get_uow_factory)) -> AccessControl:
    return build_access_control(uow_factory=uow_factory)
