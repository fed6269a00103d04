import uuid
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from app.payments.state_machine import WinningUpdate
from app.winnings.model import PaymentStatus
from services import metrics
from services.errors import ConflictError, InvalidStateError, NotFoundError
from services.payment_updates import apply_update
from tests.fakes import FakePaymentRepository


def test_status_change_bumps_version_and_audits(store, uow_factory):
    winning, (p,) = store.add_winning("u1", ["20.00"], status=PaymentStatus.OWED)

    apply_update(
        winning.id,
        WinningUpdate(acting_user_id="admin", status=PaymentStatus.ON_HOLD_ADMIN, note="fraud check"),
        uow_factory=uow_factory,
    )

    after = store.payments[p.id]
    assert after.status == PaymentStatus.ON_HOLD_ADMIN
    assert after.version == p.version + 1
    assert after.updated_by == "admin"

    (entry,) = store.audit
    assert entry.winning_id == winning.id
    assert entry.action == "Modified payment status from OWED to ON_HOLD_ADMIN"
    assert entry.note == "fraud check"
    assert "payment_updates_total{result=\"ok\"} 1" in metrics.render_prometheus()


def test_description_touches_every_payment_version(store, uow_factory):
    winning, payments = store.add_winning("u1", ["5", "5", "5"])

    apply_update(winning.id, WinningUpdate(acting_user_id="admin", description="renamed"), uow_factory=uow_factory)

    assert store.winnings[winning.id].description == "renamed"
    assert [store.payments[p.id].version for p in payments] == [2, 2, 2]
    assert len(store.audit) == 1


def test_single_payment_scope(store, uow_factory):
    winning, (first, second) = store.add_winning("u1", ["5", "7"])

    apply_update(
        winning.id,
        WinningUpdate(acting_user_id="admin", payment_id=second.id, amount=Decimal("9")),
        uow_factory=uow_factory,
    )

    assert store.payments[first.id].total_amount == Decimal("5")
    assert store.payments[second.id].total_amount == Decimal("9")
    # installment 2 keeps its gross
    assert store.payments[second.id].gross_amount == Decimal("7")


def test_unknown_winning_is_not_found(uow_factory):
    with pytest.raises(NotFoundError):
        apply_update(uuid.uuid4(), WinningUpdate(acting_user_id="a", description="x"), uow_factory=uow_factory)


def test_stale_version_conflicts_and_rolls_back_everything(store, uow_factory, monkeypatch):
    winning, (first, second) = store.add_winning("u1", ["5", "7"])

    # another writer lands on installment 2 between our read and our write
    original = FakePaymentRepository.list_for_winning

    def racy_list(self, winning_id, payment_id=None):
        rows = original(self, winning_id, payment_id)
        p = self.store.payments[second.id]
        self.store.payments[second.id] = replace(p, version=p.version + 1)
        return rows

    monkeypatch.setattr(FakePaymentRepository, "list_for_winning", racy_list)

    with pytest.raises(ConflictError):
        apply_update(
            winning.id,
            WinningUpdate(acting_user_id="admin", status=PaymentStatus.ON_HOLD_ADMIN),
            uow_factory=uow_factory,
        )

    # first payment's write was undone with the rest of the transaction
    assert store.payments[first.id].status == PaymentStatus.OWED
    assert store.payments[first.id].version == 1
    assert store.audit == []
    assert store.rollbacks == 1


def test_two_admins_same_version_second_conflicts(store, uow_factory):
    winning, (p,) = store.add_winning("u1", ["5"], status=PaymentStatus.OWED)
    stale = store.payments[p.id]

    apply_update(
        winning.id,
        WinningUpdate(acting_user_id="admin-a", status=PaymentStatus.ON_HOLD_ADMIN),
        uow_factory=uow_factory,
    )

    with uow_factory() as uow:
        ok = uow.payments.update_status(
            p.id,
            expected_version=stale.version,
            new_status=PaymentStatus.CANCELLED,
            acting_user_id="admin-b",
        )
    assert ok is False
    assert store.payments[p.id].status == PaymentStatus.ON_HOLD_ADMIN


def test_revert_processing_marks_old_release_failed_and_reconciles(store, uow_factory):
    winning, payments = store.add_winning("u1", ["30"], status=PaymentStatus.PROCESSING)
    release = store.add_release("u1", payments)
    store.make_eligible("u1")

    apply_update(
        winning.id,
        WinningUpdate(acting_user_id="admin", status=PaymentStatus.OWED),
        now=release.release_date + timedelta(hours=13),
        uow_factory=uow_factory,
    )

    assert store.releases[release.id].status == "FAILED"
    assert store.payments[payments[0].id].status == PaymentStatus.OWED
    assert store.payments[payments[0].id].date_paid is None


def test_revert_too_soon_changes_nothing(store, uow_factory):
    winning, payments = store.add_winning("u1", ["30"], status=PaymentStatus.PROCESSING)
    release = store.add_release("u1", payments)

    with pytest.raises(InvalidStateError):
        apply_update(
            winning.id,
            WinningUpdate(acting_user_id="admin", status=PaymentStatus.OWED),
            now=release.release_date + timedelta(hours=2),
            uow_factory=uow_factory,
        )

    assert store.releases[release.id].status == "PROCESSING"
    assert store.payments[payments[0].id].status == PaymentStatus.PROCESSING


def test_owed_for_ineligible_winner_is_parked_on_hold_by_reconcile(store, uow_factory):
    winning, (p,) = store.add_winning("u1", ["30"], status=PaymentStatus.ON_HOLD_ADMIN)

    apply_update(
        winning.id,
        WinningUpdate(acting_user_id="admin", status=PaymentStatus.OWED),
        uow_factory=uow_factory,
    )

    # the follow-up reconcile runs after commit and moves it on
    assert store.payments[p.id].status == PaymentStatus.ON_HOLD
