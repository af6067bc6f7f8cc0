from __future__ import annotations

import pytest
from sqlalchemy.exc import InternalError, OperationalError

from compdb.apps.components import counter, models, schemas
from compdb.apps.components.errors import (
    ComponentConflict,
    ComponentForbidden,
    ComponentNotFound,
    ComponentValidationError,
    DependencyUnavailable,
)
from compdb.permissions import PERM_VIEW, Actor


def _component(db, guard, actor, qty=5) -> models.Component:
    return guard.create(
        db,
        actor=actor,
        payload=schemas.ComponentCreate(name="Cat6 patch cable", category_id=4, qty=qty, company_id="co-a"),
    )


def _db_down() -> OperationalError:
    return OperationalError("SELECT sum(assigned_qty)", {}, Exception("server closed the connection"))


def test_allocated_count_sums_open_allocations(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a, qty=10)
    other = _component(db_session, guard, admin_a, qty=10)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=2)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-2", qty=3)
    ledger.checkout(db_session, actor=admin_a, component_id=other.id, assigned_to="asset-1", qty=1)

    assert counter.allocated_count(db_session, component.id) == 5
    assert counter.allocated_count(db_session, other.id) == 1
    assert counter.allocated_count(db_session, 12345) == 0


def test_checkout_cannot_exceed_remaining(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a, qty=5)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=4)

    with pytest.raises(ComponentValidationError) as exc:
        ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-2", qty=2)

    assert exc.value.remaining == 1
    assert counter.allocated_count(db_session, component.id) == 4


def test_checkout_rejects_non_positive_quantity(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a)
    with pytest.raises(ComponentValidationError):
        ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=0)


def test_checkout_requires_checkout_permission(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a)
    viewer = Actor(user_id="u-view", company_id="co-a", permissions=frozenset({PERM_VIEW}))
    with pytest.raises(ComponentForbidden):
        ledger.checkout(db_session, actor=viewer, component_id=component.id, assigned_to="asset-1")


def test_checkout_bumps_component_version(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a)
    before = component.version
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1")
    db_session.refresh(component)
    assert component.version == before + 1


def test_partial_and_full_checkin(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a, qty=5)
    allocation = ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=3)

    assert ledger.checkin(db_session, actor=admin_a, allocation_id=allocation.id, qty=1) == 2
    assert counter.allocated_count(db_session, component.id) == 2

    with pytest.raises(ComponentValidationError):
        ledger.checkin(db_session, actor=admin_a, allocation_id=allocation.id, qty=3)

    assert ledger.checkin(db_session, actor=admin_a, allocation_id=allocation.id) == 0
    assert counter.allocated_count(db_session, component.id) == 0
    assert db_session.query(models.ComponentAllocation).count() == 0


def test_checkin_unknown_allocation(db_session, ledger, admin_a):
    with pytest.raises(ComponentNotFound):
        ledger.checkin(db_session, actor=admin_a, allocation_id=404)


def test_list_for_component_is_tenant_scoped(db_session, guard, ledger, admin_a, admin_b):
    component = _component(db_session, guard, admin_a)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1")

    assert len(ledger.list_for_component(db_session, actor=admin_a, component_id=component.id)) == 1
    with pytest.raises(ComponentNotFound):
        ledger.list_for_component(db_session, actor=admin_b, component_id=component.id)


def test_delete_blocked_while_units_checked_out(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=2)

    with pytest.raises(ComponentConflict):
        guard.delete(db_session, actor=admin_a, component_id=component.id, policy="block")

    assert db_session.query(models.Component).count() == 1


def test_delete_cascade_removes_allocations(db_session, guard, ledger, admin_a):
    component = _component(db_session, guard, admin_a)
    ledger.checkout(db_session, actor=admin_a, component_id=component.id, assigned_to="asset-1", qty=2)

    guard.delete(db_session, actor=admin_a, component_id=component.id, policy="cascade")

    assert db_session.query(models.Component).count() == 0
    assert db_session.query(models.ComponentAllocation).count() == 0


def test_delete_rejects_unknown_policy(db_session, guard, admin_a):
    component = _component(db_session, guard, admin_a)
    with pytest.raises(ValueError):
        guard.delete(db_session, actor=admin_a, component_id=component.id, policy="orphan")


def test_counter_retries_transient_failures(db_session, monkeypatch):
    calls = []

    def flaky(db, component_id):
        calls.append(component_id)
        if len(calls) < 3:
            raise _db_down()
        return 7

    monkeypatch.setattr(counter, "_sum_allocated", flaky)
    monkeypatch.setattr(counter.time, "sleep", lambda _: None)

    assert counter.allocated_count(db_session, 1, retries=2) == 7
    assert len(calls) == 3


def test_counter_gives_up_as_dependency_unavailable(db_session, monkeypatch):
    def down(db, component_id):
        raise _db_down()

    monkeypatch.setattr(counter, "_sum_allocated", down)
    monkeypatch.setattr(counter.time, "sleep", lambda _: None)

    with pytest.raises(DependencyUnavailable):
        counter.allocated_count(db_session, 1, retries=1)


def test_counter_stops_retrying_once_transaction_is_aborted(db_session, monkeypatch):
    calls = []

    def timed_out_then_aborted(db, component_id):
        calls.append(component_id)
        if len(calls) == 1:
            raise OperationalError("SELECT sum(assigned_qty)", {}, Exception("canceling statement due to statement timeout"))
        raise InternalError("SELECT sum(assigned_qty)", {}, Exception("current transaction is aborted"))

    monkeypatch.setattr(counter, "_sum_allocated", timed_out_then_aborted)
    monkeypatch.setattr(counter.time, "sleep", lambda _: None)

    with pytest.raises(DependencyUnavailable):
        counter.allocated_count(db_session, 1, retries=3)
    assert len(calls) == 2


def test_update_fails_closed_when_ledger_unavailable(db_session, guard, admin_a, monkeypatch):
    component = _component(db_session, guard, admin_a, qty=5)

    def down(db, component_id):
        raise _db_down()

    monkeypatch.setattr(counter, "_sum_allocated", down)
    monkeypatch.setattr(counter.time, "sleep", lambda _: None)

    with pytest.raises(DependencyUnavailable):
        guard.update(
            db_session,
            actor=admin_a,
            component_id=component.id,
            payload=schemas.ComponentUpdate(name="Cat6 patch cable", category_id=4, qty=1),
        )

    db_session.refresh(component)
    assert component.qty == 5
