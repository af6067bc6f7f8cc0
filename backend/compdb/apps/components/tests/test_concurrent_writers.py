"""
Two sessions on one SQLite file, interleaved by hooking the allocation
count read: the competing write commits after the first writer has read
the count but before it commits.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from compdb.database import Base
from compdb.apps.components import counter, models, repository, schemas, transactions
from compdb.apps.components.errors import ComponentConflict, ComponentValidationError
from compdb.apps.components.images import ImageUpload


@pytest.fixture()
def make_session(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'components.db'}")
    Base.metadata.create_all(
        bind=engine,
        tables=[models.Component.__table__, models.ComponentAllocation.__table__],
    )
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    sessions = []

    def _make():
        session = factory()
        sessions.append(session)
        return session

    try:
        yield _make
    finally:
        for session in sessions:
            session.close()
        engine.dispose()


def _payload(qty: int) -> schemas.ComponentUpdate:
    return schemas.ComponentUpdate(name="DDR5 32GB", category_id=1, company_id="co-a", qty=qty)


def _seed(db, guard, ledger, actor, *, qty: int, checked_out: int) -> int:
    component = guard.create(db, actor=actor, payload=schemas.ComponentCreate(**_payload(qty).model_dump()))
    ledger.checkout(db, actor=actor, component_id=component.id, assigned_to="asset-1", qty=checked_out)
    return component.id


def _race_once(monkeypatch, competing_write):
    real_count = counter.allocated_count
    fired = []

    def racing_count(db, component_id, **kwargs):
        seen = real_count(db, component_id, **kwargs)
        if not fired:
            fired.append(True)
            competing_write()
        return seen

    monkeypatch.setattr(counter, "allocated_count", racing_count)
    return fired


def _state(make_session, component_id):
    db = make_session()
    component = db.get(models.Component, component_id)
    return component.qty, counter.allocated_count(db, component_id)


def test_quantity_edit_loses_to_concurrent_checkout(make_session, guard, ledger, admin_a, monkeypatch):
    component_id = _seed(make_session(), guard, ledger, admin_a, qty=5, checked_out=2)
    writer, racer = make_session(), make_session()

    fired = _race_once(
        monkeypatch,
        lambda: ledger.checkout(racer, actor=admin_a, component_id=component_id, assigned_to="asset-2", qty=1),
    )

    # Sets qty to exactly the count it saw (2); the checkout raises it to 3.
    with pytest.raises(ComponentValidationError) as exc:
        guard.update(writer, actor=admin_a, component_id=component_id, payload=_payload(2))

    assert fired
    assert exc.value.min_allowed == 3
    qty, allocated = _state(make_session, component_id)
    assert (qty, allocated) == (5, 3)
    assert qty >= allocated


def test_checkout_loses_to_concurrent_quantity_edit(make_session, guard, ledger, admin_a, monkeypatch):
    component_id = _seed(make_session(), guard, ledger, admin_a, qty=5, checked_out=2)
    writer, racer = make_session(), make_session()

    fired = _race_once(
        monkeypatch,
        lambda: guard.update(racer, actor=admin_a, component_id=component_id, payload=_payload(2)),
    )

    with pytest.raises(ComponentValidationError) as exc:
        ledger.checkout(writer, actor=admin_a, component_id=component_id, assigned_to="asset-2", qty=3)

    assert fired
    assert exc.value.remaining == 0
    qty, allocated = _state(make_session, component_id)
    assert (qty, allocated) == (2, 2)


def test_edit_still_succeeds_when_race_leaves_room(make_session, guard, ledger, admin_a, monkeypatch):
    component_id = _seed(make_session(), guard, ledger, admin_a, qty=10, checked_out=2)
    writer, racer = make_session(), make_session()

    _race_once(
        monkeypatch,
        lambda: ledger.checkout(racer, actor=admin_a, component_id=component_id, assigned_to="asset-2", qty=1),
    )

    updated = guard.update(writer, actor=admin_a, component_id=component_id, payload=_payload(4))

    assert updated.qty == 4
    assert _state(make_session, component_id) == (4, 3)


def test_conflict_after_retries_exhausted(make_session, guard, ledger, admin_a, monkeypatch):
    component_id = _seed(make_session(), guard, ledger, admin_a, qty=5, checked_out=1)
    writer, racer = make_session(), make_session()
    real_count = counter.allocated_count
    touches = []

    def always_racing(db, component_id, **kwargs):
        seen = real_count(db, component_id, **kwargs)
        row = racer.get(models.Component, component_id, populate_existing=True)
        row.notes = f"touched {len(touches)}"
        racer.commit()
        touches.append(True)
        return seen

    monkeypatch.setattr(counter, "allocated_count", always_racing)
    monkeypatch.setattr(transactions, "MAX_ATTEMPTS", 3)

    with pytest.raises(ComponentConflict):
        guard.update(writer, actor=admin_a, component_id=component_id, payload=_payload(4))

    assert len(touches) == 3
    monkeypatch.undo()
    assert _state(make_session, component_id) == (5, 1)


def test_concurrent_partial_checkins_are_both_recorded(make_session, guard, ledger, admin_a, monkeypatch):
    seed = make_session()
    component_id = _seed(seed, guard, ledger, admin_a, qty=5, checked_out=5)
    allocation_id = ledger.list_for_component(seed, actor=admin_a, component_id=component_id)[0].id
    writer, racer = make_session(), make_session()
    real_find = repository.find
    fired = []

    def racing_find(db, component_id, **kwargs):
        # The other checkin commits after the writer located the allocation
        # but before it locks the component.
        if db is writer and not fired:
            fired.append(True)
            ledger.checkin(racer, actor=admin_a, allocation_id=allocation_id, qty=2)
        return real_find(db, component_id, **kwargs)

    monkeypatch.setattr(repository, "find", racing_find)

    still_allocated = ledger.checkin(writer, actor=admin_a, allocation_id=allocation_id, qty=2)

    assert fired
    assert still_allocated == 1
    monkeypatch.undo()
    assert _state(make_session, component_id) == (5, 1)


def test_image_swap_keeps_fields_edited_since_last_read(make_session, guard, admin_a):
    component_id = guard.create(make_session(), actor=admin_a, payload=schemas.ComponentCreate(**_payload(5).model_dump())).id
    writer, racer = make_session(), make_session()

    guard.get(writer, actor=admin_a, component_id=component_id)
    edited = _payload(7).model_copy(update={"notes": "moved to rack 4"})
    guard.update(racer, actor=admin_a, component_id=component_id, payload=edited)

    updated = guard.set_image(
        writer,
        actor=admin_a,
        component_id=component_id,
        upload=ImageUpload(filename="ram.png", content=b"\x89PNG"),
    )

    assert updated.image is not None
    assert (updated.qty, updated.notes) == (7, "moved to rack 4")
    fresh = make_session().get(models.Component, component_id)
    assert (fresh.qty, fresh.notes, fresh.image) == (7, "moved to rack 4", updated.image)
