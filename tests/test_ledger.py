from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import update

from almoxarifado.errors import ValidationError
from almoxarifado.extensions import db
from almoxarifado.models import MovementRecord
from almoxarifado.movement_types import Direction
from almoxarifado.utils import utcnow

WITHDRAWER = {"withdrawer_name": "Pedro Motorista"}


def _backdate(record_id, when):
    # ajuste direto só para montar o cenário; o ORM recusa alterações
    with db.engine.begin() as conn:
        conn.execute(update(MovementRecord.__table__)
                     .where(MovementRecord.__table__.c.id == record_id)
                     .values(performed_at=when))


def test_query_is_restartable(wh, make_material):
    mat = make_material(quantity="10")
    wh.engine.commit_exit([{"material_id": mat.id, "subtype": "normal", "quantity": "2"}], WITHDRAWER, "ana")

    query = wh.ledger.query_movements("central", batch_size=1)

    first = [r.id for r in query]
    second = [r.id for r in query]
    assert first == second
    assert len(first) == 2
    assert query.count() == 2


def test_filters_by_direction_and_material(wh, make_material):
    a = make_material(description="Filtro", quantity="10")
    b = make_material(description="Correia", quantity="10")
    wh.engine.commit_exit([{"material_id": a.id, "subtype": "normal", "quantity": "1"}], WITHDRAWER, "ana")

    exits = wh.ledger.query_movements("central", direction=Direction.EXIT).all()
    assert [(r.material_id, r.direction) for r in exits] == [(a.id, "exit")]
    assert wh.ledger.query_movements("central", direction="entry").count() == 2
    assert wh.ledger.query_movements("central", material_id=b.id).count() == 1


def test_scopes_do_not_mix(wh, make_material):
    make_material(quantity="10")
    make_material(scope="maintenance", quantity="10")
    assert wh.ledger.query_movements("central").count() == 1
    assert wh.ledger.query_movements("maintenance").count() == 1
    assert wh.ledger.query_movements("client:1").count() == 0


def test_date_range_is_inclusive_of_whole_days(wh, make_material):
    mat = make_material()
    old = wh.engine.commit_entry(mat.id, "entrada_comum", "1", {}, actor="ana")
    mid = wh.engine.commit_entry(mat.id, "entrada_comum", "1", {}, actor="ana")
    new = wh.engine.commit_entry(mat.id, "entrada_comum", "1", {}, actor="ana")
    old_id, mid_id, new_id = old.id, mid.id, new.id
    _backdate(old_id, datetime(2024, 3, 1, 8, 0))
    _backdate(mid_id, datetime(2024, 3, 10, 23, 59))
    _backdate(new_id, datetime(2024, 3, 20, 0, 0))
    db.session.expire_all()

    ids = [r.id for r in wh.ledger.query_movements("central", date_from=date(2024, 3, 2),
                                                   date_to=date(2024, 3, 10))]
    assert ids == [mid_id]

    ids = [r.id for r in wh.ledger.query_movements("central", date_to=date(2024, 3, 20))]
    assert ids == [old_id, mid_id, new_id]


def test_ordered_by_time(wh, make_material):
    mat = make_material()
    first = wh.engine.commit_entry(mat.id, "entrada_comum", "1", {}, actor="ana").id
    second = wh.engine.commit_entry(mat.id, "entrada_comum", "1", {}, actor="ana").id
    _backdate(second, utcnow() - timedelta(days=1))
    db.session.expire_all()

    assert [r.id for r in wh.ledger.query_movements("central")] == [second, first]


def test_batch_lookup(wh, make_material):
    a = make_material(description="Filtro", quantity="10")
    b = make_material(description="Correia", quantity="10")
    batch_id, _ = wh.engine.commit_exit(
        [
            {"material_id": a.id, "subtype": "normal", "quantity": "1"},
            {"material_id": b.id, "subtype": "normal", "quantity": "2"},
        ],
        WITHDRAWER,
        "ana",
    )

    records = wh.ledger.batch(batch_id)
    assert [r.material_id for r in records] == [a.id, b.id]
    assert wh.ledger.batch("nao-existe") == []


def test_unknown_direction_is_a_validation_error(wh):
    with pytest.raises(ValidationError) as exc:
        wh.ledger.query_movements("central", direction="foo")
    assert exc.value.errors[0].field == "direction"
