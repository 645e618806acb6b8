from decimal import Decimal

import pytest

from almoxarifado.errors import ImmutableRecordError
from almoxarifado.extensions import db
from almoxarifado.models import MovementRecord


def test_records_cannot_be_updated(wh, make_material):
    mat = make_material()
    rec = wh.engine.commit_entry(mat.id, "entrada_comum", "5", {}, actor="ana")
    record_id = rec.id

    rec.quantity = Decimal("500")
    with pytest.raises(ImmutableRecordError) as exc:
        db.session.commit()
    assert exc.value.details == {"record_id": record_id, "operation": "update"}
    db.session.rollback()

    assert db.session.get(MovementRecord, record_id).quantity == Decimal("5")


def test_records_cannot_be_deleted(wh, make_material):
    mat = make_material()
    rec = wh.engine.commit_entry(mat.id, "entrada_comum", "5", {}, actor="ana")
    record_id = rec.id

    db.session.delete(rec)
    with pytest.raises(ImmutableRecordError):
        db.session.commit()
    db.session.rollback()

    assert db.session.get(MovementRecord, record_id) is not None
    assert wh.ledger.balance(mat.id) == Decimal("5")
