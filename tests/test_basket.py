from decimal import Decimal

import pytest

from almoxarifado.errors import (
    CrossScopeBatchError,
    InactiveMaterial,
    InsufficientStock,
    MissingRequiredField,
    NotFound,
    ValidationError,
)
from almoxarifado.extensions import db
from almoxarifado.models import Material

WITHDRAWER = {"withdrawer_name": "Pedro Motorista"}


def _qty(material_id):
    db.session.expire_all()
    return db.session.get(Material, material_id).current_quantity


def test_add_records_snapshot(wh, make_material):
    mat = make_material(quantity="10")
    basket = wh.basket({})

    item = basket.add(mat.id, "4")

    assert item.requested_quantity == Decimal("4")
    assert item.available_snapshot == Decimal("10")
    assert basket.scope == "central"
    assert len(basket) == 1
    assert basket.items()[0].to_dict() == {"material_id": mat.id, "requested_quantity": "4",
                                           "available_snapshot": "10"}


def test_add_warns_against_snapshot_including_staged(wh, make_material):
    mat = make_material(quantity="10")
    basket = wh.basket({})
    basket.add(mat.id, "6")

    with pytest.raises(InsufficientStock) as exc:
        basket.add(mat.id, "5")
    assert exc.value.requested == Decimal("11")
    assert exc.value.available == Decimal("10")
    assert len(basket) == 1

    basket.add(mat.id, "4")
    assert len(basket) == 2


def test_add_rejects_other_scope(wh, make_material):
    central = make_material(quantity="10")
    manut = make_material(scope="maintenance", quantity="10")
    basket = wh.basket({})
    basket.add(central.id, "1")

    with pytest.raises(CrossScopeBatchError):
        basket.add(manut.id, "1")
    assert len(basket) == 1


def test_add_rejects_bad_input(wh, make_material):
    mat = make_material(quantity="10")
    basket = wh.basket({})
    with pytest.raises(ValidationError):
        basket.add(mat.id, "0")
    with pytest.raises(NotFound):
        basket.add(777, "1")

    wh.catalog.deactivate(mat.id)
    with pytest.raises(InactiveMaterial):
        basket.add(mat.id, "1")
    assert len(basket) == 0


def test_remove_and_discard(wh, make_material):
    a = make_material(description="Filtro", quantity="10")
    b = make_material(description="Correia", quantity="10")
    basket = wh.basket({})
    basket.add(a.id, "1")
    basket.add(b.id, "2")

    removed = basket.remove(0)
    assert removed.material_id == a.id
    assert [it.material_id for it in basket.items()] == [b.id]

    with pytest.raises(NotFound):
        basket.remove(5)
    with pytest.raises(NotFound):
        basket.remove(-1)

    basket.remove(0)
    assert basket.scope is None

    basket.add(a.id, "1")
    basket.discard()
    assert len(basket) == 0
    assert _qty(a.id) == Decimal("10")


def test_commit_clears_basket(wh, make_material):
    a = make_material(description="Filtro", quantity="10")
    b = make_material(description="Correia", quantity="3")
    store = {}
    basket = wh.basket(store)
    basket.add(a.id, "4")
    basket.add(b.id, "3")

    batch_id, records = basket.commit("ana", "acautelamento_servico", WITHDRAWER)

    assert len(records) == 2
    assert {r.batch_id for r in records} == {batch_id}
    assert _qty(a.id) == Decimal("6")
    assert _qty(b.id) == Decimal("0")
    assert len(basket) == 0
    assert store == {}


def test_failed_commit_keeps_basket(wh, make_material):
    mat = make_material(quantity="10")
    basket = wh.basket({})
    basket.add(mat.id, "4")

    with pytest.raises(MissingRequiredField):
        basket.commit("ana", "normal", {})

    assert len(basket) == 1
    assert _qty(mat.id) == Decimal("10")


def test_empty_basket_cannot_commit(wh):
    with pytest.raises(ValidationError):
        wh.basket({}).commit("ana", "normal", WITHDRAWER)


def test_state_lives_in_store(wh, make_material):
    mat = make_material(quantity="10")
    store = {}
    wh.basket(store).add(mat.id, "2.5")

    again = wh.basket(store)
    assert [it.requested_quantity for it in again.items()] == [Decimal("2.5")]
