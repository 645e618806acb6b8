from decimal import Decimal

import pytest

from almoxarifado.errors import NotFound, ValidationError


def test_numbering_starts_per_scope_kind(wh):
    central = wh.catalog.create_material("central", "Óleo Hidráulico", "L")
    central2 = wh.catalog.create_material("central", "Óleo Câmbio", "L")
    cliente = wh.catalog.create_material("client:1", "Pastilha de freio", "JG")
    manut = wh.catalog.create_material("maintenance", "Chave de roda", "pç")

    assert (central.material_number, central2.material_number) == (1001, 1002)
    assert cliente.material_number == 2001
    assert manut.material_number == 3001


def test_new_material_starts_empty(wh):
    mat = wh.catalog.create_material("central", "Correia dentada", "UN", minimum_stock="4")
    assert mat.current_quantity == Decimal("0")
    assert mat.is_low_stock is True
    assert mat.active is True


def test_explicit_number_must_be_unique_within_scope(wh):
    wh.catalog.create_material("central", "Filtro", "UN", material_number=5000)
    other = wh.catalog.create_material("client:1", "Filtro", "UN", material_number=5000)
    assert other.material_number == 5000

    with pytest.raises(ValidationError) as exc:
        wh.catalog.create_material("central", "Outro filtro", "UN", material_number="5000")
    assert exc.value.errors[0].code == "duplicate"


@pytest.mark.parametrize("kwargs, field", [
    ({"description": "  ", "unit_type": "UN"}, "description"),
    ({"description": "Arruela", "unit_type": "ton"}, "unit_type"),
    ({"description": "Arruela", "unit_type": None}, "unit_type"),
])
def test_create_validation(wh, kwargs, field):
    with pytest.raises(ValidationError) as exc:
        wh.catalog.create_material("central", **kwargs)
    assert [e.field for e in exc.value.errors] == [field]


def test_negative_minimum_rejected(wh):
    with pytest.raises(ValidationError):
        wh.catalog.create_material("central", "Arruela", "UN", minimum_stock="-1")


def test_invalid_scope_rejected(wh):
    with pytest.raises(ValidationError) as exc:
        wh.catalog.create_material("client:9", "Arruela", "UN")
    assert exc.value.errors[0].code == "invalid_scope"


def test_client_fields_only_for_client_scopes(wh):
    with pytest.raises(ValidationError):
        wh.catalog.create_material("central", "Arruela", "UN", part_number="PN-77")

    mat = wh.catalog.create_material("client:4", "Arruela", "UN", part_number="PN-77", client_name="Viação Sul")
    data = mat.to_dict()
    assert data["part_number"] == "PN-77"
    assert data["client_name"] == "Viação Sul"
    assert "part_number" not in wh.catalog.create_material("central", "Arruela", "UN").to_dict()


def test_update_refuses_current_quantity(wh, make_material):
    mat = make_material(quantity="12")
    with pytest.raises(ValidationError) as exc:
        wh.catalog.update_material(mat.id, {"current_quantity": "999", "description": "Novo nome"})
    assert [(e.field, e.code) for e in exc.value.errors] == [("current_quantity", "not_editable")]

    mat = wh.catalog.get(mat.id)
    assert mat.current_quantity == Decimal("12")
    assert mat.description == "Óleo Motor 15W40"


def test_update_minimum_recomputes_low_stock(wh, make_material):
    mat = make_material(quantity="10", minimum_stock="5")
    assert mat.is_low_stock is False

    mat = wh.catalog.update_material(mat.id, {"minimum_stock": "11", "addressing": "A-03-2"})
    assert mat.is_low_stock is True
    assert mat.addressing == "A-03-2"


def test_failed_update_leaves_material_untouched(wh, make_material):
    mat = make_material()
    with pytest.raises(ValidationError):
        wh.catalog.update_material(mat.id, {"description": "Outro", "unit_type": "barril"})
    assert wh.catalog.get(mat.id).description == "Óleo Motor 15W40"


def test_search_and_list(wh):
    wh.catalog.create_material("client:1", "Pastilha de freio dianteira", "JG",
                               part_number="BRK-100", client_name="Expresso Norte")
    wh.catalog.create_material("client:1", "Lona de freio", "JG", client_name="Viação Sul")
    wh.catalog.create_material("client:2", "Pastilha de freio traseira", "JG")

    assert [m.description for m in wh.catalog.search("client:1", "pastilha")] == ["Pastilha de freio dianteira"]
    assert len(wh.catalog.search("client:1", "brk")) == 1
    assert len(wh.catalog.search("client:1", "viação")) == 1
    assert len(wh.catalog.search("client:1", "2001")) == 1
    assert len(wh.catalog.search("client:1", "")) == 2
    assert [m.description for m in wh.catalog.list("client:1")] == [
        "Lona de freio", "Pastilha de freio dianteira"]


def test_deactivate_and_reactivate(wh, make_material):
    mat = make_material()
    wh.catalog.deactivate(mat.id)
    assert wh.catalog.list("central") == []
    assert len(wh.catalog.list("central", include_inactive=True)) == 1

    wh.catalog.reactivate(mat.id)
    assert [m.id for m in wh.catalog.list("central")] == [mat.id]


def test_get_missing(wh):
    with pytest.raises(NotFound):
        wh.catalog.get(123)
    with pytest.raises(NotFound):
        wh.catalog.get("abc")


def test_minimum_stock_must_fit_stored_precision(wh, make_material):
    with pytest.raises(ValidationError) as exc:
        wh.catalog.create_material("central", "Arruela", "UN", minimum_stock="1000000000")
    assert exc.value.errors[0].field == "minimum_stock"

    mat = make_material(minimum_stock="5")
    with pytest.raises(ValidationError):
        wh.catalog.update_material(mat.id, {"minimum_stock": "1e12"})
    assert wh.catalog.get(mat.id).minimum_stock == Decimal("5")
