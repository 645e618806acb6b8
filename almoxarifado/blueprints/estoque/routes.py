from flask import jsonify, request, session
from flask_login import current_user

from almoxarifado.errors import FieldError, ValidationError
from almoxarifado.movement_types import Direction
from almoxarifado.permissions import perm_required
from almoxarifado.scopes import all_scopes, normalize_scope
from almoxarifado.services import get_warehouse
from almoxarifado.utils import parse_date

from . import estoque_bp

# campos de formulário de saída compartilhados por todos os itens
EXIT_SHARED_FIELDS = ("withdrawer_name", "vehicle_plate", "observations")


# ------------------------- helpers -------------------------
def _json():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Envie um objeto JSON.")
    return data


def _scope_arg():
    wh = get_warehouse()
    return normalize_scope(request.args.get("scope") or "central", wh.client_warehouses)


def _direction(value):
    try:
        return Direction((value or "").strip().lower())
    except ValueError:
        raise ValidationError(errors=[FieldError("direction", "invalid_value",
                                                 "Use 'entry' ou 'exit'.")]) from None


def _actor():
    return current_user.login


def _basket():
    return get_warehouse().basket(session)


def _basket_payload(basket):
    return {"scope": basket.scope, "items": [it.to_dict() for it in basket.items()]}


# ------------------------- tipos -------------------------
@estoque_bp.get("/almoxarifados")
@perm_required("ver_estoque")
def almoxarifados():
    return jsonify({"scopes": all_scopes(get_warehouse().client_warehouses)})


@estoque_bp.get("/tipos")
@perm_required("ver_estoque")
def tipos():
    scope = _scope_arg()
    direction = _direction(request.args.get("direction"))
    definitions = get_warehouse().registry.subtypes_for(scope, direction)
    return jsonify({
        "scope": scope,
        "direction": direction.value,
        "subtypes": [d.to_dict() for d in definitions],
    })


# ------------------------- materiais -------------------------
@estoque_bp.get("/materiais")
@perm_required("ver_estoque")
def materiais():
    wh = get_warehouse()
    q = (request.args.get("q") or "").strip()
    materiais = wh.catalog.search(_scope_arg(), q)
    return jsonify({"materials": [m.to_dict() for m in materiais], "q": q})


@estoque_bp.post("/materiais")
@perm_required("gerenciar_materiais")
def material_novo():
    data = _json()
    mat = get_warehouse().catalog.create_material(
        scope=data.get("scope"),
        description=data.get("description"),
        unit_type=data.get("unit_type"),
        minimum_stock=data.get("minimum_stock"),
        addressing=data.get("addressing"),
        material_number=data.get("material_number"),
        part_number=data.get("part_number"),
        client_name=data.get("client_name"),
    )
    return jsonify(mat.to_dict()), 201


@estoque_bp.get("/materiais/<int:material_id>")
@perm_required("ver_estoque")
def material_detalhe(material_id):
    return jsonify(get_warehouse().catalog.get(material_id).to_dict())


@estoque_bp.patch("/materiais/<int:material_id>")
@perm_required("gerenciar_materiais")
def material_editar(material_id):
    mat = get_warehouse().catalog.update_material(material_id, _json())
    return jsonify(mat.to_dict())


@estoque_bp.post("/materiais/<int:material_id>/inativar")
@perm_required("gerenciar_materiais")
def material_inativar(material_id):
    return jsonify(get_warehouse().catalog.deactivate(material_id).to_dict())


@estoque_bp.post("/materiais/<int:material_id>/reativar")
@perm_required("gerenciar_materiais")
def material_reativar(material_id):
    return jsonify(get_warehouse().catalog.reactivate(material_id).to_dict())


# ------------------------- entradas -------------------------
@estoque_bp.post("/entradas")
@perm_required("registrar_entrada")
def entrada_nova():
    data = dict(_json())
    material_id = data.pop("material_id", None)
    subtype = data.pop("subtype", None)
    quantity = data.pop("quantity", None)

    rec = get_warehouse().engine.commit_entry(material_id, subtype, quantity, data, _actor())
    return jsonify(rec.to_dict()), 201


# ------------------------- saídas -------------------------
@estoque_bp.post("/saidas")
@perm_required("registrar_saida")
def saida_nova():
    data = _json()
    subtype = data.get("subtype")
    itens = data.get("items")
    if not isinstance(itens, list):
        raise ValidationError(errors=[FieldError("items", "missing_required_field",
                                                 "Pelo menos um item deve ser adicionado.")])

    items = []
    for it in itens:
        if not isinstance(it, dict):
            raise ValidationError(errors=[FieldError("items", "invalid_value", "Item inválido.")])
        items.append({
            "material_id": it.get("material_id"),
            "subtype": it.get("subtype") or subtype,
            "quantity": it.get("quantity"),
        })
    shared = {k: data[k] for k in EXIT_SHARED_FIELDS if k in data}

    batch_id, records = get_warehouse().engine.commit_exit(items, shared, _actor())
    return jsonify({"batch_id": batch_id, "records": [r.to_dict() for r in records]}), 201


# ------------------------- cesta de saída -------------------------
@estoque_bp.get("/cesta")
@perm_required("registrar_saida")
def cesta():
    return jsonify(_basket_payload(_basket()))


@estoque_bp.post("/cesta/itens")
@perm_required("registrar_saida")
def cesta_adicionar():
    data = _json()
    basket = _basket()
    item = basket.add(data.get("material_id"), data.get("quantity"))
    payload = _basket_payload(basket)
    payload["added"] = item.to_dict()
    return jsonify(payload), 201


@estoque_bp.delete("/cesta/itens/<int:index>")
@perm_required("registrar_saida")
def cesta_remover(index):
    basket = _basket()
    basket.remove(index)
    return jsonify(_basket_payload(basket))


@estoque_bp.delete("/cesta")
@perm_required("registrar_saida")
def cesta_descartar():
    basket = _basket()
    basket.discard()
    return jsonify(_basket_payload(basket))


@estoque_bp.post("/cesta/confirmar")
@perm_required("registrar_saida")
def cesta_confirmar():
    data = _json()
    shared = {k: data[k] for k in EXIT_SHARED_FIELDS if k in data}
    batch_id, records = _basket().commit(_actor(), data.get("subtype"), shared)
    return jsonify({"batch_id": batch_id, "records": [r.to_dict() for r in records]}), 201


# ------------------------- histórico -------------------------
@estoque_bp.get("/movimentos")
@perm_required("ver_estoque")
def movimentos():
    wh = get_warehouse()
    direction = request.args.get("direction")
    material_id = request.args.get("material_id", type=int)
    query = wh.ledger.query_movements(
        _scope_arg(),
        direction=_direction(direction) if direction else None,
        date_from=parse_date(request.args.get("de")),
        date_to=parse_date(request.args.get("ate")),
        material_id=material_id,
    )
    limit = min(request.args.get("limit", 500, type=int), 5000)
    records = []
    for rec in query:
        if len(records) >= limit:
            break
        records.append(rec.to_dict())
    return jsonify({"movements": records})


@estoque_bp.get("/movimentos/lote/<batch_id>")
@perm_required("ver_estoque")
def movimentos_lote(batch_id):
    records = get_warehouse().ledger.batch(batch_id)
    return jsonify({"batch_id": batch_id, "records": [r.to_dict() for r in records]})


# ------------------------- estoque baixo -------------------------
@estoque_bp.get("/estoque-baixo")
@perm_required("ver_estoque")
def estoque_baixo():
    return jsonify(get_warehouse().low_stock.summary(_scope_arg()))


@estoque_bp.get("/estoque-baixo/contagem")
@perm_required("ver_estoque")
def estoque_baixo_contagem():
    return jsonify({"count": get_warehouse().low_stock.count(_scope_arg())})
