from dataclasses import dataclass
from decimal import Decimal
from typing import MutableMapping, Optional, Tuple

from almoxarifado.errors import CrossScopeBatchError, InactiveMaterial, InsufficientStock, NotFound, Shortage
from almoxarifado.extensions import db
from almoxarifado.models import Material
from almoxarifado.utils import format_quantity, parse_quantity

SESSION_KEY = "exit_basket"


@dataclass(frozen=True)
class ExitBasketItem:
    material_id: int
    requested_quantity: Decimal
    available_snapshot: Decimal

    def to_dict(self):
        return {
            "material_id": self.material_id,
            "requested_quantity": format_quantity(self.requested_quantity),
            "available_snapshot": format_quantity(self.available_snapshot),
        }


class ExitBasket:
    """Itens separados para uma saída, antes do commit único.

    A conferência de saldo feita em ``add`` é só um aviso, contra o saldo
    lido quando o material entrou na cesta; quem decide é
    ``StockEngine.commit_exit``. O estado vive em ``store`` (na API, a
    ``flask.session``), em tipos serializáveis em JSON.
    """

    def __init__(self, engine, store: Optional[MutableMapping] = None, key: str = SESSION_KEY):
        self.engine = engine
        self._store = store if store is not None else {}
        self._key = key

    # ------------------------- estado -------------------------
    def _state(self):
        state = self._store.get(self._key) or {}
        return {
            "scope": state.get("scope"),
            "items": list(state.get("items") or []),
            "available": dict(state.get("available") or {}),
        }

    def _save(self, state):
        # reatribui para a sessão do Flask perceber a alteração
        self._store[self._key] = state

    @property
    def scope(self):
        return self._state()["scope"]

    def items(self) -> Tuple[ExitBasketItem, ...]:
        state = self._state()
        return tuple(
            ExitBasketItem(
                material_id=int(it["material_id"]),
                requested_quantity=Decimal(it["quantity"]),
                available_snapshot=Decimal(state["available"].get(str(it["material_id"]), "0")),
            )
            for it in state["items"]
        )

    def __len__(self):
        return len(self._state()["items"])

    # ------------------------- operações -------------------------
    def add(self, material_id, quantity) -> ExitBasketItem:
        qty = parse_quantity(quantity)
        try:
            material_id = int(material_id)
        except (TypeError, ValueError):
            raise NotFound("Material", material_id) from None
        mat = db.session.get(Material, material_id)
        if mat is None:
            raise NotFound("Material", material_id)
        if not mat.active:
            raise InactiveMaterial(material_id)

        state = self._state()
        if state["scope"] and state["scope"] != mat.scope:
            raise CrossScopeBatchError([state["scope"], mat.scope])

        key = str(material_id)
        if key not in state["available"]:
            state["available"][key] = str(mat.current_quantity)
        available = Decimal(state["available"][key])

        staged = sum((Decimal(it["quantity"]) for it in state["items"]
                      if int(it["material_id"]) == material_id), Decimal("0"))
        if staged + qty > available:
            raise InsufficientStock([Shortage(material_id, staged + qty, available)])

        state["scope"] = mat.scope
        state["items"].append({"material_id": material_id, "quantity": str(qty)})
        self._save(state)
        return ExitBasketItem(material_id, qty, available)

    def remove(self, index: int) -> ExitBasketItem:
        state = self._state()
        try:
            index = int(index)
            if index < 0:
                raise IndexError(index)
            removed = state["items"].pop(index)
        except (IndexError, TypeError, ValueError):
            raise NotFound("Item da cesta", index) from None

        mid = int(removed["material_id"])
        available = Decimal(state["available"].get(str(mid), "0"))
        if not any(int(it["material_id"]) == mid for it in state["items"]):
            state["available"].pop(str(mid), None)
        if not state["items"]:
            state["scope"] = None
        self._save(state)
        return ExitBasketItem(mid, Decimal(removed["quantity"]), available)

    def discard(self):
        self._store.pop(self._key, None)

    def commit(self, actor, subtype, shared_fields=None):
        """Envia a cesta inteira ao StockEngine; esvazia só em caso de sucesso."""
        items = [
            {"material_id": it.material_id, "subtype": subtype, "quantity": it.requested_quantity}
            for it in self.items()
        ]
        result = self.engine.commit_exit(items, shared_fields, actor)
        self.discard()
        return result
