"""Aplicação de entradas e saídas sobre o saldo dos materiais.

Único caminho que altera ``Material.current_quantity``. Cada commit:

1. valida tudo antes de tocar em qualquer saldo;
2. bloqueia os materiais envolvidos em ordem crescente de id (trava do
   processo + ``SELECT ... FOR UPDATE`` onde o banco suporta);
3. relê o saldo sob bloqueio, compara, aplica e grava o histórico;
4. confirma tudo numa única transação, ou desfaz tudo.

Se outra transação alterar o material entre a releitura e a gravação
(``version`` divergente), os passos de releitura e gravação são repetidos até
``max_retries`` vezes; esgotadas as tentativas, sobe ``ConcurrentModification``.
"""
import logging
import uuid
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from almoxarifado.errors import (
    ConcurrentModification,
    CrossScopeBatchError,
    FieldError,
    InactiveMaterial,
    InsufficientStock,
    NotFound,
    Shortage,
    ValidationError,
)
from almoxarifado.extensions import db
from almoxarifado.models import Material, MovementRecord
from almoxarifado.movement_types import Direction, MovementTypeRegistry, payload_to_dict
from almoxarifado.services.locks import MaterialLocks
from almoxarifado.utils import MAX_QUANTITY, format_quantity, parse_quantity, utcnow

logger = logging.getLogger(__name__)


def _require_actor(actor) -> str:
    if actor is not None and not isinstance(actor, str):
        actor = getattr(actor, "login", None) or str(actor)
    actor = (actor or "").strip()
    if not actor:
        raise ValidationError(errors=[FieldError("performed_by", "missing_required_field",
                                                 "Responsável pela movimentação é obrigatório.")])
    return actor[:120]


def _material_id(v, field="material_id") -> int:
    try:
        if isinstance(v, bool):
            raise ValueError
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(errors=[FieldError(field, "invalid_value", "Material inválido.")]) from None


class StockEngine:
    def __init__(self, registry: MovementTypeRegistry, locks: Optional[MaterialLocks] = None,
                 max_retries: int = 3, lock_timeout: float = 10.0):
        self.registry = registry
        self.locks = locks or MaterialLocks()
        self.max_retries = max_retries
        self.lock_timeout = lock_timeout

    # ------------------------- entrada -------------------------
    def commit_entry(self, material_id, subtype, quantity, fields=None, actor=None) -> MovementRecord:
        actor = _require_actor(actor)
        material_id = _material_id(material_id)
        material = self._load([material_id])[material_id]
        if not material.active:
            raise InactiveMaterial(material_id)
        payload = self.registry.parse(material.scope, Direction.ENTRY, subtype, fields)
        qty = parse_quantity(quantity)
        scope = material.scope

        def apply(locked):
            mat = locked[material_id]
            if mat.current_quantity + qty >= MAX_QUANTITY:
                raise ValidationError(errors=[FieldError(
                    "quantity", "invalid_value",
                    f"Saldo resultante deve ser menor que {MAX_QUANTITY}.")])
            now = utcnow()
            mat.current_quantity = mat.current_quantity + qty
            mat.updated_at = now
            mat.refresh_low_stock()
            record = MovementRecord(
                material_id=material_id,
                scope=scope,
                direction=Direction.ENTRY.value,
                subtype=subtype,
                quantity=qty,
                subtype_fields=payload_to_dict(payload),
                performed_by=actor,
                performed_at=now,
            )
            db.session.add(record)
            return record

        record = self._run_locked([material_id], apply)
        logger.info("Entrada %s de %s no material %s (%s) por %s",
                    subtype, format_quantity(qty), material_id, scope, actor)
        return record

    # ------------------------- saída -------------------------
    def commit_exit(self, items: Sequence[Mapping], shared_fields: Optional[Mapping] = None,
                    actor=None) -> Tuple[str, List[MovementRecord]]:
        """Baixa atômica de vários itens do mesmo almoxarifado.

        ``items``: ``[{material_id, subtype, quantity, fields?}]``; ``shared_fields``
        são mesclados em cada item (o item prevalece). Ou todos os itens são
        baixados, com um registro por item compartilhando ``batch_id`` e
        ``performed_at``, ou nada muda.
        """
        actor = _require_actor(actor)
        if not items:
            raise ValidationError("Inclua pelo menos 1 material.",
                                  errors=[FieldError("items", "missing_required_field",
                                                     "Pelo menos um item deve ser adicionado.")])
        shared_fields = dict(shared_fields or {})

        material_ids = [_material_id(item.get("material_id"), f"items[{i}].material_id")
                        for i, item in enumerate(items)]
        materials = self._load(material_ids)

        scopes = {m.scope for m in materials.values()}
        if len(scopes) > 1:
            logger.warning("Saída recusada: itens de almoxarifados diferentes %s", sorted(scopes))
            raise CrossScopeBatchError(list(scopes))
        scope = scopes.pop()

        staged = []
        for i, (material_id, item) in enumerate(zip(material_ids, items)):
            if not materials[material_id].active:
                raise InactiveMaterial(material_id)
            subtype = item.get("subtype")
            try:
                payload = self.registry.parse(scope, Direction.EXIT, subtype,
                                              {**shared_fields, **dict(item.get("fields") or {})})
                qty = parse_quantity(item.get("quantity"))
            except ValidationError as e:
                e.details["item_index"] = i
                raise
            staged.append((material_id, subtype, qty, payload))

        # o mesmo material pode aparecer em mais de um item
        requested: Dict[int, Decimal] = OrderedDict()
        for material_id, _, qty, _ in staged:
            requested[material_id] = requested.get(material_id, Decimal("0")) + qty

        def apply(locked):
            shortages = [
                Shortage(mid, requested[mid], locked[mid].current_quantity)
                for mid in sorted(requested)
                if requested[mid] > locked[mid].current_quantity
            ]
            if shortages:
                raise InsufficientStock(shortages)

            batch_id = uuid.uuid4().hex
            now = utcnow()
            for mid, qty in requested.items():
                mat = locked[mid]
                mat.current_quantity = mat.current_quantity - qty
                mat.updated_at = now
                mat.refresh_low_stock()

            records = [
                MovementRecord(
                    material_id=mid,
                    scope=scope,
                    direction=Direction.EXIT.value,
                    subtype=subtype,
                    quantity=qty,
                    subtype_fields=payload_to_dict(payload),
                    performed_by=actor,
                    performed_at=now,
                    batch_id=batch_id,
                )
                for mid, subtype, qty, payload in staged
            ]
            db.session.add_all(records)
            return batch_id, records

        try:
            batch_id, records = self._run_locked(list(requested), apply)
        except InsufficientStock as e:
            logger.warning("Saída recusada em %s por %s: %s", scope, actor, e.message)
            raise
        logger.info("Saída %s confirmada em %s: %d itens por %s", batch_id, scope, len(records), actor)
        return batch_id, records

    # ------------------------- internos -------------------------
    def _load(self, material_ids) -> Dict[int, Material]:
        ids = sorted(set(material_ids))
        found = {m.id: m for m in db.session.scalars(select(Material).where(Material.id.in_(ids)))}
        for material_id in ids:
            if material_id not in found:
                raise NotFound("Material", material_id)
        return found

    def _lock_rows(self, material_ids) -> Dict[int, Material]:
        # relê sob bloqueio, descartando o que estiver no identity map
        stmt = (
            select(Material)
            .where(Material.id.in_(sorted(material_ids)))
            .order_by(Material.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {m.id: m for m in db.session.scalars(stmt)}

    def _run_locked(self, material_ids, apply):
        ids = sorted(set(material_ids))
        try:
            with self.locks.hold(ids, timeout=self.lock_timeout):
                attempt = 0
                while True:
                    attempt += 1
                    try:
                        result = apply(self._lock_rows(ids))
                        db.session.commit()
                        return result
                    except StaleDataError:
                        db.session.rollback()
                        if attempt > self.max_retries:
                            logger.error("Materiais %s alterados concorrentemente; %d tentativas esgotadas",
                                         ids, attempt)
                            raise ConcurrentModification(ids, attempt) from None
                        logger.warning("Materiais %s alterados durante o commit; tentativa %d", ids, attempt + 1)
                    except Exception:
                        db.session.rollback()
                        raise
        except TimeoutError:
            db.session.rollback()
            logger.error("Tempo esgotado aguardando bloqueio dos materiais %s", ids)
            raise ConcurrentModification(ids, 0) from None
