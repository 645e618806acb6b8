import logging
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from almoxarifado.errors import ConcurrentModification, FieldError, NotFound, ValidationError
from almoxarifado.extensions import db
from almoxarifado.models import UNIT_TYPES, Material
from almoxarifado.scopes import FIRST_MATERIAL_NUMBER, normalize_scope, scope_kind
from almoxarifado.utils import parse_stock_level

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "description", "unit_type", "minimum_stock", "addressing",
    "material_number", "part_number", "client_name",
})
CLIENT_ONLY_FIELDS = frozenset({"part_number", "client_name"})


def _text(v, limit=None):
    v = (str(v) if v is not None else "").strip()
    if limit:
        v = v[:limit]
    return v or None


class MaterialCatalog:
    """Cadastro de materiais por almoxarifado.

    O saldo (``current_quantity``) nunca passa por aqui: nasce zerado e só
    muda por movimentação confirmada no StockEngine.
    """

    def __init__(self, client_warehouses: int = 5):
        self.client_warehouses = client_warehouses

    # ------------------------- leitura -------------------------
    def get(self, material_id) -> Material:
        try:
            material_id = int(material_id)
        except (TypeError, ValueError):
            raise NotFound("Material", material_id) from None
        mat = db.session.get(Material, material_id)
        if mat is None:
            raise NotFound("Material", material_id)
        return mat

    def list(self, scope, include_inactive=False):
        scope = normalize_scope(scope, self.client_warehouses)
        q = select(Material).where(Material.scope == scope)
        if not include_inactive:
            q = q.where(Material.active.is_(True))
        return db.session.scalars(q.order_by(Material.description.asc(), Material.id.asc())).all()

    def search(self, scope, q):
        """Busca por descrição, número, part number ou cliente."""
        q = (q or "").strip()
        if not q:
            return self.list(scope)
        scope = normalize_scope(scope, self.client_warehouses)
        like = f"%{q}%"
        filtros = [
            Material.description.ilike(like),
            Material.part_number.ilike(like),
            Material.client_name.ilike(like),
        ]
        if q.isdigit():
            filtros.append(Material.material_number == int(q))
        stmt = (
            select(Material)
            .where(Material.scope == scope, Material.active.is_(True), or_(*filtros))
            .order_by(Material.description.asc(), Material.id.asc())
        )
        return db.session.scalars(stmt).all()

    # ------------------------- cadastro -------------------------
    def create_material(self, scope, description, unit_type, minimum_stock="0",
                        addressing=None, material_number=None, part_number=None, client_name=None):
        scope = normalize_scope(scope, self.client_warehouses)
        errors = []

        description = _text(description, 200)
        if not description:
            errors.append(FieldError("description", "missing_required_field", "Descrição é obrigatória."))
        unit_type = _text(unit_type)
        if not unit_type:
            errors.append(FieldError("unit_type", "missing_required_field", "Tipo de unidade é obrigatório."))
        elif unit_type not in UNIT_TYPES:
            errors.append(FieldError("unit_type", "invalid_value", f"Unidade inválida: {unit_type}."))
        if errors:
            raise ValidationError(errors=errors)

        minimum = parse_stock_level(minimum_stock if minimum_stock not in (None, "") else "0")
        if not scope.startswith("client:") and (part_number or client_name):
            raise ValidationError(errors=[FieldError(
                "part_number" if part_number else "client_name", "unexpected_field",
                "Part number e cliente só existem nos armazéns de clientes.")])

        number = self._material_number(scope, material_number)

        mat = Material(
            scope=scope,
            material_number=number,
            description=description,
            unit_type=unit_type,
            minimum_stock=minimum,
            addressing=_text(addressing, 40),
            part_number=_text(part_number, 60),
            client_name=_text(client_name, 200),
            active=True,
        )
        # quantidade inicial zero: já nasce em alerta se houver mínimo
        mat.current_quantity = Decimal("0")
        mat.refresh_low_stock()
        db.session.add(mat)
        self._commit(material_number=number)
        logger.info("Material %s#%s cadastrado (id=%s)", scope, number, mat.id)
        return mat

    def update_material(self, material_id, patch):
        """Atualiza dados cadastrais; ``current_quantity`` é recusado."""
        mat = self.get(material_id)
        patch = dict(patch or {})

        blocked = sorted(set(patch) - EDITABLE_FIELDS)
        if blocked:
            raise ValidationError(
                "Campos não editáveis pelo cadastro.",
                errors=[FieldError(k, "not_editable", f"Campo '{k}' não pode ser alterado.") for k in blocked],
            )
        if not mat.is_client_scope and any(patch.get(k) for k in CLIENT_ONLY_FIELDS):
            raise ValidationError(errors=[FieldError(
                "part_number", "unexpected_field", "Part number e cliente só existem nos armazéns de clientes.")])

        changes = {}
        if "description" in patch:
            changes["description"] = _text(patch["description"], 200)
            if not changes["description"]:
                raise ValidationError(errors=[FieldError("description", "missing_required_field",
                                                         "Descrição é obrigatória.")])
        if "unit_type" in patch:
            changes["unit_type"] = _text(patch["unit_type"])
            if changes["unit_type"] not in UNIT_TYPES:
                raise ValidationError(errors=[FieldError("unit_type", "invalid_value",
                                                         f"Unidade inválida: {changes['unit_type']}.")])
        if "minimum_stock" in patch:
            changes["minimum_stock"] = parse_stock_level(patch["minimum_stock"])
        if "addressing" in patch:
            changes["addressing"] = _text(patch["addressing"], 40)
        if "part_number" in patch:
            changes["part_number"] = _text(patch["part_number"], 60)
        if "client_name" in patch:
            changes["client_name"] = _text(patch["client_name"], 200)
        if "material_number" in patch and patch["material_number"] not in (None, ""):
            changes["material_number"] = self._material_number(
                mat.scope, patch["material_number"], exclude_id=mat.id)

        # só aplica depois de tudo validado
        for k, v in changes.items():
            setattr(mat, k, v)
        mat.refresh_low_stock()
        self._commit(material_ids=[mat.id], material_number=mat.material_number)
        return mat

    def deactivate(self, material_id):
        mat = self.get(material_id)
        mat.active = False
        self._commit(material_ids=[mat.id])
        logger.info("Material %s inativado", mat.id)
        return mat

    def reactivate(self, material_id):
        mat = self.get(material_id)
        mat.active = True
        mat.refresh_low_stock()
        self._commit(material_ids=[mat.id])
        return mat

    # ------------------------- helpers -------------------------
    def _material_number(self, scope, requested=None, exclude_id=None):
        if requested not in (None, ""):
            try:
                number = int(requested)
            except (TypeError, ValueError):
                number = 0
            if number <= 0:
                raise ValidationError(errors=[FieldError("material_number", "invalid_value",
                                                         "Número do material inválido.")])
            q = select(Material.id).where(Material.scope == scope, Material.material_number == number)
            if exclude_id is not None:
                q = q.where(Material.id != exclude_id)
            if db.session.scalar(q) is not None:
                raise ValidationError(errors=[FieldError("material_number", "duplicate",
                                                         f"Já existe material nº {number} neste almoxarifado.")])
            return number

        last = db.session.scalar(select(func.max(Material.material_number)).where(Material.scope == scope))
        if last is None:
            return FIRST_MATERIAL_NUMBER[scope_kind(scope)]
        return last + 1

    def _commit(self, material_ids=(), material_number=None):
        try:
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            raise ConcurrentModification(list(material_ids), attempts=1) from None
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(errors=[FieldError("material_number", "duplicate",
                                                     f"Já existe material nº {material_number} neste almoxarifado.")]) from None
