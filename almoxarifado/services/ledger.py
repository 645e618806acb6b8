from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from almoxarifado.errors import FieldError, ValidationError
from almoxarifado.extensions import db
from almoxarifado.models import MovementRecord
from almoxarifado.movement_types import Direction
from almoxarifado.scopes import normalize_scope


def _direction(value):
    try:
        return Direction(value)
    except ValueError:
        raise ValidationError(errors=[FieldError("direction", "invalid_value",
                                                 "Use 'entry' ou 'exit'.")]) from None


def _start_of(d):
    if isinstance(d, datetime):
        return d
    return datetime.combine(d, time.min)


def _end_of(d):
    # exclusivo; uma data sozinha cobre o dia inteiro
    if isinstance(d, datetime):
        return d
    return datetime.combine(d + timedelta(days=1), time.min)


class MovementQuery:
    """Sequência preguiçosa de movimentações.

    Cada iteração executa a consulta de novo, em lotes de ``batch_size``, então
    pode ser percorrida mais de uma vez (ex.: contagem e depois exportação).
    """

    def __init__(self, stmt, batch_size=500):
        self._stmt = stmt
        self.batch_size = batch_size

    def __iter__(self):
        result = db.session.scalars(self._stmt.execution_options(yield_per=self.batch_size))
        yield from result

    def count(self) -> int:
        return db.session.scalar(select(func.count()).select_from(self._stmt.order_by(None).subquery()))

    def all(self):
        return list(self)


class MovementLedger:
    """Leitura do histórico; não bloqueia e não é a autoridade do saldo."""

    def __init__(self, client_warehouses: int = 5):
        self.client_warehouses = client_warehouses

    def query_movements(self, scope, direction=None, date_from=None, date_to=None,
                        material_id=None, batch_size=500) -> MovementQuery:
        scope = normalize_scope(scope, self.client_warehouses)
        stmt = select(MovementRecord).where(MovementRecord.scope == scope)
        if direction:
            stmt = stmt.where(MovementRecord.direction == _direction(direction).value)
        if date_from:
            stmt = stmt.where(MovementRecord.performed_at >= _start_of(date_from))
        if date_to:
            stmt = stmt.where(MovementRecord.performed_at < _end_of(date_to))
        if material_id is not None:
            stmt = stmt.where(MovementRecord.material_id == int(material_id))
        stmt = stmt.order_by(MovementRecord.performed_at.asc(), MovementRecord.id.asc())
        return MovementQuery(stmt, batch_size=batch_size)

    def batch(self, batch_id):
        stmt = (
            select(MovementRecord)
            .where(MovementRecord.batch_id == batch_id)
            .order_by(MovementRecord.id.asc())
        )
        return db.session.scalars(stmt).all()

    def balance(self, material_id) -> Decimal:
        """Soma assinada do histórico (+entrada, -saída) de um material."""
        rows = db.session.execute(
            select(MovementRecord.direction, MovementRecord.quantity)
            .where(MovementRecord.material_id == int(material_id))
        ).all()
        total = Decimal("0")
        for direction, quantity in rows:
            total += quantity if direction == Direction.ENTRY.value else -quantity
        return total
