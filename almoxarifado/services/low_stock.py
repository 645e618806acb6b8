from sqlalchemy import func, select

from almoxarifado.extensions import db
from almoxarifado.models import Material
from almoxarifado.scopes import normalize_scope


class LowStockMonitor:
    """Materiais abaixo do estoque mínimo.

    Lê o indicador ``is_low_stock``, recalculado pelo StockEngine dentro da
    mesma transação de cada movimentação (e pelo cadastro quando o mínimo muda).
    """

    def __init__(self, client_warehouses: int = 5):
        self.client_warehouses = client_warehouses

    def _filter(self, stmt, scope):
        scope = normalize_scope(scope, self.client_warehouses)
        return stmt.where(
            Material.scope == scope,
            Material.active.is_(True),
            Material.is_low_stock.is_(True),
        )

    def list(self, scope):
        stmt = self._filter(select(Material), scope).order_by(Material.description.asc(), Material.id.asc())
        return db.session.scalars(stmt).all()

    def count(self, scope) -> int:
        return db.session.scalar(self._filter(select(func.count(Material.id)), scope))

    def summary(self, scope):
        materials = self.list(scope)
        return {"count": len(materials), "materials": [m.to_dict() for m in materials]}
