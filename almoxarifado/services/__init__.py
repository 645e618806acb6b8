from flask import current_app

from almoxarifado.movement_types import MovementTypeRegistry

from .basket import ExitBasket, ExitBasketItem
from .catalog import MaterialCatalog
from .export import ReportExporter
from .ledger import MovementLedger, MovementQuery
from .locks import MaterialLocks
from .low_stock import LowStockMonitor
from .stock_engine import StockEngine

EXTENSION_KEY = "almoxarifado"


class Warehouse:
    """Serviços do almoxarifado ligados a uma aplicação.

    O registro de tipos é carregado uma vez e compartilhado entre validação e
    engine; as travas por material são por aplicação.
    """

    def __init__(self, registry=None, client_warehouses=5, max_retries=3, lock_timeout=10.0):
        self.registry = registry or MovementTypeRegistry()
        self.catalog = MaterialCatalog(client_warehouses)
        self.engine = StockEngine(self.registry, MaterialLocks(),
                                  max_retries=max_retries, lock_timeout=lock_timeout)
        self.ledger = MovementLedger(client_warehouses)
        self.low_stock = LowStockMonitor(client_warehouses)
        self.exporter = ReportExporter()
        self.client_warehouses = client_warehouses

    def basket(self, store=None) -> ExitBasket:
        return ExitBasket(self.engine, store)


def init_app(app):
    app.extensions[EXTENSION_KEY] = Warehouse(
        client_warehouses=app.config.get("CLIENT_WAREHOUSES", 5),
        max_retries=app.config.get("STOCK_MAX_RETRIES", 3),
        lock_timeout=app.config.get("STOCK_LOCK_TIMEOUT", 10.0),
    )


def get_warehouse() -> Warehouse:
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    "ExitBasket", "ExitBasketItem", "LowStockMonitor", "MaterialCatalog", "MaterialLocks",
    "MovementLedger", "MovementQuery", "ReportExporter", "StockEngine", "Warehouse", "get_warehouse", "init_app",
]
