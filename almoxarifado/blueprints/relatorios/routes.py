from flask import request, send_file
from sqlalchemy import select

from almoxarifado.extensions import db
from almoxarifado.models import Material
from almoxarifado.movement_types import Direction
from almoxarifado.permissions import perm_required
from almoxarifado.scopes import normalize_scope
from almoxarifado.services import get_warehouse
from almoxarifado.services.export import XLSX_MIMETYPE
from almoxarifado.utils import parse_date

from . import relatorios_bp


# =========================
# Helpers
# =========================
def _scope():
    return normalize_scope(request.args.get("scope") or "central", get_warehouse().client_warehouses)


def _filename(base, scope, ext):
    return f"{base}_{scope.replace(':', '')}.{ext}"


def _movement_query(scope):
    direction = (request.args.get("direction") or "").strip().lower()
    return get_warehouse().ledger.query_movements(
        scope,
        direction=Direction(direction) if direction in ("entry", "exit") else None,
        date_from=parse_date(request.args.get("de")),
        date_to=parse_date(request.args.get("ate")),
        material_id=request.args.get("material_id", type=int),
    )


def _materials_by_id(scope):
    rows = db.session.scalars(select(Material).where(Material.scope == scope))
    return {m.id: m for m in rows}


# =========================
# 1) ESTOQUE ATUAL
# =========================
@relatorios_bp.get("/estoque.xlsx")
@perm_required("ver_relatorios")
def relatorio_estoque_xlsx():
    scope = _scope()
    wh = get_warehouse()
    materiais = wh.catalog.search(scope, request.args.get("q"))
    bio = wh.exporter.materials_xlsx(materiais)
    return send_file(bio, as_attachment=True, download_name=_filename("relatorio_estoque", scope, "xlsx"),
                     mimetype=XLSX_MIMETYPE)


@relatorios_bp.get("/estoque.pdf")
@perm_required("ver_relatorios")
def relatorio_estoque_pdf():
    scope = _scope()
    wh = get_warehouse()
    materiais = wh.catalog.search(scope, request.args.get("q"))
    bio = wh.exporter.materials_pdf(f"Relatório de Estoque Atual ({scope})", materiais)
    return send_file(bio, as_attachment=True, download_name=_filename("relatorio_estoque", scope, "pdf"),
                     mimetype="application/pdf")


# =========================
# 2) ESTOQUE BAIXO
# =========================
@relatorios_bp.get("/estoque-baixo.xlsx")
@perm_required("ver_relatorios")
def relatorio_estoque_baixo_xlsx():
    scope = _scope()
    wh = get_warehouse()
    bio = wh.exporter.materials_xlsx(wh.low_stock.list(scope), title="Estoque Baixo")
    return send_file(bio, as_attachment=True, download_name=_filename("estoque_baixo", scope, "xlsx"),
                     mimetype=XLSX_MIMETYPE)


# =========================
# 3) MOVIMENTAÇÕES
# =========================
@relatorios_bp.get("/movimentos.xlsx")
@perm_required("ver_relatorios")
def relatorio_movimentos_xlsx():
    scope = _scope()
    wh = get_warehouse()
    bio = wh.exporter.movements_xlsx(_movement_query(scope), _materials_by_id(scope))
    return send_file(bio, as_attachment=True, download_name=_filename("relatorio_movimentos", scope, "xlsx"),
                     mimetype=XLSX_MIMETYPE)


@relatorios_bp.get("/movimentos.pdf")
@perm_required("ver_relatorios")
def relatorio_movimentos_pdf():
    scope = _scope()
    wh = get_warehouse()
    bio = wh.exporter.movements_pdf(f"Movimentações ({scope})", _movement_query(scope), _materials_by_id(scope))
    return send_file(bio, as_attachment=True, download_name=_filename("relatorio_movimentos", scope, "pdf"),
                     mimetype="application/pdf")
