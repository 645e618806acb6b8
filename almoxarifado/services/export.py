from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from almoxarifado.models import UNIT_TYPES
from almoxarifado.utils import format_quantity

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

DIRECTION_LABELS = {"entry": "Entrada", "exit": "Saída"}

MOVEMENT_HEADERS = [
    "Mov#", "Data", "Tipo", "Subtipo", "Material", "Qtd", "Responsável", "Lote", "Detalhes",
]
MATERIAL_HEADERS = [
    "Nº", "Descrição", "Un", "Saldo", "Mínimo", "Endereço", "Estoque baixo",
]


def _wb_to_bytes(wb: Workbook) -> BytesIO:
    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio


def _details(fields) -> str:
    return "; ".join(f"{k}={v}" for k, v in sorted((fields or {}).items()) if v not in (None, ""))


def _movement_row(rec, materials):
    mat = materials.get(rec.material_id)
    return [
        rec.id,
        rec.performed_at.strftime("%d/%m/%Y %H:%M") if rec.performed_at else "",
        DIRECTION_LABELS.get(rec.direction, rec.direction),
        rec.subtype,
        f"{mat.material_number} - {mat.description}" if mat else str(rec.material_id),
        format_quantity(rec.quantity),
        rec.performed_by,
        rec.batch_id or "",
        _details(rec.subtype_fields),
    ]


def _material_row(m):
    return [
        m.material_number,
        m.description,
        m.unit_type,
        format_quantity(m.current_quantity),
        format_quantity(m.minimum_stock),
        m.addressing or "",
        "SIM" if m.is_low_stock else "",
    ]


class ReportExporter:
    """Planilhas e PDFs a partir do catálogo e do histórico."""

    def movements_xlsx(self, records, materials) -> BytesIO:
        """``records``: iterável de MovementRecord; ``materials``: {id: Material}."""
        wb = Workbook()
        ws = wb.active
        ws.title = "Movimentações"
        ws.append(MOVEMENT_HEADERS)
        for rec in records:
            row = _movement_row(rec, materials)
            row[5] = float(rec.quantity)
            ws.append(row)
        return _wb_to_bytes(wb)

    def materials_xlsx(self, materials, title="Estoque Atual") -> BytesIO:
        wb = Workbook()
        ws = wb.active
        ws.title = title[:31]
        headers = list(MATERIAL_HEADERS)
        client = any(m.is_client_scope for m in materials)
        if client:
            headers += ["Part number", "Cliente"]
        ws.append(headers)
        for m in materials:
            row = _material_row(m)
            row[3] = float(m.current_quantity)
            row[4] = float(m.minimum_stock)
            row[2] = f"{m.unit_type} ({UNIT_TYPES.get(m.unit_type, m.unit_type)})"
            if client:
                row += [m.part_number or "", m.client_name or ""]
            ws.append(row)
        return _wb_to_bytes(wb)

    def movements_pdf(self, title, records, materials) -> BytesIO:
        rows = [[str(c) for c in _movement_row(rec, materials)[:8]] for rec in records]
        return self._pdf_table(title, MOVEMENT_HEADERS[:8], rows, pagesize=landscape(A4))

    def materials_pdf(self, title, materials) -> BytesIO:
        rows = [[str(c) for c in _material_row(m)] for m in materials]
        return self._pdf_table(title, MATERIAL_HEADERS, rows)

    @staticmethod
    def _pdf_table(title, headers, rows, pagesize=A4) -> BytesIO:
        bio = BytesIO()
        c = canvas.Canvas(bio, pagesize=pagesize)
        w, h = pagesize

        x = 15 * mm
        y = h - 20 * mm

        c.setFont("Helvetica-Bold", 14)
        c.drawString(x, y, title)
        y -= 10 * mm

        c.setFont("Helvetica", 9)
        c.drawString(x, y, f"Gerado em: {datetime.now().strftime('%d/%m/%Y %H:%M')}")
        y -= 8 * mm

        colw = (w - 30 * mm) / max(1, len(headers))

        def header(y):
            c.setFont("Helvetica-Bold", 9)
            for i, head in enumerate(headers):
                c.drawString(x + i * colw, y, head[:28])
            c.setFont("Helvetica", 9)
            return y - 6 * mm

        y = header(y)
        for row in rows:
            if y < 20 * mm:
                c.showPage()
                y = header(h - 20 * mm)
            for i, cell in enumerate(row):
                c.drawString(x + i * colw, y, str(cell)[:28])
            y -= 5 * mm

        c.showPage()
        c.save()
        bio.seek(0)
        return bio
