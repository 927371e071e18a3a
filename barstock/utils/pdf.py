# barstock/utils/pdf.py
"""In-memory PDF reports drawn with the ReportLab canvas."""
from datetime import datetime, date
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from barstock.constants import MOVEMENT_TYPE_LABELS, category_label, reason_label, unit_label
from barstock.services.stock import summarize_by_type

FONT_REGULAR_NAME = "Helvetica"
FONT_BOLD_NAME = "Helvetica-Bold"

FOOTER_TEXT = "Página {page} de {total} | Bar Stock Manager"

HEAD_AMBER = (245 / 255, 158 / 255, 11 / 255)
HEAD_RED = (220 / 255, 38 / 255, 38 / 255)
ROW_GREY = (245 / 255, 245 / 255, 245 / 255)
ROW_ROSE = (254 / 255, 242 / 255, 242 / 255)

LEFT = 14 * mm
RIGHT = 196 * mm
ROW_HEIGHT = 7 * mm
BOTTOM_MARGIN = 22 * mm


class NumberedCanvas(canvas.Canvas):
    """Defers page output until save() so each footer knows the page total."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_pages = []

    def showPage(self):
        self._saved_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_pages)
        for state in self._saved_pages:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        width, _ = self._pagesize
        self.setFont(FONT_REGULAR_NAME, 8)
        self.setFillGray(0.6)
        self.drawCentredString(width / 2, 10 * mm, FOOTER_TEXT.format(page=self._pageNumber, total=total))
        self.setFillGray(0)


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y %H:%M")


def format_quantity(value) -> str:
    value = float(value or 0)
    return str(int(value)) if value.is_integer() else f"{value:g}"


def _fit(text: str, width: float, font: str, size: int) -> str:
    # Truncate with an ellipsis so a cell never runs into the next column
    if stringWidth(text, font, size) <= width:
        return text
    while text and stringWidth(text + "...", font, size) > width:
        text = text[:-1]
    return text + "..."


class _Report:
    def __init__(self, title: str):
        self.buffer = BytesIO()
        self.c = NumberedCanvas(self.buffer, pagesize=A4)
        self.width, self.height = A4
        self.title = title
        self.y = 0
        self._header()

    # Helper for drawing text
    def draw_text(self, x, y, text, font=FONT_REGULAR_NAME, size=10, align="left", gray=0.0):
        self.c.setFillGray(gray)
        self.c.setFont(font, size)
        text_str = str(text) if text is not None else ""
        if align == "right":
            self.c.drawRightString(x, y, text_str)
        elif align == "center":
            self.c.drawCentredString(x, y, text_str)
        else:
            self.c.drawString(x, y, text_str)
        self.c.setFillGray(0)

    def _header(self):
        top = self.height - 22 * mm
        self.draw_text(LEFT, top, self.title, font=FONT_BOLD_NAME, size=18, gray=0.16)
        self.draw_text(LEFT, top - 8 * mm, f"Gerado em: {format_datetime(datetime.now())}", size=10, gray=0.4)
        self.c.setStrokeGray(0.8)
        self.c.line(LEFT, top - 12 * mm, RIGHT, top - 12 * mm)
        self.y = top - 20 * mm

    def new_page(self):
        self.c.showPage()
        self._header()

    def ensure_space(self, needed: float):
        if self.y - needed < BOTTOM_MARGIN:
            self.new_page()

    def table(self, columns: Sequence[Tuple[str, float]], rows: Iterable[Sequence[str]],
              head_color=HEAD_AMBER, head_text_gray=0.0, stripe=ROW_GREY):
        widths = [w * mm for _, w in columns]

        def draw_head():
            self.c.setFillColorRGB(*head_color)
            self.c.rect(LEFT, self.y - 2 * mm, sum(widths), ROW_HEIGHT, stroke=0, fill=1)
            x = LEFT
            for (label, _), w in zip(columns, widths):
                self.draw_text(x + 1.5 * mm, self.y, label, font=FONT_BOLD_NAME, size=9, gray=head_text_gray)
                x += w
            self.y -= ROW_HEIGHT

        draw_head()
        for index, row in enumerate(rows):
            if self.y - ROW_HEIGHT < BOTTOM_MARGIN:
                self.new_page()
                draw_head()
            if index % 2 == 1:
                self.c.setFillColorRGB(*stripe)
                self.c.rect(LEFT, self.y - 2 * mm, sum(widths), ROW_HEIGHT, stroke=0, fill=1)
            x = LEFT
            for cell, w in zip(row, widths):
                self.draw_text(x + 1.5 * mm, self.y, _fit(str(cell), w - 3 * mm, FONT_REGULAR_NAME, 9), size=9)
                x += w
            self.y -= ROW_HEIGHT
        self.y -= 8 * mm

    def lines(self, texts: List[str], indent: float = 0, size: int = 11, step: float = 7 * mm):
        for text in texts:
            self.ensure_space(step)
            self.draw_text(LEFT + indent, self.y, text, size=size, gray=0.24)
            self.y -= step

    def render(self) -> bytes:
        self.c.showPage()
        self.c.save()
        return self.buffer.getvalue()


# =========================
# STOCK REPORT
# =========================
def _is_low(quantity: float, minimum: float) -> bool:
    return minimum > 0 and quantity <= minimum


def generate_stock_report(levels) -> bytes:
    """Current stock per product; `levels` are StockLevel rows from the ledger reader."""
    report = _Report("Relatório de Estoque Atual")
    rows = []
    low_count = 0
    for level in levels:
        product = level.product
        unit = unit_label(product.unit)
        minimum = product.min_stock_level or 0
        low = _is_low(level.quantity, minimum)
        low_count += low
        rows.append([
            product.name,
            category_label(product.category),
            f"{format_quantity(level.quantity)} {unit}".strip(),
            f"{format_quantity(minimum)} {unit}".strip() if minimum > 0 else "-",
            "Baixo" if low else "OK",
        ])

    report.table(
        [("Produto", 55), ("Categoria", 40), ("Quantidade", 32), ("Mínimo", 30), ("Status", 25)],
        rows,
    )
    report.lines([
        f"Total de produtos: {len(rows)}",
        f"Produtos com estoque baixo: {low_count}",
    ])
    return report.render()


# =========================
# MOVEMENTS REPORT
# =========================
def generate_movements_report(movements, date_from: Optional[date] = None, date_to: Optional[date] = None) -> bytes:
    title = "Relatório de Movimentações"
    if date_from and date_to:
        title += f" ({format_date(date_from)} - {format_date(date_to)})"
    report = _Report(title)

    movements = list(movements)
    rows = [
        [
            format_datetime(m.created_at),
            m.product.name,
            MOVEMENT_TYPE_LABELS.get(m.type, m.type),
            format_quantity(m.quantity),
            reason_label(m.type, m.reason),
        ]
        for m in movements
    ]
    report.table(
        [("Data/Hora", 34), ("Produto", 58), ("Tipo", 22), ("Qtd", 18), ("Motivo", 50)],
        rows,
    )

    totals = summarize_by_type(movements)
    report.lines(
        [f"Total de movimentações: {len(movements)}"]
        + [f"{MOVEMENT_TYPE_LABELS.get(t, t)}: {format_quantity(q)} unidades" for t, q in totals.items()]
    )
    return report.render()


# =========================
# LOSSES REPORT
# =========================
def generate_losses_report(movements) -> bytes:
    report = _Report("Relatório de Perdas e Desperdícios")
    losses = [m for m in movements if m.type == "perda"]

    if not losses:
        report.lines(["Nenhuma perda registrada no período."], size=12)
        return report.render()

    report.table(
        [("Data/Hora", 34), ("Produto", 50), ("Qtd", 18), ("Motivo", 35), ("Observações", 45)],
        [
            [
                format_datetime(m.created_at),
                m.product.name,
                format_quantity(m.quantity),
                reason_label(m.type, m.reason),
                m.notes or "-",
            ]
            for m in losses
        ],
        head_color=HEAD_RED,
        head_text_gray=1.0,
        stripe=ROW_ROSE,
    )

    by_reason = {}
    for m in losses:
        label = reason_label(m.type, m.reason)
        by_reason[label] = by_reason.get(label, 0) + m.quantity
    report.lines([f"Total de perdas: {len(losses)} registros", "Perdas por motivo:"])
    report.lines([f"- {reason}: {format_quantity(total)} unidades" for reason, total in by_reason.items()],
                 indent=4 * mm, size=10, step=6 * mm)
    return report.render()
