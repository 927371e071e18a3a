# barstock/routes/reports.py
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from barstock.database import get_db
from barstock.errors import InvalidInput
from barstock.models.stock import MovementType
from barstock.services.stock import get_movement_history, get_stock_with_levels
from barstock.utils.auth import TeamContext, route_required
from barstock.utils.pdf import generate_losses_report, generate_movements_report, generate_stock_report

router = APIRouter(prefix="/api/reports", tags=["Reports"])

# Upper bound on rows rendered into a single report
REPORT_MAX_ROWS = 5000


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise InvalidInput(f"Bad date format for {name}: {value}")


def _pdf(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _stamp() -> str:
    return date.today().strftime("%d-%m-%Y")


# -----------------------------
# 1) Current stock
# -----------------------------
@router.get("/stock.pdf")
def stock_report(
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("reports")),
):
    levels = get_stock_with_levels(db, ctx.team_id) if ctx.team_id is not None else []
    return _pdf(generate_stock_report(levels), f"estoque_{_stamp()}.pdf")


# -----------------------------
# 2) Movements in a date range
# -----------------------------
@router.get("/movements.pdf")
def movements_report(
    date_from: Optional[str] = Query(None, description="ISO date (inclusive)"),
    date_to: Optional[str] = Query(None, description="ISO date (inclusive)"),
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("reports")),
):
    start = _parse_date(date_from, "date_from")
    end = _parse_date(date_to, "date_to")
    if start and end and start > end:
        raise InvalidInput("date_from must not be after date_to")

    movements = []
    if ctx.team_id is not None:
        movements = get_movement_history(
            db, ctx.team_id, limit=REPORT_MAX_ROWS,
            date_from=datetime.combine(start, time.min) if start else None,
            date_to=datetime.combine(end, time.max) if end else None,
        )
    return _pdf(generate_movements_report(movements, start, end), f"movimentacoes_{_stamp()}.pdf")


# -----------------------------
# 3) Losses
# -----------------------------
@router.get("/losses.pdf")
def losses_report(
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("reports")),
):
    start = _parse_date(date_from, "date_from")
    end = _parse_date(date_to, "date_to")

    movements = []
    if ctx.team_id is not None:
        movements = get_movement_history(
            db, ctx.team_id, limit=REPORT_MAX_ROWS, movement_type=MovementType.PERDA.value,
            date_from=datetime.combine(start, time.min) if start else None,
            date_to=datetime.combine(end, time.max) if end else None,
        )
    return _pdf(generate_losses_report(movements), f"perdas_{_stamp()}.pdf")
