# barstock/routes/stock.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from barstock.config import settings
from barstock.database import get_db
from barstock.errors import Forbidden
from barstock.models.stock import StockMovement
from barstock.services import stock as stock_service
from barstock.services.profiles import get_preferences
from barstock.utils.audit import write_log
from barstock.utils.auth import TeamContext, route_required
from barstock.schemas.stock import (
    AlertsResponse, ExpiringItem, StockCountRequest, StockCountResult,
    StockLevelOut, StockMovementCreate, StockMovementOut,
)

router = APIRouter(prefix="/api/stock", tags=["Stock"])

HISTORY_MAX_LIMIT = 500


def _require_team(ctx: TeamContext) -> int:
    if ctx.team_id is None:
        raise Forbidden("You need to create or join a team first")
    return ctx.team_id


def movement_out(m: StockMovement) -> StockMovementOut:
    return StockMovementOut(
        id=m.id,
        product_id=m.product_id,
        product_name=m.product.name if m.product is not None else None,
        type=m.type,
        direction=m.direction,
        quantity=m.quantity,
        signed_quantity=m.signed_quantity,
        reason=m.reason,
        expiry_date=m.expiry_date,
        notes=m.notes,
        created_by=m.created_by,
        created_at=m.created_at,
    )


# The caller's own alert window wins over the server default
def _expiry_days(db: Session, user_id: str) -> Optional[int]:
    prefs = get_preferences(db, user_id)
    return prefs.alert_expiry_days if prefs is not None else None


# -----------------------------
# Stock levels
# -----------------------------
@router.get("", response_model=List[StockLevelOut])
def list_stock_levels(
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("stock")),
):
    if ctx.team_id is None:
        return []
    return [
        StockLevelOut(
            product_id=level.product.id,
            product_name=level.product.name,
            category=level.product.category,
            unit=level.product.unit,
            min_stock_level=level.product.min_stock_level or 0,
            quantity=level.quantity,
            updated_at=level.updated_at,
        )
        for level in stock_service.get_stock_with_levels(db, ctx.team_id)
    ]


# -----------------------------
# Register a movement
# -----------------------------
@router.post("/movement", response_model=StockMovementOut)
def register_movement(
    payload: StockMovementCreate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("stock")),
):
    team_id = _require_team(ctx)
    movement = stock_service.register_movement(
        db,
        team_id,
        payload.product_id,
        payload.type,
        payload.quantity,
        reason=payload.reason,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        direction=payload.direction,
        user_id=ctx.user_id,
    )

    write_log(
        db, user_id=ctx.user_id, team_id=team_id, action="STOCK_MOVEMENT", resource="stock",
        ip=request.client.host if request.client else None,
        meta={"movement_id": movement.id, "product_id": movement.product_id,
              "type": movement.type, "delta": movement.signed_quantity},
    )
    return movement_out(movement)


# -----------------------------
# Physical stock count
# -----------------------------
@router.post("/count", response_model=StockCountResult)
def stock_count(
    payload: StockCountRequest,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("stock")),
):
    team_id = _require_team(ctx)
    movements = stock_service.apply_stock_count(
        db, team_id, [(item.product_id, item.counted_quantity) for item in payload.items], user_id=ctx.user_id,
    )

    write_log(
        db, user_id=ctx.user_id, team_id=team_id, action="STOCK_COUNT", resource="stock",
        ip=request.client.host if request.client else None,
        meta={"counted": len(payload.items), "adjusted": len(movements)},
    )
    return {"adjusted": len(movements), "movements": [movement_out(m) for m in movements]}


# -----------------------------
# Movement history
# -----------------------------
@router.get("/movements", response_model=List[StockMovementOut])
def movement_history(
    limit: int = Query(100),
    product_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("movements")),
):
    if ctx.team_id is None:
        return []
    limit = max(1, min(limit, HISTORY_MAX_LIMIT))
    rows = stock_service.get_movement_history(db, ctx.team_id, limit=limit, product_id=product_id)
    return [movement_out(m) for m in rows]


# -----------------------------
# Dashboard alerts
# -----------------------------
@router.get("/alerts", response_model=AlertsResponse)
def stock_alerts(
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("dashboard")),
):
    expiry_days = _expiry_days(db, ctx.user_id)
    if ctx.team_id is None:
        return {
            "low_stock": [],
            "summary": {
                "total_products": 0, "low_stock_count": 0, "negative_stock_count": 0,
                "expiring_soon_count": 0, "total_movements_today": 0,
                "expiry_alert_days": expiry_days if expiry_days is not None else settings.EXPIRY_ALERT_DAYS,
            },
        }
    return stock_service.get_low_stock_and_summary(db, ctx.team_id, expiry_days=expiry_days)


@router.get("/expiring", response_model=List[ExpiringItem])
def expiring_products(
    days: Optional[int] = Query(None, ge=0, le=365),
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("dashboard")),
):
    if ctx.team_id is None:
        return []
    if days is None:
        days = _expiry_days(db, ctx.user_id)
    if days is None:
        days = settings.EXPIRY_ALERT_DAYS
    return stock_service.get_expiring_products(db, ctx.team_id, days)
