# barstock/services/stock.py
"""Stock ledger: the only code path that changes a product's stock quantity.

Every change is recorded as an immutable StockMovement and applied to the
Stock snapshot in the same transaction, so for every product

    stock.quantity == sum(m.signed_quantity for m in product.movements)

holds after each commit. The snapshot update is a single SQL expression
(quantity = quantity + delta); concurrent writers on the same product are
serialised by the database's row locks.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager

from barstock.config import settings
from barstock.constants import STOCK_COUNT_REASON
from barstock.errors import InvalidInput, InvalidQuantity, NotFound, StorageError
from barstock.models.product import Product, Stock
from barstock.models.stock import StockMovement, MovementType, MovementDirection

logger = logging.getLogger(__name__)

# Types whose sign is fixed; ajuste takes the caller's direction
_FIXED_DIRECTIONS = {
    MovementType.ENTRADA: MovementDirection.IN,
    MovementType.SAIDA: MovementDirection.OUT,
    MovementType.PERDA: MovementDirection.OUT,
}


def utc_today() -> date:
    """The calendar day used by every date-based reader."""
    return datetime.now(timezone.utc).date()


@dataclass
class StockLevel:
    product: Product
    quantity: float
    updated_at: Optional[datetime]


def _as_number(value, *, allow_zero: bool) -> float:
    if isinstance(value, bool):
        raise InvalidQuantity()
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidQuantity()
    if not math.isfinite(number) or number < 0 or (number == 0 and not allow_zero):
        raise InvalidQuantity()
    return number


def resolve_direction(movement_type, direction=None) -> Tuple[MovementType, MovementDirection]:
    """Validate the movement type and work out which way it moves stock."""
    try:
        mtype = MovementType(movement_type)
    except ValueError:
        raise InvalidInput(f"Unknown movement type: {movement_type}")

    requested = None
    if direction is not None:
        try:
            requested = MovementDirection(direction)
        except ValueError:
            raise InvalidInput(f"Unknown movement direction: {direction}")

    fixed = _FIXED_DIRECTIONS.get(mtype)
    if fixed is None:
        return mtype, requested or MovementDirection.IN
    if requested is not None and requested != fixed:
        raise InvalidInput(f"Movement type '{mtype.value}' cannot have direction '{requested.value}'")
    return mtype, fixed


def get_team_product(db: Session, team_id: int, product_id: int) -> Product:
    # Products of other teams are reported as missing
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.team_id == team_id)
        .first()
    )
    if product is None:
        raise NotFound("Product not found")
    return product


def _apply_movement(
    db: Session,
    product: Product,
    mtype: MovementType,
    direction: MovementDirection,
    quantity: float,
    *,
    reason: Optional[str] = None,
    expiry_date: Optional[date] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
) -> StockMovement:
    # Caller owns the transaction
    delta = quantity if direction is MovementDirection.IN else -quantity

    if mtype is not MovementType.ENTRADA or not product.expiry_tracking:
        expiry_date = None

    movement = StockMovement(
        product_id=product.id,
        type=mtype.value,
        direction=direction.value,
        quantity=quantity,
        reason=reason or None,
        expiry_date=expiry_date,
        notes=notes or None,
        created_by=user_id,
    )
    db.add(movement)
    db.flush()

    updated = (
        db.query(Stock)
        .filter(Stock.product_id == product.id)
        .update(
            {Stock.quantity: Stock.quantity + delta, Stock.updated_at: func.now()},
            synchronize_session=False,
        )
    )
    if not updated:
        db.add(Stock(product_id=product.id, quantity=delta))
        db.flush()
    return movement


def register_movement(
    db: Session,
    team_id: int,
    product_id: int,
    movement_type,
    quantity,
    reason: Optional[str] = None,
    expiry_date: Optional[date] = None,
    notes: Optional[str] = None,
    direction=None,
    user_id: Optional[str] = None,
) -> StockMovement:
    """Record one movement and apply it to the snapshot atomically.

    Raises InvalidQuantity, InvalidInput, NotFound or StorageError. On
    StorageError nothing has been written.
    """
    magnitude = _as_number(quantity, allow_zero=False)
    mtype, mdirection = resolve_direction(movement_type, direction)
    product = get_team_product(db, team_id, product_id)

    try:
        movement = _apply_movement(
            db, product, mtype, mdirection, magnitude,
            reason=reason, expiry_date=expiry_date, notes=notes, user_id=user_id,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to register %s movement for product %s", mtype.value, product_id)
        raise StorageError("Failed to register stock movement")

    db.refresh(movement)
    return movement


def apply_stock_count(
    db: Session,
    team_id: int,
    counts: Iterable[Tuple[int, float]],
    user_id: Optional[str] = None,
) -> List[StockMovement]:
    """Turn a physical stock count into ajuste movements, one per differing product.

    All adjustments commit together.
    """
    checked = []
    seen = set()
    for product_id, counted in counts:
        if product_id in seen:
            raise InvalidInput(f"Product {product_id} counted more than once")
        seen.add(product_id)
        checked.append((get_team_product(db, team_id, product_id), _as_number(counted, allow_zero=True)))

    movements = []
    try:
        # product.stock may predate a concurrent movement; diff against locked rows
        locked = (
            db.query(Stock)
            .filter(Stock.product_id.in_([product.id for product, _ in checked]))
            .with_for_update()
            .populate_existing()
            .all()
        )
        current_by_product = {row.product_id: row.quantity for row in locked}
        for product, counted in checked:
            current = current_by_product.get(product.id, 0.0)
            diff = counted - current
            if diff == 0:
                continue
            direction = MovementDirection.IN if diff > 0 else MovementDirection.OUT
            movements.append(
                _apply_movement(
                    db, product, MovementType.AJUSTE, direction, abs(diff),
                    reason=STOCK_COUNT_REASON, user_id=user_id,
                )
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to apply stock count for team %s", team_id)
        raise StorageError("Failed to apply stock count")

    for movement in movements:
        db.refresh(movement)
    return movements


# ---- readers ----

def get_stock_with_levels(db: Session, team_id: int) -> List[StockLevel]:
    rows = (
        db.query(Product, Stock.quantity, Stock.updated_at)
        .outerjoin(Stock, Stock.product_id == Product.id)
        .filter(Product.team_id == team_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    # A missing snapshot row counts as zero stock
    return [StockLevel(product=p, quantity=q if q is not None else 0.0, updated_at=u) for p, q, u in rows]


def get_movement_history(
    db: Session,
    team_id: int,
    limit: int = 100,
    product_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    movement_type: Optional[str] = None,
) -> List[StockMovement]:
    """Newest movements first; ties on created_at fall back to insertion order."""
    query = (
        db.query(StockMovement)
        .join(Product, StockMovement.product_id == Product.id)
        .options(contains_eager(StockMovement.product))
        .filter(Product.team_id == team_id)
    )
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockMovement.created_at <= date_to)

    return (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_expiring_products(db: Session, team_id: int, days: int) -> List[dict]:
    """Entries of expiry-tracked products expiring within `days` while still in stock."""
    today = utc_today()
    until = today + timedelta(days=days)

    rows = (
        db.query(StockMovement, Product, Stock.quantity)
        .join(Product, StockMovement.product_id == Product.id)
        .join(Stock, Stock.product_id == Product.id)
        .filter(
            Product.team_id == team_id,
            Product.expiry_tracking.is_(True),
            StockMovement.type == MovementType.ENTRADA.value,
            StockMovement.expiry_date.isnot(None),
            StockMovement.expiry_date >= today,
            StockMovement.expiry_date <= until,
            Stock.quantity > 0,
        )
        .order_by(StockMovement.expiry_date.asc(), StockMovement.id.asc())
        .all()
    )
    return [
        {
            "movement_id": m.id,
            "product_id": p.id,
            "product_name": p.name,
            "quantity": m.quantity,
            "current_quantity": q,
            "expiry_date": m.expiry_date,
            "days_until_expiry": (m.expiry_date - today).days,
        }
        for m, p, q in rows
    ]


def get_low_stock_and_summary(db: Session, team_id: int, expiry_days: Optional[int] = None) -> dict:
    levels = get_stock_with_levels(db, team_id)

    low_stock = []
    for level in levels:
        product = level.product
        threshold = product.min_stock_level or 0
        # Negative stock is always surfaced, whatever the threshold
        if level.quantity < 0 or (threshold > 0 and level.quantity <= threshold):
            low_stock.append({
                "product_id": product.id,
                "product_name": product.name,
                "category": product.category,
                "unit": product.unit,
                "current_quantity": level.quantity,
                "min_stock_level": threshold,
            })

    days = settings.EXPIRY_ALERT_DAYS if expiry_days is None else expiry_days
    expiring = get_expiring_products(db, team_id, days)

    day_start = datetime.combine(utc_today(), time.min, tzinfo=timezone.utc)
    movements_today = (
        db.query(func.count(StockMovement.id))
        .join(Product, StockMovement.product_id == Product.id)
        .filter(
            Product.team_id == team_id,
            StockMovement.created_at >= day_start,
            StockMovement.created_at < day_start + timedelta(days=1),
        )
        .scalar()
    )

    return {
        "low_stock": low_stock,
        "summary": {
            "total_products": len(levels),
            "low_stock_count": len(low_stock),
            "negative_stock_count": sum(1 for level in levels if level.quantity < 0),
            "expiring_soon_count": len(expiring),
            "total_movements_today": movements_today or 0,
            "expiry_alert_days": days,
        },
    }


def summarize_by_type(movements: Iterable[StockMovement]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for m in movements:
        totals[m.type] = totals.get(m.type, 0) + m.quantity
    return totals
