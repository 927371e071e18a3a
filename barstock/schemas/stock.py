# barstock/schemas/stock.py
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Allowed movement types and directions
MovementTypeLiteral = Literal["entrada", "saida", "perda", "ajuste"]
DirectionLiteral = Literal["in", "out"]


# Schema for registering a stock movement
class StockMovementCreate(BaseModel):
    product_id: int
    type: MovementTypeLiteral
    quantity: float
    direction: Optional[DirectionLiteral] = None  # Only meaningful for 'ajuste'
    reason: Optional[str] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class StockMovementOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    type: str
    direction: str
    quantity: float
    signed_quantity: float
    reason: Optional[str] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Physical stock count: one counted quantity per product
class StockCountItem(BaseModel):
    product_id: int
    counted_quantity: float


class StockCountRequest(BaseModel):
    items: List[StockCountItem] = Field(..., min_length=1)


class StockCountResult(BaseModel):
    adjusted: int
    movements: List[StockMovementOut]


class StockLevelOut(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    min_stock_level: float
    quantity: float
    updated_at: Optional[datetime] = None


# Schemas for low stock alerting
class LowStockItem(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    current_quantity: float
    min_stock_level: float


class StockSummary(BaseModel):
    total_products: int
    low_stock_count: int
    negative_stock_count: int
    expiring_soon_count: int
    total_movements_today: int
    expiry_alert_days: int


class AlertsResponse(BaseModel):
    low_stock: List[LowStockItem]
    summary: StockSummary


class ExpiringItem(BaseModel):
    movement_id: int
    product_id: int
    product_name: str
    quantity: float
    current_quantity: float
    expiry_date: date
    days_until_expiry: int
