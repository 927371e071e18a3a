# barstock/schemas/product.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shared base attributes for product entities
class ProductBase(ORMBase):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    unit: Optional[str] = None
    min_stock_level: float = Field(default=0, ge=0)
    expiry_tracking: bool = False
    notes: Optional[str] = None


class ProductCreate(ProductBase):
    pass


# PUT replaces every editable field
class ProductUpdate(ProductBase):
    pass


class StockOut(ORMBase):
    product_id: int
    quantity: float
    updated_at: Optional[datetime] = None


# Product with its current stock snapshot
class ProductOut(ProductBase):
    id: int
    team_id: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stock: StockOut
