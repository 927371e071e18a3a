# barstock/models/product.py
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship
from barstock.database import Base


# Catalog entry owned by a team.
# The current quantity lives in Stock and is only changed through the movement ledger.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(String, nullable=True)  # Auth subject of the creator

    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True)
    unit = Column(String, nullable=True)

    # Reorder threshold; 0 disables the low-stock alert
    min_stock_level = Column(Float, nullable=False, default=0)
    expiry_tracking = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    team = relationship("Team", back_populates="products")
    stock = relationship("Stock", back_populates="product", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    movements = relationship("StockMovement", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)


# Denormalized current quantity, one row per product
class Stock(Base):
    __tablename__ = "stock"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), unique=True, nullable=False)
    quantity = Column(Float, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="stock")
