# barstock/models/stock.py
import enum
from sqlalchemy import Column, Integer, String, Float, Date, Text, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship
from barstock.database import Base


class MovementType(str, enum.Enum):
    ENTRADA = "entrada"  # entry
    SAIDA = "saida"      # exit
    PERDA = "perda"      # loss
    AJUSTE = "ajuste"    # adjustment, either direction


class MovementDirection(str, enum.Enum):
    IN = "in"
    OUT = "out"


# Append-only ledger row. Quantity is always the unsigned magnitude;
# the sign comes from direction.
class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(16), nullable=False)
    direction = Column(String(8), nullable=False)
    quantity = Column(Float, nullable=False)

    reason = Column(String, nullable=True)
    expiry_date = Column(Date, nullable=True)  # Only for entries of expiry-tracked products
    notes = Column(Text, nullable=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    product = relationship("Product", back_populates="movements")

    @property
    def signed_quantity(self) -> float:
        if self.direction == MovementDirection.OUT.value:
            return -self.quantity
        return self.quantity
