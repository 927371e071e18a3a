# barstock/routes/products.py
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barstock.database import get_db
from barstock.errors import Forbidden, InvalidInput, NotFound, StorageError
from barstock.models.product import Product, Stock
from barstock.services.stock import get_stock_with_levels
from barstock.utils.audit import write_log
from barstock.utils.auth import TeamContext, route_required
import barstock.schemas.product as product_schemas

router = APIRouter(prefix="/api/products", tags=["Products"])

NO_TEAM_MESSAGE = "You need to create or join a team first"


# ---- HELPERS ----
def _client_ip(request: Request):
    return request.client.host if request.client else None


def _product_out(product: Product, quantity: float, updated_at) -> product_schemas.ProductOut:
    return product_schemas.ProductOut(
        id=product.id,
        team_id=product.team_id,
        created_by=product.created_by,
        name=product.name,
        category=product.category,
        unit=product.unit,
        min_stock_level=product.min_stock_level or 0,
        expiry_tracking=bool(product.expiry_tracking),
        notes=product.notes,
        created_at=product.created_at,
        updated_at=product.updated_at,
        stock=product_schemas.StockOut(product_id=product.id, quantity=quantity, updated_at=updated_at),
    )


def _from_model(product: Product) -> product_schemas.ProductOut:
    stock = product.stock
    return _product_out(
        product,
        stock.quantity if stock is not None else 0.0,
        stock.updated_at if stock is not None else None,
    )


# A product of another team is forbidden rather than hidden
def _get_team_product_or_403(db: Session, ctx: TeamContext, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("Product not found")
    if ctx.team_id is None or product.team_id != ctx.team_id:
        raise Forbidden("You do not have access to this product")
    return product


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise StorageError(f"Failed to {what}")


# =========================
# LIST
# =========================
@router.get("", response_model=List[product_schemas.ProductOut])
def list_products(
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("products")),
):
    if ctx.team_id is None:
        return []
    return [_product_out(level.product, level.quantity, level.updated_at) for level in get_stock_with_levels(db, ctx.team_id)]


@router.get("/{product_id}", response_model=product_schemas.ProductOut)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("products")),
):
    return _from_model(_get_team_product_or_403(db, ctx, product_id))


# =========================
# CREATE
# =========================
@router.post("", response_model=product_schemas.ProductOut)
def create_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("products")),
):
    if ctx.team_id is None:
        raise InvalidInput(NO_TEAM_MESSAGE)

    product = Product(team_id=ctx.team_id, created_by=ctx.user_id, **payload.model_dump())
    # The snapshot row starts at zero; quantities only change through movements
    product.stock = Stock(quantity=0)
    db.add(product)
    _commit(db, "create product")
    db.refresh(product)

    write_log(
        db, user_id=ctx.user_id, team_id=ctx.team_id, action="PRODUCT_CREATE", resource="products",
        ip=_client_ip(request), meta={"id": product.id, "name": product.name},
    )
    return _from_model(product)


# =========================
# UPDATE
# =========================
@router.put("/{product_id}", response_model=product_schemas.ProductOut)
def update_product(
    product_id: int,
    payload: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("products")),
):
    product = _get_team_product_or_403(db, ctx, product_id)

    changes = payload.model_dump()
    for field, value in changes.items():
        setattr(product, field, value)
    _commit(db, "update product")
    db.refresh(product)

    write_log(
        db, user_id=ctx.user_id, team_id=ctx.team_id, action="PRODUCT_UPDATE", resource="products",
        ip=_client_ip(request), meta={"id": product.id, "fields": sorted(changes)},
    )
    return _from_model(product)


# =========================
# DELETE
# =========================
@router.delete("/{product_id}")
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("products")),
):
    product = _get_team_product_or_403(db, ctx, product_id)
    name = product.name

    # Stock snapshot and movements go with the product
    db.delete(product)
    _commit(db, "delete product")

    write_log(
        db, user_id=ctx.user_id, team_id=ctx.team_id, action="PRODUCT_DELETE", resource="products",
        ip=_client_ip(request), meta={"id": product_id, "name": name},
    )
    return {"success": True}
