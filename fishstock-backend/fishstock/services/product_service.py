from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fishstock.core.errors import NotFoundError
from fishstock.core.quantities import StockLevel, is_low_stock
from fishstock.models.product import Product
from fishstock.services.concurrency import lock_for_update


def get_product(db: Session, product_id: str, *, for_update: bool = False) -> Product:
    stmt = select(Product).where(Product.id == product_id)
    if for_update:
        stmt = lock_for_update(stmt)
    product = db.execute(stmt).scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def product_is_low_stock(product: Product) -> bool:
    level = StockLevel.from_product(product)
    return is_low_stock(
        level.quantity_box,
        level.quantity_kg,
        level.box_to_kg_ratio,
        level.boxed_low_stock_threshold,
    )


def list_products(
    db: Session,
    *,
    q: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int]:
    count_stmt = select(func.count(Product.id))
    stmt = select(Product)
    if q:
        pattern = f"%{q.strip().lower()}%"
        count_stmt = count_stmt.where(func.lower(Product.name).like(pattern))
        stmt = stmt.where(func.lower(Product.name).like(pattern))
    if category:
        count_stmt = count_stmt.where(Product.category == category)
        stmt = stmt.where(Product.category == category)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(stmt.order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit)).scalars().all()
    return list(rows), total


def list_low_stock_products(db: Session) -> list[Product]:
    # Equivalent boxes floor loose kg by each product's own ratio, so filter in Python.
    rows = db.execute(select(Product).order_by(Product.name.asc())).scalars().all()
    return [product for product in rows if product_is_low_stock(product)]
