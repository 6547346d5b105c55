# Overview: Service-layer operations for the product catalog; owns the atomic stock primitives.

"""
Catalog Service

STOCK INVARIANTS (authoritative):
- Product.quantity never goes negative.
- The sale engine changes stock only through debit() and credit(). Each is
  a single conditional UPDATE, so two terminals selling the last unit
  cannot both succeed: the second UPDATE matches no row.
- Both primitives bump Product.version_id so ORM copies held elsewhere
  fail their optimistic version check instead of overwriting stock.
- Neither primitive commits; they run inside the caller's transaction.
"""

from __future__ import annotations

import csv
import io

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import DuplicateBarcode, InsufficientStock, NotFound
from ..extensions import db
from ..models import Category, Product, SaleItem
from ..models.catalog import DEFAULT_CATEGORY
from ..money import from_minor_units, to_minor_units, MoneyError
from ..validation import ConflictError, ValidationError
from voucherpos.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "barcode", "cost_price", "sale_price", "quantity", "category"}

CSV_HEADERS = ["Name", "Barcode", "Cost Price", "Sale Price", "Quantity", "Category"]


# =============================================================================
# Stock primitives
# =============================================================================

def _expire_cached(product_id: int) -> None:
    """Drop an in-session Product copy so the next access reloads the new quantity."""
    cached = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached)


def debit(product_id: int, amount: int) -> int:
    """
    Atomically decrement stock by `amount`.

    Returns the new quantity. Raises InsufficientStock if fewer than
    `amount` units are on hand, NotFound if the product does not exist.
    """
    if amount < 0:
        raise ValueError("debit amount must be >= 0")

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.quantity >= amount)
        .values(
            quantity=Product.quantity - amount,
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(product_id)
    if not result.rowcount:
        row = db.session.query(Product.quantity, Product.name).filter(Product.id == product_id).first()
        if row is None:
            raise NotFound("product", product_id)
        raise InsufficientStock(product_id, amount, row.quantity, product_name=row.name)

    return db.session.query(Product.quantity).filter(Product.id == product_id).scalar()


def credit(product_id: int | None, amount: int) -> int | None:
    """
    Atomically increment stock by `amount`.

    No upper bound. Returns the new quantity, or None when the product no
    longer exists (the credit is simply inapplicable).
    """
    if amount < 0:
        raise ValueError("credit amount must be >= 0")
    if product_id is None:
        return None

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity=Product.quantity + amount,
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(product_id)
    if not result.rowcount:
        return None
    return db.session.query(Product.quantity).filter(Product.id == product_id).scalar()


def get_stock(product_id: int) -> int | None:
    """Live on-hand quantity straight from the database."""
    return db.session.query(Product.quantity).filter(Product.id == product_id).scalar()


# =============================================================================
# Lookup
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("product", product_id)
    return product


def find_by_barcode(barcode: str) -> Product:
    barcode = (barcode or "").strip()
    if not barcode:
        raise NotFound("product", barcode)
    matches = db.session.query(Product).filter(Product.barcode == barcode).limit(2).all()
    if not matches:
        raise NotFound("product", barcode)
    if len(matches) > 1:
        raise DuplicateBarcode(barcode)
    return matches[0]


def list_products(
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional search and pagination.

    search matches name or category (case-insensitive) or a barcode substring.
    """
    query = db.session.query(Product)

    if search:
        term = search.strip()
        like = f"%{term.lower()}%"
        query = query.filter(
            or_(
                func.lower(Product.name).like(like),
                func.lower(Product.category).like(like),
                Product.barcode.like(f"%{term}%"),
            )
        )
    if category:
        query = query.filter(Product.category == category)

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


# =============================================================================
# Product CRUD
# =============================================================================

def _ensure_barcode_free(barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise DuplicateBarcode(barcode)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_product(*, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises DuplicateBarcode if the barcode is already taken.
    """
    barcode = patch.get("barcode") or None
    _ensure_barcode_free(barcode)

    now = utcnow()
    product = Product(
        name=patch["name"],
        barcode=barcode,
        cost_price=patch.get("cost_price") or 0,
        sale_price=patch.get("sale_price") or 0,
        quantity=patch.get("quantity") or 0,
        category=patch.get("category") or DEFAULT_CATEGORY,
        created_at=now,
        updated_at=now,
    )
    db.session.add(product)
    _ensure_category(product.category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateBarcode(barcode)
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)
    if "barcode" in patch:
        _ensure_barcode_free(patch["barcode"], exclude_id=product_id)

    apply_product_patch(product, patch)
    product.updated_at = utcnow()
    if "category" in patch:
        _ensure_category(product.category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateBarcode(patch.get("barcode"))
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Product changed while editing; reload and retry")
    return product


def delete_product(product_id: int) -> bool:
    """
    Delete a product.

    Historical sale lines keep their value copies; their weak product
    reference is cleared so stock credits for those lines become no-ops.
    """
    product = get_product(product_id)
    db.session.query(SaleItem).filter(SaleItem.product_id == product_id).update(
        {SaleItem.product_id: None}, synchronize_session=False
    )
    db.session.delete(product)
    db.session.commit()
    return True


# =============================================================================
# Categories
# =============================================================================

def _ensure_category(name: str) -> None:
    """Register a category name seen on a product (no commit)."""
    if not name:
        return
    exists = db.session.query(Category.id).filter(Category.name == name).first()
    if not exists:
        now = utcnow()
        db.session.add(Category(name=name, created_at=now, updated_at=now))


def list_categories() -> list[dict]:
    """Category table rows plus product counts, sorted by name."""
    counts = dict(
        db.session.query(Product.category, func.count(Product.id))
        .group_by(Product.category)
        .all()
    )
    categories = db.session.query(Category).order_by(Category.name.asc()).all()
    known = {c.name for c in categories}

    rows = [{**c.to_dict(), "product_count": counts.get(c.name, 0)} for c in categories]
    # Categories used by products but never registered (e.g. restored data)
    for name in sorted(set(counts) - known):
        if name and name.strip():
            rows.append({"id": None, "name": name, "created_at": None, "updated_at": None, "product_count": counts[name]})
    rows.sort(key=lambda r: r["name"].lower())
    return rows


def create_category(name: str) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name cannot be blank")
    if db.session.query(Category.id).filter(Category.name == name).first():
        raise ConflictError(f"Category {name} already exists")
    now = utcnow()
    category = Category(name=name, created_at=now, updated_at=now)
    db.session.add(category)
    db.session.commit()
    return category


def rename_category(category_id: int, new_name: str) -> Category:
    """Rename a category and move its products along with it."""
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValidationError("name cannot be blank")

    category = db.session.get(Category, category_id)
    if not category:
        raise NotFound("category", category_id)
    if new_name == category.name:
        return category
    if db.session.query(Category.id).filter(Category.name == new_name).first():
        raise ConflictError(f"Category {new_name} already exists")

    db.session.query(Product).filter(Product.category == category.name).update(
        {Product.category: new_name, Product.updated_at: utcnow()}, synchronize_session="fetch"
    )
    category.name = new_name
    category.updated_at = utcnow()
    db.session.commit()
    return category


def delete_category(category_id: int) -> bool:
    """Delete a category; its products fall back to the default category."""
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFound("category", category_id)
    if category.name != DEFAULT_CATEGORY:
        db.session.query(Product).filter(Product.category == category.name).update(
            {Product.category: DEFAULT_CATEGORY, Product.updated_at: utcnow()}, synchronize_session="fetch"
        )
        _ensure_category(DEFAULT_CATEGORY)
    elif db.session.query(Product.id).filter(Product.category == DEFAULT_CATEGORY).first():
        raise ConflictError(f"{DEFAULT_CATEGORY} is still in use")
    db.session.delete(category)
    db.session.commit()
    return True


# =============================================================================
# CSV import / export
# =============================================================================

def export_products_csv() -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for p in db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()):
        writer.writerow([
            p.name,
            p.barcode or "",
            str(from_minor_units(p.cost_price)),
            str(from_minor_units(p.sale_price)),
            p.quantity,
            p.category,
        ])
    return buf.getvalue()


def import_products_csv(text: str) -> dict:
    """
    Import products from CSV text (same columns as export).

    Rows whose barcode already exists are skipped, never overwritten.
    Returns counts plus per-row errors; valid rows are committed together.
    """
    reader = csv.reader(io.StringIO(text))
    rows = list(reader)
    if not rows:
        raise ValidationError("CSV file is empty")

    imported = 0
    skipped = 0
    errors: list[dict] = []
    seen_barcodes: set[str] = set()
    now = utcnow()

    for line_number, row in enumerate(rows[1:], start=2):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < len(CSV_HEADERS):
            errors.append({"row": line_number, "error": f"expected {len(CSV_HEADERS)} columns"})
            continue

        name, barcode, cost, sale, qty, category = (cell.strip() for cell in row[:6])
        if not name:
            errors.append({"row": line_number, "error": "name is required"})
            continue
        try:
            cost_price = to_minor_units(cost or "0")
            sale_price = to_minor_units(sale or "0")
            quantity = int(qty or "0")
        except (MoneyError, ValueError) as exc:
            errors.append({"row": line_number, "error": str(exc)})
            continue
        if cost_price < 0 or sale_price < 0 or quantity < 0:
            errors.append({"row": line_number, "error": "amounts and quantity must be >= 0"})
            continue

        barcode = barcode or None
        if barcode:
            if barcode in seen_barcodes or db.session.query(Product.id).filter(Product.barcode == barcode).first():
                skipped += 1
                continue
            seen_barcodes.add(barcode)

        category = category or DEFAULT_CATEGORY
        db.session.add(Product(
            name=name,
            barcode=barcode,
            cost_price=cost_price,
            sale_price=sale_price,
            quantity=quantity,
            category=category,
            created_at=now,
            updated_at=now,
        ))
        _ensure_category(category)
        # Flush so the next row's category lookup sees this one
        db.session.flush()
        imported += 1

    db.session.commit()
    return {"imported": imported, "skipped": skipped, "errors": errors}
