# Overview: Sale engine; commits, edits and deletes vouchers with atomic stock reconciliation.

"""
Sales Service

WHY: A voucher, its lines and the stock they consume must move together.
Every public mutation here runs as a single database transaction through
run_atomic(): voucher number, totals, Sale + SaleItem rows and stock
debits/credits all commit, or none of them do.

Lifecycle:
- Draft     lives only in a Cart (cart_service), never persisted
- COMMITTED commit() persisted the voucher and debited stock
- EDITED    update() changed lines and/or payment; repeatable
- deleted   delete() credited stock back and removed the rows (terminal)

Invariants (checked by tests after every mutation):
- total_sale == sum(item.total_sale), total_profit == sum(item.profit)
- change_amount == received_amount - total_sale
- stock deltas are computed from rows read inside the transaction, never
  from a client copy of the voucher
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import func, or_

from ..errors import InsufficientPayment, NotFound
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.sales import SALE_STATUS_COMMITTED, SALE_STATUS_EDITED
from ..money import line_amounts
from ..validation import SaleLineInput, ValidationError, parse_amount, parse_sale_lines
from voucherpos.time_utils import utcnow
from .cart_service import Cart, build_cart
from .catalog_service import credit, debit, get_stock
from .concurrency import lock_for_update, run_atomic
from .voucher_service import next_voucher_number


def _merge_lines(lines: Iterable[SaleLineInput]) -> list[SaleLineInput]:
    """Combine repeated products, keeping first-occurrence order."""
    merged: dict[int, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [SaleLineInput(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def _lock_products(product_ids) -> dict[int, Product]:
    if not product_ids:
        return {}
    query = db.session.query(Product).filter(Product.id.in_(list(product_ids))).order_by(Product.id)
    return {p.id: p for p in lock_for_update(query).populate_existing().all()}


def _load_sale_locked(sale_id: int) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    sale = lock_for_update(query).populate_existing().first()
    if not sale:
        raise NotFound("sale", sale_id)
    # Items must reflect the persisted rows, not a collection cached earlier
    db.session.expire(sale, ["items"])
    return sale


def _apply_totals(sale: Sale) -> None:
    sale.total_cost = sum(item.total_cost for item in sale.items)
    sale.total_sale = sum(item.total_sale for item in sale.items)
    sale.total_profit = sum(item.profit for item in sale.items)


def _recompute_change(sale: Sale, received_amount: int) -> None:
    # Negative when an edit raised the total past what was collected
    sale.received_amount = received_amount
    sale.change_amount = received_amount - sale.total_sale


def _new_item(position: int, product: Product, quantity: int) -> SaleItem:
    total_cost, total_sale, profit = line_amounts(product.cost_price, product.sale_price, quantity)
    return SaleItem(
        position=position,
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        cost_price=product.cost_price,
        sale_price=product.sale_price,
        total_cost=total_cost,
        total_sale=total_sale,
        profit=profit,
    )


def _set_item_quantity(item: SaleItem, quantity: int) -> None:
    item.quantity = quantity
    item.total_cost, item.total_sale, item.profit = line_amounts(item.cost_price, item.sale_price, quantity)


# =============================================================================
# Commit
# =============================================================================

def preview(lines, received_amount=None) -> dict:
    """
    Price a cart against live stock without persisting anything.

    Raises InsufficientStock / NotFound exactly as commit would at this
    instant; stock may still change before the real commit.
    """
    lines = _merge_lines(parse_sale_lines(lines))
    products = db.session.query(Product).filter(Product.id.in_([l.product_id for l in lines])).all()
    cart = build_cart(products, lines, stock_lookup=get_stock)
    if received_amount is not None:
        received_amount = parse_amount(received_amount, "received_amount")
    return cart.to_dict(received_amount)


def submit(
    lines,
    received_amount,
    *,
    created_by: str | None = None,
    client_reference: str | None = None,
) -> tuple[Sale, bool]:
    """
    Persist a new voucher from requested lines and debit stock.

    Args:
        lines: non-empty ordered sequence of SaleLineInput or
            {"product_id", "quantity"} dicts; repeated products are merged
        received_amount: cash tendered, minor units
        created_by: operator username recorded on the voucher
        client_reference: optional terminal-generated key; committing the
            same key twice returns the first voucher instead of a new one

    Returns (sale, created). created is False when client_reference matched
    a voucher already committed; that check runs inside the write
    transaction, so of two racing submissions only one reports created.

    Raises:
        InsufficientStock: a product has fewer units than requested now
        InsufficientPayment: received_amount < total_sale
        NotFound: a product does not exist
        PersistenceError: storage failed; nothing was written
    """
    lines = _merge_lines(parse_sale_lines(lines))
    received_amount = parse_amount(received_amount, "received_amount")
    client_reference = (client_reference or "").strip() or None

    def _op() -> tuple[Sale, bool]:
        existing = find_by_client_reference(client_reference)
        if existing:
            return existing, False

        products = _lock_products({l.product_id for l in lines})

        # Re-validate against stock as it is now, not as the terminal saw it
        cart = Cart()
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise NotFound("product", line.product_id)
            cart.add_item(product, line.quantity)

        total_cost, total_sale, total_profit = cart.totals()
        if received_amount < total_sale:
            raise InsufficientPayment(total_sale, received_amount)

        now = utcnow()
        sale = Sale(
            voucher_number=next_voucher_number(now.date()),
            status=SALE_STATUS_COMMITTED,
            total_cost=total_cost,
            total_sale=total_sale,
            total_profit=total_profit,
            received_amount=received_amount,
            change_amount=received_amount - total_sale,
            created_at=now,
            created_by=created_by,
            client_reference=client_reference,
        )
        for position, line in enumerate(cart.lines, start=1):
            sale.items.append(_new_item(position, products[line.product_id], line.quantity))
        db.session.add(sale)

        # Conditional UPDATE per product; a concurrent sale that got there
        # first makes this raise InsufficientStock and the whole unit rolls back
        for line in cart.lines:
            debit(line.product_id, line.quantity)

        db.session.flush()
        return sale, True

    return run_atomic(_op)


def commit(lines, received_amount, *, created_by=None, client_reference=None) -> Sale:
    """submit() without the created flag."""
    sale, _ = submit(lines, received_amount, created_by=created_by, client_reference=client_reference)
    return sale


# =============================================================================
# Edit
# =============================================================================

def update(sale_id: int, new_items=None, new_received_amount=None) -> Sale:
    """
    Edit a committed voucher's lines and/or received amount.

    new_items replaces the full line list ({"product_id", "quantity"}).
    Lines already on the voucher keep their captured name and prices; new
    products are priced from the catalog now. For every product the stock
    delta (new - old) is debited or credited; increases are checked against
    live remaining stock.

    Lines whose product has since been deleted cannot be addressed by
    product_id and are kept unchanged.

    Without new_received_amount the original received amount stands and
    change is recomputed against it. Payment is not re-checked here: an
    edit that outgrows the amount collected leaves a negative change_amount
    for the operator to settle.
    """
    lines = _merge_lines(parse_sale_lines(new_items)) if new_items is not None else None
    received = parse_amount(new_received_amount, "received_amount") if new_received_amount is not None else None

    def _op() -> Sale:
        sale = _load_sale_locked(sale_id)
        if lines is None and received is None:
            return sale

        if lines is not None:
            current = {item.product_id: item for item in sale.items if item.product_id is not None}
            orphans = [item for item in sale.items if item.product_id is None]
            wanted = {line.product_id: line.quantity for line in lines}

            products = _lock_products(set(current) | set(wanted))
            for product_id in wanted:
                if product_id not in current and product_id not in products:
                    raise NotFound("product", product_id)

            # Reconcile stock against the persisted quantities read above
            for product_id in list(current) + [pid for pid in wanted if pid not in current]:
                old_qty = current[product_id].quantity if product_id in current else 0
                delta = wanted.get(product_id, 0) - old_qty
                if delta > 0:
                    debit(product_id, delta)
                elif delta < 0:
                    credit(product_id, -delta)

            rebuilt: list[SaleItem] = []
            for position, line in enumerate(lines, start=1):
                item = current.get(line.product_id)
                if item is not None:
                    _set_item_quantity(item, line.quantity)
                    item.position = position
                else:
                    item = _new_item(position, products[line.product_id], line.quantity)
                rebuilt.append(item)
            for offset, item in enumerate(orphans, start=len(rebuilt) + 1):
                item.position = offset
                rebuilt.append(item)

            sale.items = rebuilt
            _apply_totals(sale)

        _recompute_change(sale, received if received is not None else sale.received_amount)

        sale.status = SALE_STATUS_EDITED
        sale.updated_at = utcnow()
        db.session.flush()
        return sale

    return run_atomic(_op)


# =============================================================================
# Delete
# =============================================================================

def delete(sale_id: int) -> bool:
    """
    Delete a voucher and credit every line's quantity back to stock.

    Credits for products that no longer exist are skipped. The sale and
    its items are removed in the same transaction as the credits.
    """
    def _op() -> bool:
        sale = _load_sale_locked(sale_id)
        for item in sale.items:
            credit(item.product_id, item.quantity)
        db.session.delete(sale)
        db.session.flush()
        return True

    return run_atomic(_op)


# =============================================================================
# Queries
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFound("sale", sale_id)
    return sale


def get_by_voucher_number(voucher_number: str) -> Sale:
    sale = db.session.query(Sale).filter_by(voucher_number=voucher_number).first()
    if not sale:
        raise NotFound("sale", voucher_number)
    return sale


def list_sales(
    search: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Newest-first voucher listing.

    search matches the voucher number or any line's product name
    (case-insensitive). start is inclusive, end exclusive.
    """
    if start and end and end < start:
        raise ValidationError("end must not be before start")

    query = db.session.query(Sale)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Sale.voucher_number).like(like),
                Sale.items.any(func.lower(SaleItem.product_name).like(like)),
            )
        )
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())

    if page is None:
        sales = query.all()
        return {"items": [s.to_dict() for s in sales], "count": len(sales)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def find_by_client_reference(client_reference: str) -> Sale | None:
    client_reference = (client_reference or "").strip()
    if not client_reference:
        return None
    return db.session.query(Sale).filter_by(client_reference=client_reference).first()
