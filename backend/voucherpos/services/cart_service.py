# Overview: In-memory cart for one terminal session; running totals before a sale is committed.

"""
The cart never touches the database. It checks requested quantities
against the stock it was shown (or a live lookup when one is supplied), but
that check is advisory: sales_service.commit re-validates atomically.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from ..errors import InsufficientStock, NotFound
from ..money import line_amounts
from ..validation import SaleLineInput


@dataclass
class CartLine:
    product_id: int
    product_name: str
    quantity: int
    cost_price: int
    sale_price: int
    total_cost: int = 0
    total_sale: int = 0
    profit: int = 0

    def recompute(self) -> None:
        self.total_cost, self.total_sale, self.profit = line_amounts(
            self.cost_price, self.sale_price, self.quantity
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "cost_price": self.cost_price,
            "sale_price": self.sale_price,
            "total_cost": self.total_cost,
            "total_sale": self.total_sale,
            "profit": self.profit,
        }


class Cart:
    """
    Pending line items for one in-progress sale.

    Lines keep encounter order; adding a product already in the cart merges
    into its line. `stock_lookup(product_id) -> int | None` gives live stock
    for re-validation; without it the stock seen at add time is used.
    """

    def __init__(self, stock_lookup: Callable[[int], int | None] | None = None):
        self._lines: dict[int, CartLine] = {}
        self._known_stock: dict[int, int] = {}
        self._stock_lookup = stock_lookup

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def _available(self, product_id: int) -> int:
        if self._stock_lookup is not None:
            stock = self._stock_lookup(product_id)
            if stock is None:
                raise NotFound("product", product_id)
            self._known_stock[product_id] = stock
            return stock
        return self._known_stock.get(product_id, 0)

    def add_item(self, product, quantity: int = 1) -> CartLine:
        """
        Add `quantity` of a product (anything with id, name, cost_price,
        sale_price and quantity attributes).
        """
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        self._known_stock[product.id] = product.quantity
        available = product.quantity if self._stock_lookup is None else self._available(product.id)

        line = self._lines.get(product.id)
        reserved = line.quantity if line else 0
        if quantity > available - reserved:
            raise InsufficientStock(product.id, quantity, max(available - reserved, 0), product_name=product.name)

        if line:
            line.quantity += quantity
        else:
            line = CartLine(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                cost_price=product.cost_price,
                sale_price=product.sale_price,
            )
            self._lines[product.id] = line
        line.recompute()
        return line

    def update_quantity(self, product_id: int, new_quantity: int) -> CartLine | None:
        """Set a line's quantity; zero or less removes it."""
        line = self._lines.get(product_id)
        if line is None:
            raise NotFound("cart line", product_id)

        if new_quantity <= 0:
            self.remove_item(product_id)
            return None

        available = self._available(product_id)
        if new_quantity > available:
            raise InsufficientStock(product_id, new_quantity, available, product_name=line.product_name)

        line.quantity = new_quantity
        line.recompute()
        return line

    def remove_item(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def totals(self) -> tuple[int, int, int]:
        """(total_cost, total_sale, total_profit) over current lines."""
        total_cost = sum(line.total_cost for line in self._lines.values())
        total_sale = sum(line.total_sale for line in self._lines.values())
        total_profit = sum(line.profit for line in self._lines.values())
        return total_cost, total_sale, total_profit

    def change_for(self, received_amount: int) -> int:
        return received_amount - self.totals()[1]

    def to_lines(self) -> list[SaleLineInput]:
        """Commit payload for sales_service.commit."""
        return [SaleLineInput(product_id=l.product_id, quantity=l.quantity) for l in self._lines.values()]

    def to_dict(self, received_amount: int | None = None) -> dict:
        total_cost, total_sale, total_profit = self.totals()
        data = {
            "items": [line.to_dict() for line in self._lines.values()],
            "total_cost": total_cost,
            "total_sale": total_sale,
            "total_profit": total_profit,
        }
        if received_amount is not None:
            data["received_amount"] = received_amount
            data["change_amount"] = received_amount - total_sale
        return data


def build_cart(products: Iterable, lines: Iterable[SaleLineInput], stock_lookup=None) -> Cart:
    """Fill a cart from requested lines, given the products they refer to."""
    by_id = {p.id: p for p in products}
    cart = Cart(stock_lookup=stock_lookup)
    for line in lines:
        product = by_id.get(line.product_id)
        if product is None:
            raise NotFound("product", line.product_id)
        cart.add_item(product, line.quantity)
    return cart
