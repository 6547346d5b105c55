"""
In-memory cart tests. No database or app context needed.
"""

from types import SimpleNamespace

import pytest

from voucherpos.errors import InsufficientStock, NotFound
from voucherpos.services.cart_service import Cart, build_cart
from voucherpos.validation import SaleLineInput


def _product(pid, name, cost, sale, quantity):
    return SimpleNamespace(id=pid, name=name, cost_price=cost, sale_price=sale, quantity=quantity)


P = _product(1, "P", 100, 150, 10)
Q = _product(2, "Q", 200, 300, 5)


def test_running_totals_match_scenario():
    cart = Cart()
    cart.add_item(P, 2)
    cart.add_item(Q, 1)

    assert cart.totals() == (400, 600, 200)
    assert cart.change_for(1000) == 400
    assert [line.total_sale for line in cart] == [300, 300]


def test_adding_same_product_merges_line():
    cart = Cart()
    cart.add_item(P, 2)
    cart.add_item(Q, 1)
    line = cart.add_item(P, 3)

    assert len(cart) == 2
    assert line.quantity == 5
    assert line.total_sale == 750
    assert [l.product_id for l in cart.lines] == [1, 2]


def test_add_beyond_stock_counts_what_is_already_in_cart():
    cart = Cart()
    cart.add_item(Q, 4)
    with pytest.raises(InsufficientStock) as exc:
        cart.add_item(Q, 2)
    assert exc.value.available == 1
    assert cart.lines[0].quantity == 4


def test_update_quantity_and_remove():
    cart = Cart()
    cart.add_item(P, 1)
    cart.update_quantity(1, 4)
    assert cart.totals()[1] == 600

    assert cart.update_quantity(1, 0) is None
    assert cart.is_empty


def test_update_quantity_uses_live_stock_lookup():
    stock = {1: 10}
    cart = Cart(stock_lookup=stock.get)
    cart.add_item(P, 2)

    stock[1] = 3
    with pytest.raises(InsufficientStock):
        cart.update_quantity(1, 4)

    del stock[1]
    with pytest.raises(NotFound):
        cart.update_quantity(1, 1)


def test_update_unknown_line():
    with pytest.raises(NotFound):
        Cart().update_quantity(99, 1)


def test_rejects_non_positive_add():
    with pytest.raises(ValueError):
        Cart().add_item(P, 0)


def test_to_dict_and_commit_payload():
    cart = build_cart([P, Q], [SaleLineInput(1, 2), SaleLineInput(2, 1)])

    data = cart.to_dict(received_amount=1000)
    assert data["total_profit"] == 200
    assert data["change_amount"] == 400
    assert "change_amount" not in cart.to_dict()
    assert cart.to_lines() == [SaleLineInput(1, 2), SaleLineInput(2, 1)]

    cart.clear()
    assert cart.totals() == (0, 0, 0)


def test_build_cart_unknown_product():
    with pytest.raises(NotFound):
        build_cart([P], [SaleLineInput(3, 1)])
