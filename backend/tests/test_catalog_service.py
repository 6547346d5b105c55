"""
Catalog service tests: stock primitives, barcode lookup, categories, CSV.
"""

import pytest

from voucherpos.errors import DuplicateBarcode, InsufficientStock, NotFound
from voucherpos.models import Category, Product
from voucherpos.services import catalog_service
from voucherpos.validation import ConflictError, ValidationError


class TestStockPrimitives:

    def test_debit_and_credit(self, db_session, product_p):
        assert catalog_service.debit(product_p.id, 4) == 6
        assert catalog_service.credit(product_p.id, 2) == 8
        db_session.commit()
        assert catalog_service.get_stock(product_p.id) == 8

    def test_debit_can_take_the_last_unit(self, db_session, product_q):
        assert catalog_service.debit(product_q.id, 5) == 0

    def test_debit_beyond_stock_changes_nothing(self, db_session, product_q):
        with pytest.raises(InsufficientStock) as exc:
            catalog_service.debit(product_q.id, 6)
        assert exc.value.available == 5
        assert catalog_service.get_stock(product_q.id) == 5

    def test_debit_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.debit(4242, 1)

    def test_credit_of_missing_product_is_a_no_op(self, db_session):
        assert catalog_service.credit(4242, 3) is None
        assert catalog_service.credit(None, 3) is None

    def test_primitives_bump_version(self, db_session, product_p):
        before = product_p.version_id
        catalog_service.debit(product_p.id, 1)
        db_session.commit()
        assert db_session.get(Product, product_p.id).version_id == before + 1

    @pytest.mark.parametrize("func", [catalog_service.debit, catalog_service.credit])
    def test_negative_amount_rejected(self, db_session, product_p, func):
        with pytest.raises(ValueError):
            func(product_p.id, -1)


class TestProducts:

    def test_find_by_barcode(self, db_session, product_p, product_q):
        assert catalog_service.find_by_barcode("1002").id == product_q.id
        with pytest.raises(NotFound):
            catalog_service.find_by_barcode("9999")
        with pytest.raises(NotFound):
            catalog_service.find_by_barcode("  ")

    def test_create_rejects_duplicate_barcode(self, db_session, product_p):
        with pytest.raises(DuplicateBarcode):
            catalog_service.create_product(
                patch={"name": "Copy", "barcode": "1001", "cost_price": 1, "sale_price": 2}
            )

    def test_products_without_barcode_may_coexist(self, db_session):
        catalog_service.create_product(patch={"name": "A", "cost_price": 1, "sale_price": 2})
        catalog_service.create_product(patch={"name": "B", "cost_price": 1, "sale_price": 2})
        assert db_session.query(Product).filter(Product.barcode.is_(None)).count() == 2

    def test_create_registers_category(self, db_session):
        catalog_service.create_product(
            patch={"name": "Tea", "cost_price": 1, "sale_price": 2, "category": "Drinks"}
        )
        assert db_session.query(Category).filter_by(name="Drinks").count() == 1

    def test_update_rejects_barcode_of_another_product(self, db_session, product_p, product_q):
        with pytest.raises(DuplicateBarcode):
            catalog_service.update_product(product_q.id, patch={"barcode": "1001"})

    def test_search_and_pagination(self, db_session, make_product):
        for i in range(5):
            make_product(f"Soap {i}", cost=1, sale=2, quantity=1, barcode=f"S{i}")
        make_product("Rice", cost=1, sale=2, quantity=1, category="Food")

        assert catalog_service.list_products(search="soap")["count"] == 5
        assert catalog_service.list_products(search="food")["count"] == 1
        page = catalog_service.list_products(search="soap", page=2, per_page=2)
        assert [p["name"] for p in page["items"]] == ["Soap 2", "Soap 3"]
        assert page["pagination"]["total_pages"] == 3


class TestCategories:

    def test_rename_moves_products(self, db_session, make_product):
        make_product("Tea", cost=1, sale=2, quantity=1, category="Drinks")
        category = catalog_service.create_category("Drinks")

        catalog_service.rename_category(category.id, "Beverages")

        assert db_session.query(Product).filter_by(category="Beverages").count() == 1
        rows = {r["name"]: r["product_count"] for r in catalog_service.list_categories()}
        assert rows["Beverages"] == 1
        assert "Drinks" not in rows

    def test_duplicate_and_blank_names(self, db_session):
        catalog_service.create_category("Snacks")
        with pytest.raises(ConflictError):
            catalog_service.create_category("Snacks")
        with pytest.raises(ValidationError):
            catalog_service.create_category("   ")

    def test_delete_falls_back_to_default(self, db_session, make_product):
        make_product("Chips", cost=1, sale=2, quantity=1, category="Snacks")
        category = catalog_service.create_category("Snacks")

        catalog_service.delete_category(category.id)

        assert db_session.query(Product).filter_by(name="Chips").one().category == "General"
        assert db_session.query(Category).filter_by(name="Snacks").count() == 0


class TestCsv:

    def test_export_then_import_skips_existing_barcodes(self, db_session, product_p):
        text = catalog_service.export_products_csv()
        assert text.splitlines()[0] == "Name,Barcode,Cost Price,Sale Price,Quantity,Category"
        assert "Product P,1001,100,150,10,General" in text

        result = catalog_service.import_products_csv(text)
        assert result == {"imported": 0, "skipped": 1, "errors": []}

    def test_import_reports_bad_rows(self, db_session):
        text = (
            "Name,Barcode,Cost Price,Sale Price,Quantity,Category\n"
            "Noodles,N-1,500,800,12,Food\n"
            ",N-2,1,1,1,Food\n"
            "Bread,N-3,abc,1,1,Food\n"
            "Milk,,1200,1500,3,\n"
        )
        result = catalog_service.import_products_csv(text)

        assert result["imported"] == 2
        assert [e["row"] for e in result["errors"]] == [3, 4]
        milk = db_session.query(Product).filter_by(name="Milk").one()
        assert (milk.cost_price, milk.category, milk.barcode) == (1200, "General", None)

    def test_import_empty_file(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.import_products_csv("")
