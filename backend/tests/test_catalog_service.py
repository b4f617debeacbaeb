# Overview: Pytest coverage for product and customer master data.

import pytest

from modaledger.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from modaledger.extensions import db
from modaledger.services import catalog_service, customers_service


class TestGenerateSku:
    def test_format(self):
        sku = catalog_service.generate_sku(category="vestidos", color="preto", size="M", sequence=3)
        assert sku == "BS-VE-PR-03-m"

    def test_defaults(self):
        assert catalog_service.generate_sku(category=None, color="", size=None, sequence=12) == "BS-XX-XX-12-u"


class TestProducts:
    def test_create_allocates_free_sku(self, db_session, make_product):
        make_product(sku="BS-VE-PR-02-m")
        product = catalog_service.create_product(
            patch={"name": "Vestido Longo", "category": "Vestidos", "color": "Preto", "size": "M"}
        )
        # sequence 2 is taken, so the next free one is used
        assert product.sku == "BS-VE-PR-03-m"

    def test_duplicate_sku(self, db_session, make_product):
        make_product(sku="DUP")
        with pytest.raises(ConflictError):
            catalog_service.create_product(patch={"sku": "DUP", "name": "Outro"})

    def test_update_rejects_blank_and_taken_sku(self, db_session, make_product):
        make_product(sku="A")
        b = make_product(sku="B")
        with pytest.raises(ValidationError):
            catalog_service.update_product(product_id=b.id, patch={"sku": ""})
        with pytest.raises(ConflictError):
            catalog_service.update_product(product_id=b.id, patch={"sku": "A"})

    def test_list_search_and_stock_filter(self, db_session, make_product):
        make_product(name="Saia Jeans", sku="SJ-1", stock=0)
        make_product(name="Blusa", sku="BL-1", stock=2)

        assert [p["name"] for p in catalog_service.list_products()["items"]] == ["Blusa", "Saia Jeans"]
        assert catalog_service.list_products(search="sj-")["count"] == 1
        assert [p["sku"] for p in catalog_service.list_products(in_stock=True)["items"]] == ["BL-1"]


class TestDecrementStock:
    def test_takes_stock_when_available(self, db_session, make_product):
        product = make_product(stock=3)
        catalog_service.decrement_stock(product.id, 2)
        db.session.commit()
        assert catalog_service.get_stock(product.id) == 1

    def test_guard_leaves_stock_untouched(self, db_session, make_product):
        product = make_product(stock=1)
        with pytest.raises(InsufficientStockError) as exc:
            catalog_service.decrement_stock(product.id, 2)
        assert exc.value.details["on_hand"] == 1
        assert catalog_service.get_stock(product.id) == 1

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.decrement_stock("missing", 1)


class TestCustomers:
    def test_crud(self, db_session):
        c = customers_service.create_customer(patch={"name": "Carla", "phone": None})
        assert c.phone == ""
        customers_service.update_customer(customer_id=c.id, patch={"email": "carla@example.com"})
        assert customers_service.get_customer(c.id).email == "carla@example.com"

        customers_service.delete_customer(customer_id=c.id)
        with pytest.raises(NotFoundError):
            customers_service.get_customer(c.id)

    def test_stale_version(self, db_session, make_customer):
        c = make_customer()
        with pytest.raises(ConflictError):
            customers_service.update_customer(customer_id=c.id, patch={"name": "X"}, expected_version=99)
