# Overview: Pytest coverage for backup export/restore, integrity repair and wipe.

from datetime import datetime

import pytest

from modaledger.errors import ConfirmationRequiredError, ValidationError
from modaledger.extensions import db
from modaledger.models import Customer, Installment, Product, Sale
from modaledger.services import backup_service, integrity_service, sales_service, settlement_service
from modaledger.services.sales_service import CartItem


def _backup(**overrides):
    data = {
        "products": [
            {"id": "p-1", "sku": "BS-VE-PR-01-m", "name": "Vestido", "category": "Vestidos",
             "size": "m", "color": "Preto", "price": 150, "cost": 80.5, "stock": 3},
        ],
        "customers": [{"id": "c-1", "name": "Ana", "phone": "11999990000", "email": ""}],
        "sales": [
            {
                "id": "s-1",
                "customerId": "c-1",
                "customerName": "Ana",
                "date": "2024-01-01T10:00:00.000Z",
                "total": 300,
                "discount": 0,
                "items": [{"productId": "p-1", "productName": "Vestido", "quantity": 2, "price": 150}],
                "installments": [
                    {"id": "i-1", "number": 1, "dueDate": "2024-02-01", "value": 100, "amountPaid": 100, "paid": True},
                    {"id": "i-2", "number": 2, "dueDate": "2024-03-01", "value": 100, "amountPaid": 40, "paid": False},
                    {"id": "i-3", "number": 3, "dueDate": "2024-04-01", "value": 100, "amountPaid": 0, "paid": False},
                ],
            }
        ],
        "exportedAt": "2024-05-01T00:00:00Z",
        "system": "ModaGestão AI",
    }
    data.update(overrides)
    return data


class TestExport:
    def test_export_shape(self, db_session, make_customer, make_product):
        customer = make_customer("Ana")
        product = make_product(price_cents=15000, stock=5)
        sale = sales_service.create_sale(customer.id, [CartItem(product.id, 2)], installment_count=3, now=datetime(2024, 1, 1))
        settlement_service.record_payment(sale.id, sale.installments[1].id, 4000)

        data = backup_service.export_backup()
        assert data["system"] == "ModaGestão AI"
        assert data["exportedAt"].endswith("Z")
        assert data["products"][0]["price"] == 150.0
        assert data["products"][0]["stock"] == 3

        (doc,) = data["sales"]
        assert doc["customerName"] == "Ana"
        assert doc["total"] == 300.0
        assert doc["items"][0]["productId"] == product.id
        assert [i["dueDate"] for i in doc["installments"]] == ["2024-02-01", "2024-03-01", "2024-04-01"]
        assert [i["amountPaid"] for i in doc["installments"]] == [0.0, 40.0, 0.0]
        assert [i["paid"] for i in doc["installments"]] == [False, False, False]


class TestRestore:
    def test_restore_replaces_everything(self, db_session, make_customer, make_product):
        make_customer("Antiga")
        make_product(sku="OLD")

        result = backup_service.restore_backup(_backup(), confirm=True)

        assert result["restored"] == {"products": 1, "customers": 1, "sales": 1}
        assert result["replaced"]["products"] == 1
        db.session.expire_all()
        assert [c.name for c in db.session.query(Customer).all()] == ["Ana"]
        product = db.session.get(Product, "p-1")
        assert product.price_cents == 15000
        assert product.cost_cents == 8050
        sale = db.session.get(Sale, "s-1")
        assert [i.amount_paid_cents for i in sale.installments] == [10000, 4000, 0]
        assert sale.paid_cents == 14000

    def test_round_trip(self, db_session):
        backup_service.restore_backup(_backup(), confirm=True)
        exported = backup_service.export_backup()
        backup_service.restore_backup(exported, confirm=True)
        db.session.expire_all()
        sale = db.session.get(Sale, "s-1")
        assert [i.id for i in sale.installments] == ["i-1", "i-2", "i-3"]
        assert sale.total_cents == 30000

    def test_wrong_signature_is_rejected(self, db_session, make_customer):
        make_customer("Mantida")
        with pytest.raises(ValidationError):
            backup_service.restore_backup(_backup(system="Outro App"), confirm=True)
        assert db.session.query(Customer).count() == 1

    def test_confirmation_required(self, db_session, make_customer):
        make_customer("Mantida")
        with pytest.raises(ConfirmationRequiredError):
            backup_service.restore_backup(_backup())
        assert db.session.query(Customer).count() == 1

    def test_legacy_installments_are_migrated(self, db_session):
        legacy = _backup()
        for inst in legacy["sales"][0]["installments"]:
            inst.pop("amountPaid")
        legacy["sales"][0]["installments"][0]["paid"] = True
        legacy["sales"][0]["installments"][1]["paid"] = False

        result = backup_service.restore_backup(legacy, confirm=True)

        assert result["integrity"]["migrated_installments"] == 3
        db.session.expire_all()
        assert [i.amount_paid_cents for i in db.session.get(Sale, "s-1").installments] == [10000, 0, 0]

    def test_inconsistent_paid_flag_is_reported_not_fatal(self, db_session):
        data = _backup()
        data["sales"][0]["installments"][1]["paid"] = True

        result = backup_service.restore_backup(data, confirm=True)

        issues = result["integrity"]["issues"]
        assert len(issues) == 1
        assert issues[0]["installment_id"] == "i-2"
        db.session.expire_all()
        assert db.session.get(Installment, "i-2").paid is False

    def test_installment_sum_divergence_is_absorbed_by_last(self, db_session):
        data = _backup()
        data["sales"][0]["installments"][2]["value"] = 90

        result = backup_service.restore_backup(data, confirm=True)

        assert len(result["integrity"]["issues"]) == 1
        db.session.expire_all()
        assert db.session.get(Installment, "i-3").value_cents == 10000

    def test_duplicate_skus_are_rejected(self, db_session):
        data = _backup()
        data["products"].append(dict(data["products"][0], id="p-2"))
        with pytest.raises(ValidationError):
            backup_service.restore_backup(data, confirm=True)


class TestWipe:
    def test_requires_typed_confirmation(self, db_session, make_customer):
        make_customer()
        with pytest.raises(ConfirmationRequiredError):
            backup_service.wipe_all("deletar")
        assert db.session.query(Customer).count() == 1

    def test_wipe_removes_all_collections(self, db_session, make_customer, make_product):
        customer = make_customer()
        product = make_product()
        sales_service.create_sale(customer.id, [CartItem(product.id, 1)])

        result = backup_service.wipe_all("DELETAR")

        assert result["removed"] == {"sales": 1, "products": 1, "customers": 1}
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Installment).count() == 0
        assert db.session.query(Product).count() == 0


class TestLedgerCheck:
    def test_divergent_sale_is_fixed(self, db_session, make_customer, make_product):
        sale = sales_service.create_sale(make_customer().id, [CartItem(make_product(price_cents=10000).id, 1)], installment_count=2)
        sale.installments[1].value_cents = 4000
        db.session.commit()

        dry = integrity_service.check_ledger(fix=False)
        assert len(dry.issues) == 1
        db.session.expire_all()
        assert db.session.get(Sale, sale.id).installments[1].value_cents == 4000

        report = integrity_service.check_ledger()
        assert len(report.issues) == 1
        db.session.expire_all()
        assert db.session.get(Sale, sale.id).installments[1].value_cents == 5000

    def test_clean_ledger(self, db_session, make_customer, make_product):
        sales_service.create_sale(make_customer().id, [CartItem(make_product().id, 1)], installment_count=3)
        report = integrity_service.check_ledger()
        assert report.issues == []
        assert report.checked_sales == 1
