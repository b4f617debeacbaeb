# Overview: Pytest coverage for recording installment payments.

import pytest

from modaledger.errors import ConflictError, NotFoundError
from modaledger.extensions import db
from modaledger.models import Installment
from modaledger.services import sales_service, settlement_service
from modaledger.services.money import is_settled
from modaledger.services.sales_service import CartItem


@pytest.fixture
def sale(db_session, make_customer, make_product):
    customer = make_customer("Ana")
    product = make_product(price_cents=15000, stock=5)
    return sales_service.create_sale(customer.id, [CartItem(product.id, 2)], installment_count=3)


def _state(sale_id):
    db.session.expire_all()
    rows = db.session.query(Installment).filter_by(sale_id=sale_id).order_by(Installment.number).all()
    return [(i.id, i.amount_paid_cents, i.paid) for i in rows]


class TestRecordPayment:
    def test_same_amount_twice_is_idempotent(self, sale):
        target = sale.installments[0].id
        settlement_service.record_payment(sale.id, target, 4000)
        once = _state(sale.id)
        settlement_service.record_payment(sale.id, target, 4000)
        assert _state(sale.id) == once

    def test_amount_is_absolute_not_added(self, sale):
        target = sale.installments[0].id
        settlement_service.record_payment(sale.id, target, 4000)
        settlement_service.record_payment(sale.id, target, 6000)
        db.session.expire_all()
        assert db.session.get(Installment, target).amount_paid_cents == 6000

    def test_negative_amount_clamps_to_zero(self, sale):
        target = sale.installments[1].id
        settlement_service.record_payment(sale.id, target, 5000)
        updated = settlement_service.record_payment(sale.id, target, -300)
        assert updated.find_installment(target).amount_paid_cents == 0

    def test_overpayment_is_kept_and_paid(self, sale):
        target = sale.installments[0].id
        updated = settlement_service.record_payment(sale.id, target, 12000)
        inst = updated.find_installment(target)
        assert inst.amount_paid_cents == 12000
        assert inst.paid
        assert inst.remaining_cents == 0

    def test_paid_within_tolerance(self, sale):
        target = sale.installments[0].id
        updated = settlement_service.record_payment(sale.id, target, 9995)
        assert updated.find_installment(target).paid
        updated = settlement_service.record_payment(sale.id, target, 9994)
        assert not updated.find_installment(target).paid

    def test_paid_flag_always_matches_amount(self, sale):
        ids = [i.id for i in sale.installments]
        for inst_id, amount in [(ids[0], 10000), (ids[1], 2000), (ids[0], 3000), (ids[2], 9999), (ids[1], 10000)]:
            settlement_service.record_payment(sale.id, inst_id, amount)
            db.session.expire_all()
            for inst in db.session.query(Installment).filter_by(sale_id=sale.id):
                assert inst.paid == is_settled(inst.amount_paid_cents, inst.value_cents)

    def test_other_installments_untouched(self, sale):
        first, second, third = [i.id for i in sale.installments]
        settlement_service.record_payment(sale.id, second, 7000)
        db.session.expire_all()
        assert db.session.get(Installment, first).amount_paid_cents == 0
        assert db.session.get(Installment, first).version_id == 1
        assert db.session.get(Installment, third).version_id == 1
        assert db.session.get(Installment, second).version_id == 2

    def test_sale_level_aggregates(self, sale):
        ids = [i.id for i in sale.installments]
        settlement_service.record_payment(sale.id, ids[0], 10000)
        settlement_service.record_payment(sale.id, ids[1], 10000)
        updated = settlement_service.record_payment(sale.id, ids[2], 9996)
        assert updated.paid_cents == 29996
        assert updated.remaining_cents == 4
        assert updated.is_fully_paid


class TestErrors:
    def test_unknown_sale(self, sale):
        with pytest.raises(NotFoundError):
            settlement_service.record_payment("missing", sale.installments[0].id, 100)

    def test_unknown_installment(self, sale):
        with pytest.raises(NotFoundError):
            settlement_service.record_payment(sale.id, "missing", 100)

    def test_installment_of_another_sale(self, sale, make_customer, make_product):
        other = sales_service.create_sale(
            make_customer("Bia").id, [CartItem(make_product().id, 1)],
        )
        with pytest.raises(NotFoundError):
            settlement_service.record_payment(sale.id, other.installments[0].id, 100)

    def test_stale_expected_version(self, sale):
        target = sale.installments[0].id
        settlement_service.record_payment(sale.id, target, 1000, expected_version=1)
        with pytest.raises(ConflictError):
            settlement_service.record_payment(sale.id, target, 2000, expected_version=1)
        db.session.expire_all()
        assert db.session.get(Installment, target).amount_paid_cents == 1000
