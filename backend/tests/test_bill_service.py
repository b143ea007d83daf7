"""
Bill manager tests: numbering, stock, balances, commission and payments.
"""

import pytest

from backoffice.models import Bill, Income, Sale
from backoffice.services import bill_service, income_service
from backoffice.services.stock_service import InsufficientStockError
from backoffice.validation import NotFoundError, ValidationError


def _create(seller, *lines, **kwargs):
    items = [{"product_id": product.id, "quantity": quantity} for product, quantity in lines]
    kwargs.setdefault("customer", {"id": 1, "name": "Ayesha"})
    return bill_service.create_bill(seller_id=seller.id, items=items, **kwargs)


class TestCreateBill:
    def test_single_line_bill(self, db_session, make_product, make_seller, stock_of, seller_of):
        product = make_product(stock=10, price_cents=2000)
        seller = make_seller(rate_cents=300)

        result = _create(seller, (product, 3))

        assert result.ok
        bill = result.value
        assert bill.bill_number == "EM-0001"
        assert bill.status == "completed"
        assert bill.subtotal_cents == 6000
        assert stock_of(product.id) == 7

        sales = Sale.query.filter_by(source_type="bill", source_id=bill.id).all()
        assert len(sales) == 1
        assert sales[0].quantity == 3
        assert sales[0].is_customer_commission_sale is False
        assert seller_of(seller.id).commission_cents == 900
        assert seller_of(seller.id).total_commission_cents == 900

    def test_bill_numbers_are_sequential(self, db_session, make_product, make_seller):
        product = make_product(stock=10)
        seller = make_seller()

        numbers = [_create(seller, (product, 1)).value.bill_number for _ in range(3)]
        assert numbers == ["EM-0001", "EM-0002", "EM-0003"]

    def test_commission_uses_total_quantity(self, db_session, make_product, make_seller, seller_of):
        a = make_product(stock=10)
        b = make_product(stock=10)
        seller = make_seller(rate_cents=100)

        result = _create(seller, (a, 2), (b, 5))

        assert seller_of(seller.id).commission_cents == 700
        assert Sale.query.filter_by(source_id=result.value.id).count() == 2

    def test_tier_and_explicit_prices(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000, retail_price_cents=1500)
        seller = make_seller()

        result = bill_service.create_bill(
            seller_id=seller.id,
            items=[
                {"product_id": product.id, "quantity": 1, "selected_price_type": "retail_price"},
                {"product_id": product.id, "quantity": 2, "selected_price_cents": 900},
            ],
        )

        items = result.value.items
        assert [i.selected_price_cents for i in items] == [1500, 900]
        assert result.value.subtotal_cents == 1500 + 1800

    def test_remaining_balance_formula(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=10000)
        seller = make_seller()

        bill = _create(
            seller, (product, 2),
            discount=10,
            discount_type="percentage",
            previous_remaining_cents=5000,
            amount_paid_cents=3000,
        ).value

        assert bill.total_cents == 18000
        assert bill.remaining_amount_cents == 5000 + 18000 - 3000

    def test_remaining_is_floored_at_zero(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()

        bill = _create(seller, (product, 1), amount_paid_cents=5000).value
        assert bill.remaining_amount_cents == 0

    def test_fixed_discount_is_capped(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()

        bill = _create(seller, (product, 1), discount=5000, discount_type="fixed").value
        assert bill.total_cents == 0

    def test_previous_remaining_defaults_to_latest_bill(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()
        customer = {"id": 42, "name": "Bilal"}

        first = _create(seller, (product, 2), customer=customer, amount_paid_cents=500).value
        second = _create(seller, (product, 1), customer=customer).value

        assert first.remaining_amount_cents == 1500
        assert second.previous_remaining_cents == 1500
        assert second.remaining_amount_cents == 2500

    def test_income_recorded_for_named_customer(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()

        bill = _create(seller, (product, 2), amount_paid_cents=500).value

        income = Income.query.filter_by(bill_id=bill.id).one()
        assert income.expected_amount_cents == 2000
        assert income.amount_cents == 500
        assert income.from_name == "Ayesha"

    def test_no_income_without_customer(self, db_session, make_product, make_seller):
        product = make_product(stock=10)
        seller = make_seller()

        bill = _create(seller, (product, 1), customer=None).value
        assert Income.query.filter_by(bill_id=bill.id).count() == 0

    def test_insufficient_stock_changes_nothing(self, db_session, make_product, make_seller, stock_of, seller_of):
        a = make_product(stock=10)
        b = make_product(stock=1)
        seller = make_seller()

        with pytest.raises(InsufficientStockError):
            _create(seller, (a, 2), (b, 2))

        assert stock_of(a.id) == 10
        assert stock_of(b.id) == 1
        assert Bill.query.count() == 0
        assert seller_of(seller.id).commission_cents == 0

        # The number is not burnt by a failed bill
        assert _create(seller, (a, 1)).value.bill_number == "EM-0001"

    def test_seller_is_required(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            bill_service.create_bill(seller_id=None, items=[{"product_id": product.id, "quantity": 1}])

    def test_unknown_seller(self, db_session, make_product):
        product = make_product()
        with pytest.raises(NotFoundError):
            bill_service.create_bill(seller_id=999, items=[{"product_id": product.id, "quantity": 1}])

    def test_unknown_product_is_a_validation_error(self, db_session, make_seller):
        seller = make_seller()
        with pytest.raises(ValidationError):
            bill_service.create_bill(seller_id=seller.id, items=[{"product_id": 999, "quantity": 1}])

    def test_empty_items(self, db_session, make_seller):
        seller = make_seller()
        with pytest.raises(ValidationError):
            bill_service.create_bill(seller_id=seller.id, items=[])

    def test_income_failure_is_reported_not_raised(self, db_session, make_product, make_seller, monkeypatch, seller_of):
        product = make_product(stock=10)
        seller = make_seller(rate_cents=100)

        def _boom(**kwargs):
            raise RuntimeError("income store offline")

        monkeypatch.setattr(income_service, "record_income", _boom)

        result = _create(seller, (product, 2))

        assert not result.ok
        assert result.warnings() == [{"effect": "income", "error": "income store offline"}]
        assert Bill.query.count() == 1
        assert seller_of(seller.id).commission_cents == 200


class TestUpdateBill:
    def _items(self, *lines):
        return [{"product_id": p.id, "quantity": q} for p, q in lines]

    def test_unchanged_items_move_nothing(self, db_session, make_product, make_seller, stock_of, seller_of):
        product = make_product(stock=10)
        seller = make_seller(rate_cents=100)
        bill = _create(seller, (product, 3)).value
        sale_ids = [s.id for s in Sale.query.filter_by(source_id=bill.id)]

        bill_service.update_bill(bill.id, {"items": self._items((product, 3)), "notes": "edited"})

        assert stock_of(product.id) == 7
        assert seller_of(seller.id).commission_cents == 300
        assert [s.id for s in Sale.query.filter_by(source_id=bill.id)] == sale_ids

    def test_quantity_change_applies_delta(self, db_session, make_product, make_seller, stock_of, seller_of):
        product = make_product(stock=10)
        seller = make_seller(rate_cents=100)
        bill = _create(seller, (product, 3)).value

        bill_service.update_bill(bill.id, {"items": self._items((product, 5))})

        assert stock_of(product.id) == 5
        assert seller_of(seller.id).commission_cents == 500
        sales = Sale.query.filter_by(source_type="bill", source_id=bill.id).all()
        assert [s.quantity for s in sales] == [5]

    def test_product_swap(self, db_session, make_product, make_seller, stock_of):
        a = make_product(stock=10)
        b = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (a, 4)).value

        bill_service.update_bill(bill.id, {"items": self._items((b, 2))})

        assert stock_of(a.id) == 10
        assert stock_of(b.id) == 8

    def test_effective_stock_allows_keeping_held_units(self, db_session, make_product, make_seller, stock_of):
        product = make_product(stock=3)
        seller = make_seller()
        bill = _create(seller, (product, 3)).value
        assert stock_of(product.id) == 0

        # 0 in stock + 3 held by this bill covers a new quantity of 3
        bill_service.update_bill(bill.id, {"items": self._items((product, 3))})
        with pytest.raises(InsufficientStockError):
            bill_service.update_bill(bill.id, {"items": self._items((product, 4))})
        assert stock_of(product.id) == 0

    def test_balance_recomputed_with_stored_previous(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()
        bill = _create(seller, (product, 1), previous_remaining_cents=700).value

        updated = bill_service.update_bill(bill.id, {
            "items": self._items((product, 2)),
            "amount_paid_cents": 200,
        }).value

        assert updated.total_cents == 2000
        assert updated.remaining_amount_cents == 700 + 2000 - 200

    def test_omitted_discount_keeps_stored_value(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=1000)
        seller = make_seller()
        bill = _create(seller, (product, 2), discount=300, discount_type="fixed").value
        assert bill.total_cents == 1700

        updated = bill_service.update_bill(bill.id, {"items": self._items((product, 3))}).value

        assert updated.discount == 300
        assert updated.discount_type == "fixed"
        assert updated.total_cents == 2700

        cleared = bill_service.update_bill(bill.id, {"items": self._items((product, 3)), "discount": 0}).value
        assert cleared.total_cents == 3000

    def test_cancelled_bill_cannot_be_edited(self, db_session, make_product, make_seller):
        product = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (product, 1)).value
        bill_service.cancel_bill(bill.id)

        with pytest.raises(ValidationError):
            bill_service.update_bill(bill.id, {"items": self._items((product, 1))})

    def test_missing_bill(self, db_session):
        with pytest.raises(NotFoundError):
            bill_service.update_bill(404, {"items": []})


class TestCancelAndStatus:
    def test_cancel_completed_restores_once(self, db_session, make_product, make_seller, stock_of):
        product = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (product, 4)).value

        bill_service.cancel_bill(bill.id)
        bill_service.cancel_bill(bill.id)

        assert stock_of(product.id) == 10
        assert bill_service.get_bill(bill.id).status == "cancelled"

    def test_cancel_pending_does_not_restore(self, db_session, make_product, make_seller, stock_of):
        product = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (product, 4)).value
        bill_service.update_bill_status(bill.id, "pending")

        bill_service.cancel_bill(bill.id)

        assert stock_of(product.id) == 6

    def test_cancelled_bill_cannot_be_reopened(self, db_session, make_product, make_seller, stock_of):
        product = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (product, 3)).value
        assert stock_of(product.id) == 7

        cancelled = bill_service.cancel_bill(bill.id)
        assert cancelled.stock_held is False
        assert stock_of(product.id) == 10

        with pytest.raises(ValidationError):
            bill_service.update_bill_status(bill.id, "completed")
        bill_service.cancel_bill(bill.id)

        assert stock_of(product.id) == 10
        assert bill_service.get_bill(bill.id).status == "cancelled"

    def test_cancel_restores_only_held_stock(self, db_session, make_product, make_seller, stock_of):
        product = make_product(stock=10)
        seller = make_seller()
        bill = _create(seller, (product, 3)).value

        # A bill whose units already went back (e.g. imported that way) restores nothing
        stored = db_session.get(Bill, bill.id)
        stored.stock_held = False
        db_session.commit()

        bill_service.cancel_bill(bill.id)

        assert stock_of(product.id) == 7

    def test_invalid_status(self, db_session, make_product, make_seller):
        product = make_product()
        bill = _create(make_seller(), (product, 1)).value
        with pytest.raises(ValidationError):
            bill_service.update_bill_status(bill.id, "archived")


class TestPayments:
    def test_payment_reduces_remaining(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=200)
        seller = make_seller()
        bill = _create(seller, (product, 1)).value
        assert bill.remaining_amount_cents == 200

        updated = bill_service.add_bill_payment(bill.id, 50).value

        assert updated.remaining_amount_cents == 150
        assert updated.amount_paid_cents == 50
        payment_income = Income.query.filter_by(bill_id=bill.id, expected_amount_cents=0).one()
        assert payment_income.amount_cents == 50

    def test_overpayment_floors_remaining(self, db_session, make_product, make_seller):
        product = make_product(stock=10, price_cents=200)
        bill = _create(make_seller(), (product, 1)).value

        updated = bill_service.add_bill_payment(bill.id, 500).value
        assert updated.remaining_amount_cents == 0
        assert updated.amount_paid_cents == 500

    @pytest.mark.parametrize("amount", [0, -5, None, "abc"])
    def test_rejects_non_positive_amount(self, db_session, amount):
        with pytest.raises(ValidationError):
            bill_service.add_bill_payment(1, amount)


class TestReads:
    def test_customer_history_stats(self, db_session, make_product, make_seller):
        product = make_product(stock=20, price_cents=1000)
        seller = make_seller()
        customer = {"id": 5, "name": "Sana"}
        _create(seller, (product, 1), customer=customer, amount_paid_cents=1000)
        _create(seller, (product, 3), customer=customer, amount_paid_cents=1000)

        history = bill_service.get_customer_history(5)

        assert history["count"] == 2
        assert history["stats"]["total_purchases"] == 2
        assert history["stats"]["total_amount_cents"] == 4000
        assert history["stats"]["average_order_value_cents"] == 2000
        assert history["stats"]["total_paid_cents"] == 2000
        assert history["stats"]["total_remaining_cents"] == 2000

    def test_last_price_comes_from_sales(self, db_session, make_product, make_seller):
        product = make_product(stock=20, price_cents=1000)
        seller = make_seller()
        bill_service.create_bill(
            seller_id=seller.id,
            customer={"id": 8, "name": "Omar"},
            items=[{"product_id": product.id, "quantity": 1, "selected_price_cents": 850}],
        )

        assert bill_service.get_last_product_price(8, product.id)["unit_price_cents"] == 850
        assert bill_service.get_last_product_price(9, product.id) == {"found": False}

    def test_list_bills_filters_and_paginates(self, db_session, make_product, make_seller):
        product = make_product(stock=20)
        seller = make_seller()
        for _ in range(3):
            _create(seller, (product, 1))
        bill_service.update_bill_status(Bill.query.first().id, "pending")

        page = bill_service.list_bills(page=1, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True

        pending = bill_service.list_bills(status="pending")
        assert pending["count"] == 1

        by_name = bill_service.list_bills(search="ayes")
        assert by_name["count"] == 3
