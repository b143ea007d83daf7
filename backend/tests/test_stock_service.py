"""
Stock ledger tests: guarded updates, plans, compensation and history.
"""

import random

import pytest

from backoffice.extensions import db
from backoffice.models import StockMovement
from backoffice.services import bill_service, customer_service, parcel_service, stock_service
from backoffice.services.stock_service import InsufficientStockError, StockChange
from backoffice.validation import NotFoundError, ValidationError


class TestNormalizeProductLines:
    def test_repeated_ids_are_summed(self):
        lines = [
            {"product_id": 1, "quantity": 2},
            {"product_id": "1", "quantity": 3},
            {"product_id": 2},
        ]
        assert stock_service.normalize_product_lines(lines) == {1: 5, 2: 1}

    def test_none_means_empty(self):
        assert stock_service.normalize_product_lines(None) == {}

    @pytest.mark.parametrize("line", [
        {"quantity": 1},
        {"product_id": 1, "quantity": 0},
        {"product_id": 1, "quantity": -2},
        {"product_id": 1, "quantity": 1.5},
        {"product_id": "abc", "quantity": 1},
    ])
    def test_rejects_bad_lines(self, line):
        with pytest.raises(ValidationError):
            stock_service.normalize_product_lines([line])

    def test_rejects_non_list(self):
        with pytest.raises(ValidationError):
            stock_service.normalize_product_lines({"product_id": 1})


class TestDiffQuantities:
    def test_unchanged_set_is_empty_plan(self):
        assert stock_service.diff_quantities({1: 2, 2: 1}, {2: 1, 1: 2}) == []

    def test_signed_deltas(self):
        plan = stock_service.diff_quantities({1: 2, 2: 4}, {1: 5, 3: 1})
        assert plan == [StockChange(1, 3), StockChange(2, -4), StockChange(3, 1)]


class TestAdjustStock:
    def test_decrement_writes_movement(self, db_session, make_product, stock_of):
        product = make_product(stock=10)

        stock_service.adjust_stock(product.id, -3, reason="sale", source_type="manual", source_id=9)
        db_session.commit()

        assert stock_of(product.id) == 7
        movement = StockMovement.query.filter_by(product_id=product.id).one()
        assert movement.quantity_delta == -3
        assert movement.stock_after == 7
        assert movement.reason == "sale"
        assert movement.to_dict()["type"] == "stock_out"

    def test_guard_rejects_going_negative(self, db_session, make_product, stock_of):
        product = make_product(stock=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.adjust_stock(product.id, -3, reason="sale")

        assert exc_info.value.details["items"][0]["available"] == 2
        assert exc_info.value.details["items"][0]["requested"] == 3
        db_session.rollback()
        assert stock_of(product.id) == 2
        assert StockMovement.query.count() == 0

    def test_exact_stock_can_be_taken(self, db_session, make_product, stock_of):
        product = make_product(stock=3)
        stock_service.adjust_stock(product.id, -3, reason="sale")
        db_session.commit()
        assert stock_of(product.id) == 0

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(999, -1, reason="sale")


class TestValidateStockPlan:
    def test_reports_every_failing_line(self, db_session, make_product):
        a = make_product(stock=1)
        b = make_product(stock=0)
        c = make_product(stock=10)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.validate_stock_plan([
                StockChange(a.id, 2),
                StockChange(b.id, 1),
                StockChange(c.id, 1),
            ])

        failing = {item["product_id"] for item in exc_info.value.details["items"]}
        assert failing == {a.id, b.id}

    def test_restoring_changes_always_fit(self, db_session, make_product):
        product = make_product(stock=0)
        products = stock_service.validate_stock_plan([StockChange(product.id, -4)])
        assert product.id in products

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.validate_stock_plan([StockChange(12345, 1)])


class TestApplyStockPlan:
    def test_failure_compensates_applied_changes(self, db_session, make_product, stock_of):
        first = make_product(stock=10)
        second = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            stock_service.apply_stock_plan(
                [StockChange(first.id, 2), StockChange(second.id, 5)],
                reason="bill",
                source_type="bill",
                source_id=1,
            )

        # Compensation happened before any rollback
        assert db_session.get(type(first), first.id).stock == 10
        reasons = [m.reason for m in StockMovement.query.filter_by(product_id=first.id).order_by(StockMovement.id)]
        assert reasons == ["bill", "compensation"]

        db_session.rollback()
        assert stock_of(first.id) == 10
        assert stock_of(second.id) == 1

    def test_restores_run_after_consumption(self, db_session, make_product, stock_of):
        product_a = make_product(stock=0)
        product_b = make_product(stock=5)

        applied = stock_service.apply_stock_plan(
            [StockChange(product_a.id, -2), StockChange(product_b.id, 3)],
            reason="customer",
        )
        db_session.commit()

        assert [c.product_id for c in applied] == [product_b.id, product_a.id]
        assert stock_of(product_a.id) == 2
        assert stock_of(product_b.id) == 2

    def test_entries_for_same_product_are_merged(self, db_session, make_product, stock_of):
        product = make_product(stock=5)

        applied = stock_service.apply_stock_plan(
            [StockChange(product.id, 4), StockChange(product.id, -1)],
            reason="parcel",
        )
        db_session.commit()

        assert applied == [StockChange(product.id, 3)]
        assert stock_of(product.id) == 2


def test_list_movements_newest_first(db_session, make_product):
    product = make_product(stock=5)
    stock_service.adjust_stock(product.id, 2, reason="restock")
    stock_service.adjust_stock(product.id, -1, reason="sale")
    db.session.commit()

    movements = stock_service.list_movements(product.id)
    assert [m.reason for m in movements] == ["sale", "restock"]
    assert movements[0].stock_after == 6


def test_random_operations_never_oversell(db_session, make_product, make_seller, stock_of):
    """Mixed bill/customer/parcel traffic keeps stock >= 0 and fully accounted for."""
    rng = random.Random(20240611)
    products = [make_product(stock=rng.randint(0, 6)) for _ in range(3)]
    initial = {p.id: p.stock for p in products}
    seller = make_seller(rate_cents=10)

    bills, customers, parcels = [], [], []
    for step in range(60):
        product = rng.choice(products)
        qty = rng.randint(1, 3)
        action = rng.choice(["bill", "cancel", "customer", "uncustomer", "parcel", "return"])
        try:
            if action == "bill":
                bills.append(bill_service.create_bill(
                    seller_id=seller.id, items=[{"product_id": product.id, "quantity": qty}],
                ).value.id)
            elif action == "cancel" and bills:
                bill_service.cancel_bill(bills.pop(rng.randrange(len(bills))))
            elif action == "customer":
                customers.append(customer_service.create_customer({
                    "name": f"C{step}", "type": "online", "seller_id": seller.id,
                    "products_info": [{"product_id": product.id, "quantity": qty}],
                }).value.id)
            elif action == "uncustomer" and customers:
                customer_service.delete_customer(customers.pop(rng.randrange(len(customers))))
            elif action == "parcel":
                parcels.append(parcel_service.create_parcel({
                    "tracking_number": f"T{step}", "customer_name": "R", "address": "A",
                    "products": [{"product_id": product.id, "quantity": qty}],
                }).id)
            elif action == "return" and parcels:
                parcel_service.update_parcel_status(rng.choice(parcels), "return")
        except InsufficientStockError:
            pass

        for p in products:
            assert stock_of(p.id) >= 0

    for bill_id in bills:
        bill_service.cancel_bill(bill_id)
    for customer_id in customers:
        customer_service.delete_customer(customer_id)
    for parcel_id in parcels:
        parcel_service.delete_parcel(parcel_id)

    assert {p.id: stock_of(p.id) for p in products} == initial
