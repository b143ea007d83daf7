"""
Parcel tests: units are held while a parcel is out and come back exactly once.
"""

import pytest

from backoffice.models import Parcel, StockMovement
from backoffice.services import parcel_service
from backoffice.services.parcel_service import DuplicateTrackingNumberError
from backoffice.services.stock_service import InsufficientStockError
from backoffice.validation import NotFoundError, ValidationError


def _payload(tracking="TRK-1", *lines, **fields):
    payload = {
        "tracking_number": tracking,
        "customer_name": "Rida",
        "address": "12 Mall Road",
        "products": [{"product_id": p.id, "quantity": q} for p, q in lines],
    }
    payload.update(fields)
    return payload


class TestCreate:
    def test_consumes_all_lines(self, db_session, make_product, stock_of):
        a = make_product(stock=5)
        b = make_product(stock=5)

        parcel = parcel_service.create_parcel(_payload("TRK-1", (a, 2), (b, 1)))

        assert parcel.status == "processing"
        assert parcel.payment_status == "unpaid"
        assert parcel.stock_released is False
        assert stock_of(a.id) == 3
        assert stock_of(b.id) == 4

    def test_legacy_single_product_form(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        payload = _payload("TRK-1")
        del payload["products"]
        payload.update({"product_id": product.id, "quantity": 2})

        parcel = parcel_service.create_parcel(payload)

        assert parcel.quantities() == {product.id: 2}
        assert stock_of(product.id) == 3

    def test_created_as_return_takes_nothing(self, db_session, make_product, stock_of):
        product = make_product(stock=0)

        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 3), status="return"))

        assert parcel.stock_released is True
        assert stock_of(product.id) == 0

    def test_insufficient_stock(self, db_session, make_product, stock_of):
        a = make_product(stock=5)
        b = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            parcel_service.create_parcel(_payload("TRK-1", (a, 1), (b, 2)))

        assert stock_of(a.id) == 5
        assert Parcel.query.count() == 0

    def test_duplicate_tracking_number(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel_service.create_parcel(_payload("TRK-1", (product, 1)))

        with pytest.raises(DuplicateTrackingNumberError):
            parcel_service.create_parcel(_payload("TRK-1", (product, 1)))

        assert stock_of(product.id) == 4

    def test_requires_products(self, db_session):
        with pytest.raises(ValidationError):
            parcel_service.create_parcel(_payload("TRK-1"))

    def test_unknown_product(self, db_session):
        payload = _payload("TRK-1")
        payload["products"] = [{"product_id": 999, "quantity": 1}]
        with pytest.raises(NotFoundError):
            parcel_service.create_parcel(payload)

    def test_invalid_status(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            parcel_service.create_parcel(_payload("TRK-1", (product, 1), status="lost"))


class TestStatusTransitions:
    def test_return_restores_once(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))

        parcel_service.update_parcel_status(parcel.id, "return")
        parcel_service.update_parcel_status(parcel.id, "return")
        parcel_service.update_parcel(parcel.id, {"status": "return", "notes": "again"})

        assert stock_of(product.id) == 5
        reasons = [m.reason for m in StockMovement.query.order_by(StockMovement.id)]
        assert reasons == ["parcel", "parcel_return"]

    def test_leaving_return_consumes_again(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))
        parcel_service.update_parcel_status(parcel.id, "return")

        updated = parcel_service.update_parcel_status(parcel.id, "processing")

        assert updated.stock_released is False
        assert stock_of(product.id) == 3

    def test_leaving_return_checks_stock(self, db_session, make_product, stock_of):
        product = make_product(stock=1)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 3), status="return"))

        with pytest.raises(InsufficientStockError):
            parcel_service.update_parcel_status(parcel.id, "delivered")

        assert stock_of(product.id) == 1
        assert parcel_service.get_parcel(parcel.id).status == "return"

    def test_delivered_keeps_units_out(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))

        parcel_service.update_parcel_status(parcel.id, "delivered", "paid")

        assert stock_of(product.id) == 3
        assert parcel_service.get_parcel(parcel.id).payment_status == "paid"

    def test_status_update_requires_a_field(self, db_session):
        with pytest.raises(ValidationError):
            parcel_service.update_parcel_status(1)


class TestEditAndDelete:
    def test_product_delta_only(self, db_session, make_product, stock_of):
        a = make_product(stock=5)
        b = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (a, 2)))

        parcel_service.update_parcel(parcel.id, {"products": [
            {"product_id": a.id, "quantity": 3},
            {"product_id": b.id, "quantity": 1},
        ]})

        assert stock_of(a.id) == 2
        assert stock_of(b.id) == 4

    def test_edit_while_returned_moves_nothing(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))
        parcel_service.update_parcel_status(parcel.id, "return")

        parcel_service.update_parcel(parcel.id, {"products": [{"product_id": product.id, "quantity": 4}]})

        assert stock_of(product.id) == 5

    def test_rename_tracking_to_existing(self, db_session, make_product):
        product = make_product(stock=5)
        parcel_service.create_parcel(_payload("TRK-1", (product, 1)))
        second = parcel_service.create_parcel(_payload("TRK-2", (product, 1)))

        with pytest.raises(DuplicateTrackingNumberError):
            parcel_service.update_parcel(second.id, {"tracking_number": "TRK-1"})

    def test_delete_restores_held_units(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))

        parcel_service.delete_parcel(parcel.id)

        assert stock_of(product.id) == 5
        assert Parcel.query.count() == 0

    def test_delete_after_return_restores_nothing(self, db_session, make_product, stock_of):
        product = make_product(stock=5)
        parcel = parcel_service.create_parcel(_payload("TRK-1", (product, 2)))
        parcel_service.update_parcel_status(parcel.id, "return")

        parcel_service.delete_parcel(parcel.id)

        assert stock_of(product.id) == 5

    def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            parcel_service.delete_parcel(42)


def test_list_parcels_filters(db_session, make_product):
    product = make_product(stock=10)
    parcel_service.create_parcel(_payload("LHR-100", (product, 1)))
    parcel_service.create_parcel(_payload("KHI-200", (product, 1), payment_status="paid"))

    assert [p.tracking_number for p in parcel_service.list_parcels(tracking="lhr")] == ["LHR-100"]
    assert [p.tracking_number for p in parcel_service.list_parcels(payment_status="paid")] == ["KHI-200"]
    assert parcel_service.list_parcels(status="return") == []
