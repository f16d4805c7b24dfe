from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backend.checkout.errors import (
    AmountMismatch,
    CheckoutInProgress,
    EmptyCart,
    GatewayError,
    PaymentNotCompleted,
    PaymentOwnershipMismatch,
    PersistenceFailure,
    StockUnavailable,
    ValidationError,
)
from backend.checkout.stores import Product
from backend.orders.models import ORDER_CONFIRMED, ORDER_PENDING

USER = "test-user"


def _fill_cart(service, *lines):
    for product_id, quantity in lines:
        service.cart.add_item(USER, product_id, quantity)


def test_success_creates_confirmed_order_and_applies_side_effects(checkout_service, db, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()

    order = checkout_service.complete_checkout(USER, reference, address, address)

    assert order.status == ORDER_CONFIRMED
    assert order.payment_reference == reference
    assert order.subtotal == Decimal("19.99")
    assert order.tax == Decimal("1.60")
    assert order.shipping == Decimal("9.99")
    assert order.total == Decimal("31.58")
    assert [(i.product_id, i.quantity, i.price_at_purchase) for i in order.items] == [("p1", 1, Decimal("19.99"))]
    assert db.stock_of("p1") == 9
    assert checkout_service.cart.get_cart_items(USER) == []
    assert order.shipping_address.postal_code == "69001"


def test_unpaid_intent_leaves_everything_untouched(checkout_service, db, gateway, address):
    _fill_cart(checkout_service, ("p1", 2))
    intent = gateway.create_intent(Decimal("53.17"), "usd", {"user_id": USER})

    with pytest.raises(PaymentNotCompleted):
        checkout_service.complete_checkout(USER, intent.id, address, address)

    assert db.stock_of("p1") == 10
    assert len(checkout_service.cart.get_cart_items(USER)) == 1
    assert checkout_service.list_orders(USER) == []


def test_unknown_reference_is_not_completed(checkout_service, address):
    _fill_cart(checkout_service, ("p1", 1))
    with pytest.raises(PaymentNotCompleted):
        checkout_service.complete_checkout(USER, "pi_unknown", address, address)


def test_replay_returns_same_order_without_new_effects(checkout_service, db, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 2), ("p2", 1))
    reference = paid_intent()

    first = checkout_service.complete_checkout(USER, reference, address, address)
    second = checkout_service.complete_checkout(USER, reference, address, address)

    assert second.id == first.id
    assert second.total == first.total
    assert db.stock_of("p1") == 8
    assert db.stock_of("p2") == 4
    assert len(checkout_service.list_orders(USER)) == 1


def test_empty_cart_is_rejected(checkout_service, gateway, address):
    gateway.register("pi_empty", captured_amount=Decimal("10.00"), metadata={"user_id": USER})
    with pytest.raises(EmptyCart):
        checkout_service.complete_checkout(USER, "pi_empty", address, address)


def test_missing_reference_is_a_validation_error(checkout_service, address):
    with pytest.raises(ValidationError):
        checkout_service.complete_checkout(USER, "   ", address, address)


def test_incomplete_address_fails_before_any_gateway_call(checkout_service, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    bad = dict(address, street="  ")
    with pytest.raises(ValidationError) as exc:
        checkout_service.complete_checkout(USER, "pi_x", bad, address)
    assert exc.value.details["field"] == "shippingAddress"
    assert exc.value.details["fields"] == ["street"]
    assert gateway.calls == []


def test_non_object_address_is_rejected(checkout_service, address):
    with pytest.raises(ValidationError):
        checkout_service.complete_checkout(USER, "pi_x", address, "12 rue des Lilas")


def test_captured_amount_mismatch_is_rejected(checkout_service, db, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    gateway.register("pi_short", captured_amount=Decimal("10.00"), metadata={"user_id": USER})

    with pytest.raises(AmountMismatch) as exc:
        checkout_service.complete_checkout(USER, "pi_short", address, address)

    assert exc.value.details == {"captured": "10.00", "expected": "31.58"}
    assert db.stock_of("p1") == 10
    assert checkout_service.list_orders(USER) == []


def test_amount_within_tolerance_is_accepted(checkout_service, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    gateway.register("pi_close", captured_amount=Decimal("31.59"), metadata={"user_id": USER})
    order = checkout_service.complete_checkout(USER, "pi_close", address, address)
    assert order.total == Decimal("31.58")


def test_intent_of_another_user_is_rejected(checkout_service, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    gateway.register("pi_foreign", captured_amount=Decimal("31.58"), metadata={"user_id": "someone-else"})
    with pytest.raises(PaymentOwnershipMismatch):
        checkout_service.complete_checkout(USER, "pi_foreign", address, address)


def test_replay_by_another_user_is_rejected(checkout_service, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()
    checkout_service.complete_checkout(USER, reference, address, address)

    with pytest.raises(PaymentOwnershipMismatch):
        checkout_service.complete_checkout("intruder", reference, address, address)


def test_stock_failure_rolls_back_every_line(checkout_service, db, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 1), ("p3", 2))
    reference = paid_intent()

    with pytest.raises(StockUnavailable) as exc:
        checkout_service.complete_checkout(USER, reference, address, address)

    assert exc.value.details["product_id"] == "p3"
    assert db.stock_of("p1") == 10
    assert db.stock_of("p3") == 1
    assert db.movements == {}
    assert checkout_service.list_orders(USER) == []
    assert checkout_service.ledger.get_order_by_payment_reference(reference) is None
    assert len(checkout_service.cart.get_cart_items(USER)) == 2


def test_order_keeps_price_at_purchase(checkout_service, db, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 1))
    order = checkout_service.complete_checkout(USER, paid_intent(), address, address)

    db.products["p1"] = Product(id="p1", name="Mug", price=Decimal("99.00"), stock=db.stock_of("p1"))

    stored = checkout_service.get_order(order.id)
    assert stored.items[0].price_at_purchase == Decimal("19.99")
    assert stored.total == Decimal("31.58")


def test_cart_changed_during_checkout_keeps_new_lines(checkout_service, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()
    original = checkout_service.catalog.decrement_stock

    def _decrement_and_add(product_id, quantity, order_id):
        # Ajout concurrent pendant l'ajustement du stock
        checkout_service.cart.add_item(USER, "p2", 1)
        return original(product_id, quantity, order_id)

    monkeypatch.setattr(checkout_service.catalog, "decrement_stock", _decrement_and_add)
    checkout_service.complete_checkout(USER, reference, address, address)

    remaining = checkout_service.cart.get_cart_items(USER)
    assert [(i.product_id, i.quantity) for i in remaining] == [("p2", 1)]


def test_finalize_is_retried(checkout_service, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()
    original = checkout_service.ledger.confirm_order
    calls = []

    def _flaky_confirm(order_id):
        calls.append(order_id)
        if len(calls) == 1:
            raise ConnectionError("supabase unreachable")
        return original(order_id)

    monkeypatch.setattr(checkout_service.ledger, "confirm_order", _flaky_confirm)
    order = checkout_service.complete_checkout(USER, reference, address, address)

    assert order.status == ORDER_CONFIRMED
    assert len(calls) == 2


def test_pending_order_is_resumed_after_finalize_failure(checkout_service, db, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 3))
    reference = paid_intent()
    original = checkout_service.ledger.confirm_order

    def _broken_confirm(order_id):
        raise ConnectionError("supabase unreachable")

    monkeypatch.setattr(checkout_service.ledger, "confirm_order", _broken_confirm)
    with pytest.raises(PersistenceFailure):
        checkout_service.complete_checkout(USER, reference, address, address)

    pending = checkout_service.ledger.get_order_by_payment_reference(reference)
    assert pending.status == ORDER_PENDING
    assert db.stock_of("p1") == 7

    # Tentative trop récente: considérée en cours
    monkeypatch.setattr(checkout_service.ledger, "confirm_order", original)
    with pytest.raises(CheckoutInProgress):
        checkout_service.complete_checkout(USER, reference, address, address)

    db.orders[pending.id].created_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    resumed = checkout_service.complete_checkout(USER, reference, address, address)

    assert resumed.id == pending.id
    assert resumed.status == ORDER_CONFIRMED
    assert db.stock_of("p1") == 7
    assert checkout_service.cart.get_cart_items(USER) == []


def test_failed_resume_keeps_paid_order_pending(checkout_service, db, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 2))
    reference = paid_intent()
    original_confirm = checkout_service.ledger.confirm_order
    original_decrement = checkout_service.catalog.decrement_stock

    def _broken_confirm(order_id):
        raise ConnectionError("supabase unreachable")

    monkeypatch.setattr(checkout_service.ledger, "confirm_order", _broken_confirm)
    with pytest.raises(PersistenceFailure):
        checkout_service.complete_checkout(USER, reference, address, address)
    pending = checkout_service.ledger.get_order_by_payment_reference(reference)
    assert db.stock_of("p1") == 8
    assert checkout_service.cart.get_cart_items(USER) == []

    def _broken_decrement(product_id, quantity, order_id):
        raise ConnectionError("supabase unreachable")

    monkeypatch.setattr(checkout_service.ledger, "confirm_order", original_confirm)
    monkeypatch.setattr(checkout_service.catalog, "decrement_stock", _broken_decrement)
    db.orders[pending.id].created_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    with pytest.raises(PersistenceFailure):
        checkout_service.complete_checkout(USER, reference, address, address)

    # Ni restock ni suppression: la commande payée reste reprenable
    kept = checkout_service.ledger.get_order_by_payment_reference(reference)
    assert kept is not None
    assert kept.status == ORDER_PENDING
    assert db.stock_of("p1") == 8

    monkeypatch.setattr(checkout_service.catalog, "decrement_stock", original_decrement)
    resumed = checkout_service.complete_checkout(USER, reference, address, address)
    assert resumed.id == pending.id
    assert resumed.status == ORDER_CONFIRMED
    assert db.stock_of("p1") == 8


def test_captured_currency_must_match_store_currency(checkout_service, db, gateway, address):
    _fill_cart(checkout_service, ("p2", 3))
    gateway.register("pi_jpy", captured_amount=Decimal("81.00"), currency="jpy", metadata={"user_id": USER})

    with pytest.raises(AmountMismatch) as exc:
        checkout_service.complete_checkout(USER, "pi_jpy", address, address)

    assert exc.value.details["captured_currency"] == "jpy"
    assert exc.value.details["expected_currency"] == "usd"
    assert checkout_service.ledger.get_order_by_payment_reference("pi_jpy") is None
    assert db.stock_of("p2") == 5


def test_captured_currency_is_case_insensitive(checkout_service, gateway, address):
    _fill_cart(checkout_service, ("p2", 3))
    gateway.register("pi_upper", captured_amount=Decimal("81.00"), currency="USD", metadata={"user_id": USER})
    assert checkout_service.complete_checkout(USER, "pi_upper", address, address).status == ORDER_CONFIRMED


def test_unknown_captured_amount_is_rejected(checkout_service, db, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    gateway.register("pi_blind", metadata={"user_id": USER})

    with pytest.raises(AmountMismatch):
        checkout_service.complete_checkout(USER, "pi_blind", address, address)
    assert checkout_service.ledger.get_order_by_payment_reference("pi_blind") is None
    assert db.stock_of("p1") == 10


def test_vanished_order_at_confirm_is_persistence_failure(checkout_service, db, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()
    original = checkout_service.ledger.confirm_order

    def _confirm_after_delete(order_id):
        db.orders.pop(order_id, None)
        return original(order_id)

    monkeypatch.setattr(checkout_service.ledger, "confirm_order", _confirm_after_delete)
    with pytest.raises(PersistenceFailure):
        checkout_service.complete_checkout(USER, reference, address, address)


def test_ledger_write_failure_surfaces_as_persistence_failure(checkout_service, db, paid_intent, address, monkeypatch):
    _fill_cart(checkout_service, ("p1", 1))
    reference = paid_intent()

    def _broken_create(order, items):
        raise RuntimeError("disk full")

    monkeypatch.setattr(checkout_service.ledger, "create_order", _broken_create)
    with pytest.raises(PersistenceFailure):
        checkout_service.complete_checkout(USER, reference, address, address)
    assert db.stock_of("p1") == 10


def test_gateway_error_propagates(checkout_service, gateway, address):
    _fill_cart(checkout_service, ("p1", 1))
    gateway.fail_with = "stripe down"
    with pytest.raises(GatewayError):
        checkout_service.complete_checkout(USER, "pi_any", address, address)


def test_quote_rejects_missing_product(checkout_service, db):
    _fill_cart(checkout_service, ("p1", 1))
    del db.products["p1"]
    with pytest.raises(StockUnavailable):
        checkout_service.quote(USER)


def test_list_orders_newest_first(checkout_service, db, paid_intent, address):
    _fill_cart(checkout_service, ("p1", 1))
    first = checkout_service.complete_checkout(USER, paid_intent(), address, address)
    _fill_cart(checkout_service, ("p2", 1))
    second = checkout_service.complete_checkout(USER, paid_intent(), address, address)

    db.orders[first.id].created_at = datetime.now(timezone.utc) - timedelta(days=1)
    assert [o.id for o in checkout_service.list_orders(USER)] == [second.id, first.id]
