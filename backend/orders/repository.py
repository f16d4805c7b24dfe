"""
Accès données commandes (tables 'orders' et 'order_items').
- create_order passe par la fonction SQL create_order: en-tête + lignes dans une seule transaction.
- Unicité de payment_reference garantie par la base (violation 23505 -> DuplicatePaymentReference).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import backend.infra.supabase_client as supabase_client
from backend.checkout.errors import DuplicatePaymentReference, PersistenceFailure
from backend.checkout.stores import OrderLedger
from backend.orders.models import ORDER_CONFIRMED, ORDER_PENDING, Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_SELECT = "*, order_items(order_id, product_id, quantity, price_at_purchase)"

# module backend.orders.repository
def _row_to_order(row: Dict[str, Any]) -> Order:
    order = Order(
        id=str(row.get("id")),
        user_id=row.get("user_id") or "",
        status=row.get("status") or ORDER_PENDING,
        subtotal=row.get("subtotal") or "0",
        tax=row.get("tax") or "0",
        shipping=row.get("shipping") or "0",
        total=row.get("total") or "0",
        payment_reference=row.get("payment_reference") or "",
        shipping_address=row.get("shipping_address") or {},
        billing_address=row.get("billing_address") or {},
        created_at=row.get("created_at") or datetime.now(timezone.utc),
        items=[
            OrderItem(
                order_id=str(i.get("order_id") or row.get("id")),
                product_id=str(i.get("product_id")),
                quantity=int(i.get("quantity") or 0),
                price_at_purchase=i.get("price_at_purchase") or "0",
            )
            for i in (row.get("order_items") or [])
        ],
    )
    if order.created_at.tzinfo is None:
        order.created_at = order.created_at.replace(tzinfo=timezone.utc)
    return order

def _order_payload(order: Order, items: List[OrderItem]) -> Dict[str, Any]:
    header = order.model_dump(mode="json", exclude={"items"})
    return {
        "p_order": header,
        "p_items": [i.model_dump(mode="json") for i in items],
    }


class SupabaseOrderLedger(OrderLedger):

    def _client(self):
        return supabase_client.get_service_supabase()

    def _select_one(self, column: str, value: str) -> Optional[Order]:
        try:
            res = (
                self._client()
                .table("orders")
                .select(ORDER_SELECT)
                .eq(column, value)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("orders.repository.select failed %s=%s", column, value)
            raise PersistenceFailure() from e
        rows = res.data or []
        return _row_to_order(rows[0]) if rows else None

    def create_order(self, order: Order, items: List[OrderItem]) -> Order:
        try:
            self._client().rpc("create_order", _order_payload(order, items)).execute()
        except Exception as e:
            if supabase_client.api_error_code(e) == supabase_client.UNIQUE_VIOLATION:
                raise DuplicatePaymentReference(order.payment_reference) from e
            logger.exception("orders.repository.create_order failed reference=%s", order.payment_reference)
            raise PersistenceFailure() from e
        created = self._select_one("id", order.id)
        if created is None:
            raise PersistenceFailure("Commande non relue après écriture", order_id=order.id)
        return created

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._select_one("id", order_id)

    def get_order_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        return self._select_one("payment_reference", payment_reference)

    def list_orders(self, user_id: str) -> List[Order]:
        try:
            res = (
                self._client()
                .table("orders")
                .select(ORDER_SELECT)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.exception("orders.repository.list_orders failed user_id=%s", user_id)
            raise PersistenceFailure() from e
        return [_row_to_order(r) for r in (res.data or [])]

    def confirm_order(self, order_id: str) -> Order:
        try:
            self._client().table("orders").update({"status": ORDER_CONFIRMED}).eq("id", order_id).execute()
        except Exception as e:
            logger.exception("orders.repository.confirm_order failed order_id=%s", order_id)
            raise PersistenceFailure() from e
        order = self._select_one("id", order_id)
        if order is None:
            raise PersistenceFailure("Commande disparue avant confirmation", order_id=order_id)
        return order

    def discard_order(self, order_id: str) -> None:
        # order_items supprimées en cascade (FK on delete cascade)
        try:
            (
                self._client()
                .table("orders")
                .delete()
                .eq("id", order_id)
                .eq("status", ORDER_PENDING)
                .execute()
            )
        except Exception as e:
            logger.exception("orders.repository.discard_order failed order_id=%s", order_id)
            raise PersistenceFailure() from e
