"""
Accès données panier (table 'cart_items', une ligne par (user_id, product_id)).
"""
import logging
from typing import Iterable, List, Optional

import backend.infra.supabase_client as supabase_client
from backend.checkout.errors import NotFound, PersistenceFailure
from backend.checkout.stores import CartItem, CartStore

logger = logging.getLogger(__name__)

FOREIGN_KEY_VIOLATION = "23503"

# module backend.cart.repository
class SupabaseCartStore(CartStore):

    def _table(self):
        return supabase_client.get_service_supabase().table("cart_items")

    def get_cart_items(self, user_id: str) -> List[CartItem]:
        try:
            res = (
                self._table()
                .select("product_id, quantity")
                .eq("user_id", user_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.exception("cart.repository.get_cart_items failed user_id=%s", user_id)
            raise PersistenceFailure() from e
        return [
            CartItem(user_id=user_id, product_id=str(r.get("product_id")), quantity=int(r.get("quantity") or 0))
            for r in (res.data or [])
        ]

    def _find(self, user_id: str, product_id: str) -> Optional[CartItem]:
        for item in self.get_cart_items(user_id):
            if item.product_id == str(product_id):
                return item
        return None

    def add_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        existing = self._find(user_id, product_id)
        try:
            if existing:
                new_quantity = existing.quantity + int(quantity)
                (
                    self._table()
                    .update({"quantity": new_quantity})
                    .eq("user_id", user_id)
                    .eq("product_id", product_id)
                    .execute()
                )
            else:
                new_quantity = int(quantity)
                (
                    self._table()
                    .insert({"user_id": user_id, "product_id": product_id, "quantity": new_quantity})
                    .execute()
                )
        except Exception as e:
            if supabase_client.api_error_code(e) == FOREIGN_KEY_VIOLATION:
                raise NotFound("Produit introuvable", product_id=str(product_id)) from e
            logger.exception("cart.repository.add_item failed user_id=%s product_id=%s", user_id, product_id)
            raise PersistenceFailure() from e
        return CartItem(user_id=user_id, product_id=str(product_id), quantity=new_quantity)

    def set_quantity(self, user_id: str, product_id: str, quantity: int) -> Optional[CartItem]:
        if quantity <= 0:
            self.remove_items(user_id, [product_id])
            return None
        if self._find(user_id, product_id) is None:
            raise NotFound("Article absent du panier", product_id=str(product_id))
        try:
            (
                self._table()
                .update({"quantity": int(quantity)})
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .execute()
            )
        except Exception as e:
            logger.exception("cart.repository.set_quantity failed user_id=%s product_id=%s", user_id, product_id)
            raise PersistenceFailure() from e
        return CartItem(user_id=user_id, product_id=str(product_id), quantity=int(quantity))

    def remove_items(self, user_id: str, product_ids: Iterable[str]) -> None:
        ids = [str(p) for p in product_ids]
        if not ids:
            return
        try:
            self._table().delete().eq("user_id", user_id).in_("product_id", ids).execute()
        except Exception as e:
            logger.exception("cart.repository.remove_items failed user_id=%s ids=%s", user_id, ids)
            raise PersistenceFailure() from e

    def clear_cart(self, user_id: str) -> None:
        try:
            self._table().delete().eq("user_id", user_id).execute()
        except Exception as e:
            logger.exception("cart.repository.clear_cart failed user_id=%s", user_id)
            raise PersistenceFailure() from e
