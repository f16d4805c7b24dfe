"""
Accès données catalogue (table 'products') pour le checkout.
- Lecture prix/stock.
- Décrément conditionnel et compensation via les fonctions SQL decrement_stock / restock
  (supabase/migrations/0001_checkout.sql): une seule instruction gardée côté base, jamais un
  read-modify-write depuis l'application.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import backend.infra.supabase_client as supabase_client
from backend.checkout.errors import PersistenceFailure, StockUnavailable
from backend.checkout.stores import CatalogStore, Product
from backend.checkout.totals import to_decimal

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id, name, price, stock"

# module backend.catalog.repository
def _row_to_product(row: Dict[str, Any]) -> Product:
    return Product(
        id=str(row.get("id")),
        name=row.get("name") or "",
        price=to_decimal(row.get("price") or "0"),
        stock=int(row.get("stock") or 0),
    )


class SupabaseCatalogStore(CatalogStore):

    def get_products_by_ids(self, ids: Iterable[str]) -> List[Product]:
        ids = [str(i) for i in ids]
        if not ids:
            return []
        try:
            res = (
                supabase_client.get_service_supabase()
                .table("products")
                .select(PRODUCT_COLUMNS)
                .in_("id", ids)
                .execute()
            )
        except Exception as e:
            logger.exception("catalog.repository.get_products_by_ids failed ids=%s", ids)
            raise PersistenceFailure() from e
        return [_row_to_product(r) for r in (res.data or [])]

    def get_product(self, product_id: str) -> Optional[Product]:
        products = self.get_products_by_ids([product_id])
        return products[0] if products else None

    def decrement_stock(self, product_id: str, quantity: int, order_id: str) -> int:
        try:
            res = (
                supabase_client.get_service_supabase()
                .rpc("decrement_stock", {"p_product_id": product_id, "p_quantity": quantity, "p_order_id": order_id})
                .execute()
            )
        except Exception as e:
            logger.exception("catalog.repository.decrement_stock failed product_id=%s order_id=%s", product_id, order_id)
            raise PersistenceFailure() from e
        new_stock = res.data
        # -1: stock insuffisant ou produit inconnu (aucune ligne mise à jour)
        if new_stock is None or int(new_stock) < 0:
            raise StockUnavailable("Stock insuffisant", product_id=str(product_id), requested=quantity)
        return int(new_stock)

    def restock(self, product_id: str, order_id: str) -> None:
        try:
            (
                supabase_client.get_service_supabase()
                .rpc("restock", {"p_product_id": product_id, "p_order_id": order_id})
                .execute()
            )
        except Exception as e:
            logger.exception("catalog.repository.restock failed product_id=%s order_id=%s", product_id, order_id)
            raise PersistenceFailure() from e
