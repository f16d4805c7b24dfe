# module backend.checkout.memory
"""Stockage en mémoire (dev local sans Supabase, tests).

Mêmes contrats que les adaptateurs Supabase. Un verrou unique sérialise les
écritures: le décrément de stock y est un compare-and-set, comme la fonction
SQL decrement_stock côté base.
"""
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from backend.checkout.errors import DuplicatePaymentReference, NotFound, PersistenceFailure, StockUnavailable
from backend.checkout.stores import CartItem, CartStore, CatalogStore, OrderLedger, Product
from backend.checkout.totals import to_decimal
from backend.orders.models import ORDER_CONFIRMED, ORDER_PENDING, Order, OrderItem


class MemoryDatabase:
    """État partagé par les trois adaptateurs mémoire."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.products: Dict[str, Product] = {}
        self.carts: Dict[str, Dict[str, int]] = {}
        self.orders: Dict[str, Order] = {}
        self.orders_by_reference: Dict[str, str] = {}
        # Journal de compensation: (order_id, product_id) -> quantité décrémentée
        self.movements: Dict[Tuple[str, str], int] = {}

    def add_product(self, product_id: str, price, stock: int, name: str = "") -> Product:
        product = Product(id=str(product_id), name=name or f"product-{product_id}", price=to_decimal(price), stock=int(stock))
        with self.lock:
            self.products[product.id] = product
        return product

    def stock_of(self, product_id: str) -> int:
        with self.lock:
            return self.products[str(product_id)].stock


class MemoryCatalogStore(CatalogStore):

    def __init__(self, db: MemoryDatabase) -> None:
        self.db = db

    def get_products_by_ids(self, ids: Iterable[str]) -> List[Product]:
        with self.db.lock:
            return [self.db.products[str(i)] for i in ids if str(i) in self.db.products]

    def get_product(self, product_id: str) -> Optional[Product]:
        with self.db.lock:
            return self.db.products.get(str(product_id))

    def decrement_stock(self, product_id: str, quantity: int, order_id: str) -> int:
        key = (order_id, str(product_id))
        with self.db.lock:
            product = self.db.products.get(str(product_id))
            if product is None:
                raise StockUnavailable("Produit indisponible", product_id=str(product_id))
            if key in self.db.movements:
                return product.stock
            if product.stock < quantity:
                raise StockUnavailable(
                    "Stock insuffisant",
                    product_id=product.id,
                    requested=quantity,
                    available=product.stock,
                )
            updated = Product(id=product.id, name=product.name, price=product.price, stock=product.stock - quantity)
            self.db.products[product.id] = updated
            self.db.movements[key] = quantity
            return updated.stock

    def restock(self, product_id: str, order_id: str) -> None:
        key = (order_id, str(product_id))
        with self.db.lock:
            quantity = self.db.movements.pop(key, None)
            if quantity is None:
                return
            product = self.db.products.get(str(product_id))
            if product is not None:
                self.db.products[product.id] = Product(
                    id=product.id, name=product.name, price=product.price, stock=product.stock + quantity
                )


class MemoryCartStore(CartStore):

    def __init__(self, db: MemoryDatabase) -> None:
        self.db = db

    def get_cart_items(self, user_id: str) -> List[CartItem]:
        with self.db.lock:
            cart = self.db.carts.get(user_id, {})
            return [CartItem(user_id=user_id, product_id=pid, quantity=qty) for pid, qty in cart.items()]

    def add_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        with self.db.lock:
            if str(product_id) not in self.db.products:
                raise NotFound("Produit introuvable", product_id=str(product_id))
            cart = self.db.carts.setdefault(user_id, {})
            cart[str(product_id)] = cart.get(str(product_id), 0) + int(quantity)
            return CartItem(user_id=user_id, product_id=str(product_id), quantity=cart[str(product_id)])

    def set_quantity(self, user_id: str, product_id: str, quantity: int) -> Optional[CartItem]:
        with self.db.lock:
            cart = self.db.carts.setdefault(user_id, {})
            if quantity <= 0:
                cart.pop(str(product_id), None)
                return None
            if str(product_id) not in cart:
                raise NotFound("Article absent du panier", product_id=str(product_id))
            cart[str(product_id)] = int(quantity)
            return CartItem(user_id=user_id, product_id=str(product_id), quantity=int(quantity))

    def remove_items(self, user_id: str, product_ids: Iterable[str]) -> None:
        with self.db.lock:
            cart = self.db.carts.get(user_id, {})
            for pid in product_ids:
                cart.pop(str(pid), None)

    def clear_cart(self, user_id: str) -> None:
        with self.db.lock:
            self.db.carts.pop(user_id, None)


class MemoryOrderLedger(OrderLedger):

    def __init__(self, db: MemoryDatabase) -> None:
        self.db = db

    def create_order(self, order: Order, items: List[OrderItem]) -> Order:
        with self.db.lock:
            if order.payment_reference in self.db.orders_by_reference:
                raise DuplicatePaymentReference(order.payment_reference)
            stored = order.model_copy(update={"items": [i.model_copy() for i in items]}, deep=True)
            self.db.orders[stored.id] = stored
            self.db.orders_by_reference[stored.payment_reference] = stored.id
            return stored.model_copy(deep=True)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self.db.lock:
            order = self.db.orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def get_order_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        with self.db.lock:
            order_id = self.db.orders_by_reference.get(payment_reference)
            return self.get_order(order_id) if order_id else None

    def list_orders(self, user_id: str) -> List[Order]:
        with self.db.lock:
            orders = [o.model_copy(deep=True) for o in self.db.orders.values() if o.user_id == user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def confirm_order(self, order_id: str) -> Order:
        with self.db.lock:
            order = self.db.orders.get(order_id)
            if order is None:
                raise PersistenceFailure("Commande disparue avant confirmation", order_id=order_id)
            order.status = ORDER_CONFIRMED
            return order.model_copy(deep=True)

    def discard_order(self, order_id: str) -> None:
        with self.db.lock:
            order = self.db.orders.get(order_id)
            if order is None or order.status != ORDER_PENDING:
                return
            del self.db.orders[order_id]
            self.db.orders_by_reference.pop(order.payment_reference, None)


def memory_stores(db: Optional[MemoryDatabase] = None):
    """Construit (catalog, cart, ledger) sur une même MemoryDatabase."""
    db = db or MemoryDatabase()
    return MemoryCatalogStore(db), MemoryCartStore(db), MemoryOrderLedger(db)
