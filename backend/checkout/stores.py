# module backend.checkout.stores
"""Contrats des collaborateurs du checkout (interfaces abstraites).

L'orchestrateur ne connaît que ces interfaces: les adaptateurs Supabase
(backend.catalog / backend.cart / backend.orders) et les adaptateurs mémoire
(backend.checkout.memory) sont interchangeables sans toucher au service.

Les adaptateurs traduisent leurs erreurs d'infrastructure en PersistenceFailure.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from backend.orders.models import Order, OrderItem


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock: int


@dataclass(frozen=True)
class CartItem:
    user_id: str
    product_id: str
    quantity: int


@dataclass(frozen=True)
class CartLine:
    """Ligne de panier jointe au produit courant (prix/stock lus au moment du checkout)."""
    item: CartItem
    product: Product

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.item.quantity


class CatalogStore(ABC):

    @abstractmethod
    def get_products_by_ids(self, ids: Iterable[str]) -> List[Product]:
        ...

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def decrement_stock(self, product_id: str, quantity: int, order_id: str) -> int:
        """
        Décrément conditionnel atomique (stock >= quantity) côté stockage.
        - Enregistre un mouvement (order_id, product_id): rejouer le même décrément est sans effet.
        - Retourne le nouveau stock; lève StockUnavailable si le stock est insuffisant.
        """

    @abstractmethod
    def restock(self, product_id: str, order_id: str) -> None:
        """Compensation: annule le mouvement (order_id, product_id) s'il existe, sinon ne fait rien."""


class CartStore(ABC):

    @abstractmethod
    def get_cart_items(self, user_id: str) -> List[CartItem]:
        ...

    @abstractmethod
    def add_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        """Ajoute au panier; fusionne la quantité si la ligne existe déjà."""

    @abstractmethod
    def set_quantity(self, user_id: str, product_id: str, quantity: int) -> Optional[CartItem]:
        """Fixe la quantité; une quantité <= 0 supprime la ligne (retourne None)."""

    @abstractmethod
    def remove_items(self, user_id: str, product_ids: Iterable[str]) -> None:
        ...

    @abstractmethod
    def clear_cart(self, user_id: str) -> None:
        ...


class OrderLedger(ABC):

    @abstractmethod
    def create_order(self, order: Order, items: List[OrderItem]) -> Order:
        """
        Écrit l'en-tête et toutes ses lignes en un seul appel transactionnel.
        Lève DuplicatePaymentReference si une commande existe déjà pour order.payment_reference.
        """

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def get_order_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        ...

    @abstractmethod
    def list_orders(self, user_id: str) -> List[Order]:
        """Commandes de l'utilisateur, les plus récentes d'abord."""

    @abstractmethod
    def confirm_order(self, order_id: str) -> Order:
        ...

    @abstractmethod
    def discard_order(self, order_id: str) -> None:
        """Supprime une commande 'pending' et ses lignes (rollback du saga)."""


def quantities_by_product(items: Iterable[CartItem]) -> Dict[str, int]:
    return {item.product_id: item.quantity for item in items}
