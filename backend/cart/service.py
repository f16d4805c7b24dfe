"""
Cas d'usage 'cart': lecture et mutations du panier serveur de l'utilisateur.
Les lignes sont jointes au produit courant (prix et stock lus au moment de l'appel).
"""
from typing import Any, Dict, List

from backend.checkout.errors import NotFound, ValidationError
from backend.checkout.service import CheckoutService
from backend.checkout.stores import CartItem


def _check_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("quantity doit être positive", field="quantity")


def _item_to_public(item: CartItem) -> Dict[str, Any]:
    return {"productId": item.product_id, "quantity": item.quantity}


def get_cart(service: CheckoutService, user_id: str) -> Dict[str, Any]:
    """Panier courant: {items: [{productId, name, unitPrice, quantity, lineTotal}], count}."""
    items = service.store_call(service.cart.get_cart_items, user_id)
    products = {p.id: p for p in service.store_call(service.catalog.get_products_by_ids, [i.product_id for i in items])}
    lines: List[Dict[str, Any]] = []
    for item in items:
        product = products.get(item.product_id)
        lines.append({
            "productId": item.product_id,
            "name": product.name if product else None,
            "unitPrice": str(product.price) if product else None,
            "quantity": item.quantity,
            "lineTotal": str(product.price * item.quantity) if product else None,
        })
    return {"items": lines, "count": sum(i.quantity for i in items)}


def add_to_cart(service: CheckoutService, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    _check_positive(quantity)
    if service.store_call(service.catalog.get_product, product_id) is None:
        raise NotFound("Produit introuvable", product_id=str(product_id))
    item = service.store_call(service.cart.add_item, user_id, str(product_id), quantity)
    return _item_to_public(item)


def update_quantity(service: CheckoutService, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    """Fixe la quantité; une quantité <= 0 retire la ligne (réponse {productId, quantity: 0, removed: true})."""
    item = service.store_call(service.cart.set_quantity, user_id, str(product_id), quantity)
    if item is None:
        return {"productId": str(product_id), "quantity": 0, "removed": True}
    return _item_to_public(item)


def remove_from_cart(service: CheckoutService, user_id: str, product_id: str) -> None:
    service.store_call(service.cart.remove_items, user_id, [str(product_id)])


def clear_cart(service: CheckoutService, user_id: str) -> None:
    service.store_call(service.cart.clear_cart, user_id)
