from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, StrictInt
from pydantic.alias_generators import to_camel

from backend.cart import service as cart_service
from backend.checkout.dependencies import get_checkout_service
from backend.checkout.service import CheckoutService
from backend.utils.security import require_user

router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class AddToCartRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: str
    quantity: StrictInt = 1


class UpdateQuantityRequest(BaseModel):
    quantity: StrictInt

# module backend.cart.views
@router.get("")
def get_cart(
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    return cart_service.get_cart(service, str(user.get("id")))


@router.post("")
def add_to_cart(
    body: AddToCartRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Ajoute un produit au panier (fusionne avec la ligne existante).
    - Entrée JSON: { "productId": "...", "quantity": 2 }
    - 201 {productId, quantity}; 404 si produit inconnu; 400 si quantité invalide
    """
    item = cart_service.add_to_cart(service, str(user.get("id")), body.product_id, body.quantity)
    return JSONResponse(status_code=201, content=item)


@router.put("/{product_id}")
def update_quantity(
    product_id: str,
    body: UpdateQuantityRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    return cart_service.update_quantity(service, str(user.get("id")), product_id, body.quantity)


@router.delete("/{product_id}", status_code=204)
def remove_from_cart(
    product_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    cart_service.remove_from_cart(service, str(user.get("id")), product_id)
    return Response(status_code=204)


@router.delete("", status_code=204)
def clear_cart(
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    cart_service.clear_cart(service, str(user.get("id")))
    return Response(status_code=204)
