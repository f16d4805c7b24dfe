from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.checkout.dependencies import get_checkout_service
from backend.checkout.service import CheckoutService
from backend.utils.security import require_user

router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

# module backend.checkout.views
@router.get("/quote")
def get_quote(
    user: Dict[str, Any] = Depends(require_user),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """
    Devis du panier courant (mêmes règles que la confirmation).
    Réponse: { "lines": [{productId, name, unitPrice, quantity, lineTotal}], "totals": {...}, "currency": "usd" }
    """
    quote = service.quote(str(user.get("id")))
    return {
        "lines": [
            {
                "productId": line.product.id,
                "name": line.product.name,
                "unitPrice": str(line.product.price),
                "quantity": line.item.quantity,
                "lineTotal": str(line.line_total),
            }
            for line in quote.lines
        ],
        "totals": quote.totals.as_dict(),
        "currency": service.currency,
    }
