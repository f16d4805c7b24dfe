# module backend.orders.models
"""Modèles commandes (pydantic): adresses, commande, lignes, et corps de requête.
- Sérialisation JSON en camelCase (alias) pour le front, montants Decimal rendus en chaînes.
- Les noms snake_case restent acceptés en entrée (populate_by_name).
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Address(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    name: str = Field(min_length=1)
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    region: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)


class OrderItem(_CamelModel):
    order_id: str
    product_id: str
    quantity: int = Field(gt=0)
    price_at_purchase: Decimal


class Order(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    status: str = ORDER_PENDING
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    payment_reference: str
    shipping_address: Address
    billing_address: Address
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    items: List[OrderItem] = Field(default_factory=list)

    def to_public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CompleteOrderRequest(_CamelModel):
    """Corps de POST /api/v1/orders/complete (les adresses sont validées par le service)."""
    payment_reference: str
    shipping_address: Dict[str, Any]
    billing_address: Dict[str, Any]


class PaymentIntentRequest(_CamelModel):
    """Corps de POST /api/v1/payment-intents. Le montant client est informatif uniquement."""
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
