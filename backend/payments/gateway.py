# module backend.payments.gateway
"""
Port passerelle de paiement.
- create_intent: crée un PaymentIntent pour un montant (Decimal) et une devise.
- get_intent_status: lit le statut terminal d'un PaymentIntent et le montant capturé.
Implémentations: StripeGateway (production), FakeGateway (dev/tests).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

INTENT_SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class IntentStatus:
    id: str
    status: str
    captured_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED


class PaymentGateway(ABC):

    @abstractmethod
    def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        ...

    @abstractmethod
    def get_intent_status(self, intent_id: str) -> IntentStatus:
        ...
