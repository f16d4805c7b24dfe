"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le port passerelle, ses adaptateurs (Stripe, factice) et la création de PaymentIntent.
"""

from .gateway import INTENT_SUCCEEDED, IntentStatus, PaymentGateway, PaymentIntent
from .fake_gateway import FakeGateway
from .stripe_client import StripeGateway, require_stripe, create_payment_intent, retrieve_payment_intent

__all__ = [
    # port
    "INTENT_SUCCEEDED",
    "IntentStatus",
    "PaymentGateway",
    "PaymentIntent",
    # adaptateurs
    "FakeGateway",
    "StripeGateway",
    # stripe
    "require_stripe",
    "create_payment_intent",
    "retrieve_payment_intent",
]
