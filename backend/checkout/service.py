"""Cas d'usage 'checkout': transforme un panier payé en commande durable.

Orchestration (saga avec journal de compensation, clé = payment_reference):
  0) valide les adresses, puis reprend une commande existante pour la même référence (idempotence)
  1) vérifie le paiement auprès de la passerelle (statut 'succeeded', propriétaire)
  2) charge le panier joint aux produits courants
  3) calcule les totaux côté serveur et les compare au montant capturé
  4) écrit la commande 'pending' et ses lignes (un seul appel au ledger)
  5) décrémente le stock (décrément conditionnel atomique, journalisé par commande)
  6) vide le panier (re-validation du snapshot) puis confirme la commande

Échec à l'étape 5: compensation (restock + suppression de la commande), sauf en reprise où
la commande reste 'pending'.
Échec à l'étape 6: tentatives bornées; sinon la commande reste 'pending' et un nouvel
appel avec la même référence reprend là où la tentative précédente s'est arrêtée.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from backend.checkout.errors import (
    AmountMismatch,
    CheckoutError,
    CheckoutInProgress,
    DuplicatePaymentReference,
    EmptyCart,
    PaymentNotCompleted,
    PaymentOwnershipMismatch,
    PersistenceFailure,
    StockUnavailable,
    ValidationError,
)
from backend.checkout.stores import CartLine, CartStore, CatalogStore, OrderLedger, quantities_by_product
from backend.checkout.totals import Totals, TotalsPolicy
from backend.orders.models import ORDER_CONFIRMED, Address, Order, OrderItem
from backend.payments.gateway import IntentStatus, PaymentGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Quote:
    lines: List[CartLine]
    totals: Totals


def parse_address(raw: Any, field_name: str) -> Address:
    """
    Valide structurellement une adresse (name, street, city, region, postal_code requis et non vides).
    Lève ValidationError avec la liste des champs fautifs.
    """
    if isinstance(raw, Address):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"{field_name} doit être un objet", field=field_name)
    try:
        return Address.model_validate(raw)
    except PydanticValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ValidationError(f"{field_name} invalide", field=field_name, fields=missing) from e


class CheckoutService:

    def __init__(
        self,
        *,
        catalog: CatalogStore,
        cart: CartStore,
        ledger: OrderLedger,
        gateway: PaymentGateway,
        policy: TotalsPolicy,
        currency: str = "usd",
        amount_tolerance: Decimal = Decimal("0.01"),
        finalize_retries: int = 3,
        resume_after: timedelta = timedelta(seconds=30),
    ) -> None:
        self.catalog = catalog
        self.cart = cart
        self.ledger = ledger
        self.gateway = gateway
        self.policy = policy
        self.currency = currency.lower()
        self.amount_tolerance = amount_tolerance
        self.finalize_retries = max(1, finalize_retries)
        self.resume_after = resume_after

    # --- Devis (pré-paiement) ---

    def load_cart(self, user_id: str) -> List[CartLine]:
        """Lit le panier et le joint aux produits courants. EmptyCart si vide, StockUnavailable si produit disparu."""
        items = self.store_call(self.cart.get_cart_items, user_id)
        if not items:
            raise EmptyCart()
        products = {p.id: p for p in self.store_call(self.catalog.get_products_by_ids, [i.product_id for i in items])}
        lines: List[CartLine] = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise StockUnavailable("Produit indisponible", product_id=item.product_id)
            lines.append(CartLine(item=item, product=product))
        return lines

    def quote(self, user_id: str) -> Quote:
        lines = self.load_cart(user_id)
        totals = self.policy.compute([(line.product.price, line.item.quantity) for line in lines])
        return Quote(lines=lines, totals=totals)

    # --- Confirmation ---

    def complete_checkout(
        self,
        user_id: str,
        payment_reference: str,
        shipping_address: Any,
        billing_address: Any,
    ) -> Order:
        reference = (payment_reference or "").strip()
        if not reference:
            raise ValidationError("paymentReference requis", field="paymentReference")
        shipping = parse_address(shipping_address, "shippingAddress")
        billing = parse_address(billing_address, "billingAddress")

        existing = self.store_call(self.ledger.get_order_by_payment_reference, reference)
        if existing is not None:
            return self._resume(user_id, existing)

        intent = self._verify_payment(user_id, reference)
        try:
            quote = self.quote(user_id)
        except EmptyCart:
            # Panier déjà vidé par un appel concurrent avec la même référence
            existing = self.store_call(self.ledger.get_order_by_payment_reference, reference)
            if existing is None:
                raise
            return self._resume(user_id, existing)
        self._check_amount(intent, quote.totals)

        draft = Order(
            user_id=user_id,
            subtotal=quote.totals.subtotal,
            tax=quote.totals.tax,
            shipping=quote.totals.shipping,
            total=quote.totals.total,
            payment_reference=reference,
            shipping_address=shipping,
            billing_address=billing,
        )
        items = [
            OrderItem(
                order_id=draft.id,
                product_id=line.product.id,
                quantity=line.item.quantity,
                price_at_purchase=line.product.price,
            )
            for line in quote.lines
        ]
        try:
            order = self.store_call(self.ledger.create_order, draft, items)
        except DuplicatePaymentReference:
            # Course avec un appel concurrent portant la même référence
            logger.info("checkout.duplicate reference=%s user_id=%s", reference, user_id)
            existing = self.store_call(self.ledger.get_order_by_payment_reference, reference)
            if existing is None:
                raise PersistenceFailure("Commande concurrente introuvable", payment_reference=reference)
            return self._resume(user_id, existing)

        logger.info(
            "checkout.order_created order_id=%s user_id=%s total=%s items=%s",
            order.id, user_id, order.total, len(items),
        )
        self._adjust_stock(order)
        snapshot = quantities_by_product(line.item for line in quote.lines)
        return self._finalize(order, snapshot)

    def _verify_payment(self, user_id: str, reference: str) -> IntentStatus:
        intent = self.gateway.get_intent_status(reference)
        if not intent.succeeded:
            raise PaymentNotCompleted(
                f"Paiement non confirmé (status={intent.status})",
                payment_reference=reference,
                status=intent.status,
            )
        owner = (intent.metadata or {}).get("user_id")
        if owner and owner != user_id:
            raise PaymentOwnershipMismatch(payment_reference=reference)
        return intent

    def _check_amount(self, intent: IntentStatus, totals: Totals) -> None:
        """Devise et montant capturés doivent correspondre à la boutique et au total serveur."""
        captured_currency = (intent.currency or "").lower()
        if captured_currency != self.currency:
            logger.warning(
                "checkout.currency_mismatch reference=%s captured=%s expected=%s",
                intent.id, captured_currency or None, self.currency,
            )
            raise AmountMismatch(
                "Devise du paiement différente de la devise de la boutique",
                captured_currency=captured_currency or None,
                expected_currency=self.currency,
            )
        if intent.captured_amount is None:
            logger.warning("checkout.amount_unknown reference=%s", intent.id)
            raise AmountMismatch("Montant capturé inconnu", captured=None, expected=str(totals.total))
        if abs(intent.captured_amount - totals.total) > self.amount_tolerance:
            raise AmountMismatch(
                captured=str(intent.captured_amount),
                expected=str(totals.total),
            )

    def _adjust_stock(self, order: Order, compensate: bool = True) -> None:
        """
        Décrémente le stock de chaque ligne (rejouable: un mouvement par commande et produit).
        compensate=False (reprise): la commande a peut-être déjà été servie et le panier vidé,
        elle reste donc 'pending' et l'erreur remonte sans restock ni suppression.
        """
        try:
            for item in order.items:
                self.store_call(self.catalog.decrement_stock, item.product_id, item.quantity, order.id)
        except (StockUnavailable, PersistenceFailure) as e:
            if not compensate:
                logger.error("checkout.resume_stock_failed order_id=%s error=%s", order.id, e.code)
                raise
            logger.warning("checkout.stock_failed order_id=%s error=%s", order.id, e.code)
            self._rollback(order)
            raise

    def _rollback(self, order: Order) -> None:
        """Compensation: annule chaque mouvement de stock journalisé puis supprime la commande 'pending'."""
        try:
            for item in order.items:
                self.store_call(self.catalog.restock, item.product_id, order.id)
            self.store_call(self.ledger.discard_order, order.id)
        except PersistenceFailure as e:
            logger.exception("checkout.rollback_failed order_id=%s", order.id)
            raise PersistenceFailure(
                "Annulation incomplète, réessayez avec la même référence de paiement",
                order_id=order.id,
            ) from e
        logger.info("checkout.rolled_back order_id=%s", order.id)

    def _finalize(self, order: Order, snapshot: Dict[str, int]) -> Order:
        last_error: Optional[PersistenceFailure] = None
        for attempt in range(1, self.finalize_retries + 1):
            try:
                self._clear_cart(order.user_id, snapshot)
                confirmed = self.store_call(self.ledger.confirm_order, order.id)
                logger.info("checkout.confirmed order_id=%s attempt=%s", order.id, attempt)
                return confirmed
            except PersistenceFailure as e:
                last_error = e
                logger.warning("checkout.finalize_retry order_id=%s attempt=%s", order.id, attempt)
        raise PersistenceFailure(
            "Commande enregistrée mais non finalisée, réessayez avec la même référence de paiement",
            order_id=order.id,
        ) from last_error

    def _clear_cart(self, user_id: str, snapshot: Dict[str, int]) -> None:
        current = quantities_by_product(self.store_call(self.cart.get_cart_items, user_id))
        if current == snapshot:
            self.store_call(self.cart.clear_cart, user_id)
        else:
            # Panier modifié pendant le checkout: on ne retire que les lignes commandées
            self.store_call(self.cart.remove_items, user_id, list(snapshot))

    def _resume(self, user_id: str, order: Order) -> Order:
        if order.user_id != user_id:
            raise PaymentOwnershipMismatch(payment_reference=order.payment_reference)
        if order.status == ORDER_CONFIRMED:
            return order
        created_at = order.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        age = datetime.now(timezone.utc) - created_at
        if age < self.resume_after:
            raise CheckoutInProgress(payment_reference=order.payment_reference)
        logger.warning("checkout.resume order_id=%s reference=%s", order.id, order.payment_reference)
        self._adjust_stock(order, compensate=False)
        snapshot = {item.product_id: item.quantity for item in order.items}
        return self._finalize(order, snapshot)

    def store_call(self, fn: Callable[..., T], *args: Any) -> T:
        """Appelle un store; toute erreur non typée devient PersistenceFailure."""
        try:
            return fn(*args)
        except (CheckoutError, DuplicatePaymentReference):
            raise
        except Exception as e:
            logger.exception("checkout.store_call failed fn=%s", getattr(fn, "__name__", fn))
            raise PersistenceFailure() from e

    # --- Lecture ---

    def list_orders(self, user_id: str) -> List[Order]:
        return self.store_call(self.ledger.list_orders, user_id)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.store_call(self.ledger.get_order, order_id)
