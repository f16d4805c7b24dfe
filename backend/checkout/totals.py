# module backend.checkout.totals
"""
Politique de totaux (fonction pure, sans Stripe ni DB).

Appelée à l'identique au moment du devis (dimensionnement du PaymentIntent)
et à la confirmation (montants persistés), pour que les deux calculs concordent
tant que le panier n'a pas changé.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Convertit str|int|float|Decimal en Decimal via str() (jamais de float binaire propagé)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_cents(amount: Decimal) -> int:
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_dict(self) -> Dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "total": str(self.total),
        }


def compute_totals(
    lines: Iterable[Tuple[Any, int]],
    tax_rate: Any,
    free_shipping_threshold: Any,
    flat_shipping_fee: Any,
) -> Totals:
    """
    Calcule (subtotal, tax, shipping, total) pour des lignes (prix unitaire, quantité).
    - tax arrondie au centime, demi supérieur (19.99 * 0.08 -> 1.60).
    - livraison gratuite seulement si subtotal > seuil (strictement).
    - ValueError si une quantité n'est pas un entier positif ou si un prix est négatif.
    """
    subtotal = ZERO
    for price, quantity in lines:
        unit_price = to_decimal(price)
        if unit_price < 0:
            raise ValueError(f"Prix négatif: {price}")
        if isinstance(quantity, bool) or int(quantity) != quantity or quantity <= 0:
            raise ValueError(f"Quantité invalide: {quantity}")
        subtotal += unit_price * int(quantity)
    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)

    tax = (subtotal * to_decimal(tax_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    if subtotal > to_decimal(free_shipping_threshold):
        shipping = ZERO
    else:
        shipping = to_decimal(flat_shipping_fee).quantize(CENT, rounding=ROUND_HALF_UP)
    total = subtotal + tax + shipping
    return Totals(subtotal=subtotal, tax=tax, shipping=shipping, total=total)


@dataclass(frozen=True)
class TotalsPolicy:
    tax_rate: Decimal
    free_shipping_threshold: Decimal
    flat_shipping_fee: Decimal

    def compute(self, lines: Iterable[Tuple[Any, int]]) -> Totals:
        return compute_totals(lines, self.tax_rate, self.free_shipping_threshold, self.flat_shipping_fee)


def default_policy() -> TotalsPolicy:
    from backend.config import TAX_RATE, FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_FEE
    return TotalsPolicy(
        tax_rate=TAX_RATE,
        free_shipping_threshold=FREE_SHIPPING_THRESHOLD,
        flat_shipping_fee=FLAT_SHIPPING_FEE,
    )
