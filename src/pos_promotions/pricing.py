"""Money and line-item model plus the checkout totals calculator.

Amounts are :class:`~decimal.Decimal` end to end and are never rounded here;
rounding is a presentation concern handled by :func:`format_money`. Every
function in this module is pure, so the checkout preview can be recomputed
on each cart, customer or payment change and always agree with the persisted
sale.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Optional, Sequence

from .constants import DiscountType, ManualDiscountType
from .data_manager import ProductRow


ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class CartLine:
    """A product in the cart together with its cashier-entered discount.

    ``weight`` is only meaningful for weight-priced products; a missing or
    zero weight is billed as one unit of measure.
    """

    product: ProductRow
    quantity: int = 1
    weight: Optional[Decimal] = None
    manual_discount: Decimal = ZERO
    manual_discount_type: ManualDiscountType = ManualDiscountType.FIXED
    is_free_gift: bool = False

    @property
    def product_id(self) -> str:
        return self.product.product_id

    @property
    def unit_price(self) -> Decimal:
        if self.is_free_gift:
            return ZERO
        if self.product.is_weight_based:
            return self.product.price_per_unit * (self.weight if self.weight else ONE)
        return self.product.price

    @property
    def base_price(self) -> Decimal:
        """Price before any discount: unit price times quantity."""
        return self.unit_price * self.quantity

    @property
    def subtotal(self) -> Decimal:
        """Base price minus the manual discount, floored at zero."""
        return max(self.base_price - self.manual_discount, ZERO)

    @property
    def measured_amount(self) -> Decimal:
        # weighed lines count by weight, the rest by units
        if self.weight:
            return self.weight
        return Decimal(self.quantity)

    def to_record(self) -> Dict[str, Any]:
        return {
            "product_id": self.product.product_id,
            "product_name": self.product.product_name,
            "quantity": self.quantity,
            "weight": str(self.weight) if self.weight is not None else None,
            "unit_price": str(self.unit_price),
            "discount": str(self.manual_discount),
            "discount_type": self.manual_discount_type.value,
            "subtotal": str(self.subtotal),
            "free_gift": self.is_free_gift,
        }


@dataclass(frozen=True)
class AppliedDiscount:
    """A promotion that matched the checkout and the amount it takes off."""

    discount_id: str
    discount_name: str
    discount_amount: Decimal
    discount_type: DiscountType

    def to_record(self) -> Dict[str, Any]:
        return {
            "discount_id": self.discount_id,
            "discount_name": self.discount_name,
            "discount_amount": str(self.discount_amount),
            "type": self.discount_type.value,
        }


@dataclass(frozen=True)
class Totals:
    """Checkout totals as shown in the preview and stored on the sale."""

    subtotal: Decimal
    total_manual_discount: Decimal
    total_auto_discount: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    @property
    def total_discount(self) -> Decimal:
        return self.total_manual_discount + self.total_auto_discount


def make_cart_line(
    product: ProductRow,
    *,
    quantity: int = 1,
    weight: Optional[Decimal] = None,
) -> CartLine:
    """Build a cart line after checking quantity and weight are sensible.

    Raises:
        ValueError: If ``quantity`` is negative, or ``weight`` is negative or
            supplied for a product that is not sold by weight.
    """

    if quantity < 0:
        raise ValueError("Quantity must be zero or positive")
    if weight is not None:
        if not product.is_weight_based:
            raise ValueError(f"Product '{product.product_id}' is not sold by weight")
        if weight < ZERO:
            raise ValueError("Weight must be zero or positive")
    return CartLine(product=product, quantity=quantity, weight=weight)


def make_free_gift_line(product: ProductRow) -> CartLine:
    """Return the zero-priced, single-unit line granted by a free-gift promotion."""

    return CartLine(product=product, quantity=1, is_free_gift=True)


def apply_manual_discount(line: CartLine, value: Decimal, discount_type: ManualDiscountType) -> CartLine:
    """Return a copy of ``line`` carrying a cashier-entered discount.

    Percentage discounts are converted into an amount against the line's base
    price at the time they are applied; fixed discounts are stored as-is. A
    discount larger than the line only floors the line subtotal at zero, the
    recorded amount is unchanged.

    Args:
        line (CartLine): Line to discount.
        value (Decimal): Percentage points or currency amount.
        discount_type (ManualDiscountType): How ``value`` is expressed.

    Returns:
        CartLine: New line with ``manual_discount`` set.

    Raises:
        ValueError: If ``value`` is negative or a percentage exceeds 100.
    """

    if value < ZERO:
        raise ValueError("Discount must be zero or positive")
    if discount_type is ManualDiscountType.PERCENTAGE:
        if value > HUNDRED:
            raise ValueError("Percentage discount cannot exceed 100")
        amount = line.base_price * value / HUNDRED
    else:
        amount = value
    return replace(line, manual_discount=amount, manual_discount_type=discount_type)


def calculate_subtotal(cart: Iterable[CartLine]) -> Decimal:
    """Sum of line base prices before manual or automatic discounts."""

    return sum((line.base_price for line in cart), ZERO)


def calculate_totals(
    cart: Sequence[CartLine],
    applied_discounts: Sequence[AppliedDiscount],
    tax_rate: Decimal,
) -> Totals:
    """Combine manual line discounts, promotions and tax into checkout totals.

    ``tax_rate`` is a percentage. Tax is charged on the subtotal after both
    discount kinds. Negative results are returned unchanged; whether such a
    sale may be committed is the caller's decision.
    """

    subtotal = calculate_subtotal(cart)
    manual = sum((line.manual_discount for line in cart), ZERO)
    auto = sum((applied.discount_amount for applied in applied_discounts), ZERO)
    taxable = subtotal - manual - auto
    tax_amount = taxable * tax_rate / HUNDRED
    return Totals(
        subtotal=subtotal,
        total_manual_discount=manual,
        total_auto_discount=auto,
        tax_amount=tax_amount,
        grand_total=taxable + tax_amount,
    )


def format_money(amount: Decimal, currency: str) -> str:
    """Render ``amount`` rounded half-up to cents, prefixed by ``currency``."""

    return f"{currency} {amount.quantize(CENT, rounding=ROUND_HALF_UP)}"
