"""Promotion conditions and the predicates that test them.

Stored conditions arrive as loose mappings (``{"type": ..., "value": ...}``).
:func:`parse_condition` turns each one into a dedicated frozen dataclass so
evaluation never has to guess the shape of ``value``. Unrecognised condition
types are kept as :class:`UnknownCondition` and evaluate to ``True``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple, Union

from . import log
from .constants import CardType, ConditionType, PaymentMethod
from .data_manager import CustomerRow
from .pricing import CartLine, ZERO

if TYPE_CHECKING:
    from .discounts import Discount


class ConditionError(ValueError):
    """Raised when a stored condition cannot be interpreted."""


@dataclass(frozen=True)
class CardMeta:
    """Card details captured at checkout that promotions may target."""

    card_type: Optional[str] = None
    bank_name: Optional[str] = None


@dataclass(frozen=True)
class MinAmountCondition:
    amount: Decimal
    kind: ClassVar[ConditionType] = ConditionType.MIN_AMOUNT


@dataclass(frozen=True)
class SpecificProductsCondition:
    """Requires listed products in the cart in at least ``min_quantity``.

    By default one qualifying product is enough. ``require_all`` demands that
    every listed product qualifies on its own.
    """

    product_ids: Tuple[str, ...]
    min_quantity: Decimal = Decimal("1")
    require_all: bool = False
    kind: ClassVar[ConditionType] = ConditionType.SPECIFIC_PRODUCTS


@dataclass(frozen=True)
class PaymentMethodCondition:
    method: str
    kind: ClassVar[ConditionType] = ConditionType.PAYMENT_METHOD


@dataclass(frozen=True)
class CustomerTierCondition:
    tier: str
    kind: ClassVar[ConditionType] = ConditionType.CUSTOMER_TIER


@dataclass(frozen=True)
class CardTypeCondition:
    card_type: str
    kind: ClassVar[ConditionType] = ConditionType.CARD_TYPE


@dataclass(frozen=True)
class BankNameCondition:
    bank_name: str
    kind: ClassVar[ConditionType] = ConditionType.BANK_NAME


@dataclass(frozen=True)
class UnknownCondition:
    type_name: str
    value: Any = None


Condition = Union[
    MinAmountCondition,
    SpecificProductsCondition,
    PaymentMethodCondition,
    CustomerTierCondition,
    CardTypeCondition,
    BankNameCondition,
    UnknownCondition,
]

CARD_ONLY_CONDITIONS = (CardTypeCondition, BankNameCondition)


def _require_text(raw: Mapping[str, Any], kind: str) -> str:
    value = raw.get("value")
    if value is None or isinstance(value, (list, dict)):
        raise ConditionError(f"Condition '{kind}' needs a single text value")
    return str(value)


def _read_decimal(value: Any, label: str) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConditionError(f"{label} is not a number: {value!r}") from exc


def parse_condition(raw: Mapping[str, Any]) -> Condition:
    """Build the typed condition described by a stored mapping.

    Args:
        raw (Mapping[str, Any]): Mapping with a ``type`` key and a
            type-dependent ``value``. ``specific_products`` also reads
            ``min_quantity`` (or ``minQuantity``) and an optional
            ``match`` of ``"any"`` or ``"all"``.

    Returns:
        Condition: One of the condition dataclasses.

    Raises:
        ConditionError: If the mapping has no type or its value does not fit
            the declared type.
    """

    if not isinstance(raw, Mapping):
        raise ConditionError(f"Condition must be a mapping, got {type(raw).__name__}")
    type_name = raw.get("type")
    if not type_name:
        raise ConditionError("Condition is missing its type")

    try:
        kind = ConditionType(type_name)
    except ValueError:
        return UnknownCondition(type_name=str(type_name), value=raw.get("value"))

    if kind is ConditionType.MIN_AMOUNT:
        return MinAmountCondition(amount=_read_decimal(raw.get("value"), "Minimum amount"))

    if kind is ConditionType.SPECIFIC_PRODUCTS:
        value = raw.get("value")
        if value is None:
            product_ids: Tuple[str, ...] = ()
        elif isinstance(value, (list, tuple)):
            product_ids = tuple(str(item) for item in value)
        else:
            product_ids = (str(value),)
        min_quantity = _read_decimal(raw.get("min_quantity", raw.get("minQuantity")), "Minimum quantity")
        match = str(raw.get("match", "any")).lower()
        if match not in ("any", "all"):
            raise ConditionError(f"Unknown product match mode: {match}")
        return SpecificProductsCondition(
            product_ids=product_ids,
            min_quantity=max(min_quantity, Decimal("1")),
            require_all=match == "all",
        )

    if kind is ConditionType.PAYMENT_METHOD:
        return PaymentMethodCondition(method=_require_text(raw, kind.value))
    if kind is ConditionType.CUSTOMER_TIER:
        return CustomerTierCondition(tier=_require_text(raw, kind.value))
    if kind is ConditionType.CARD_TYPE:
        return CardTypeCondition(card_type=_require_text(raw, kind.value))
    return BankNameCondition(bank_name=_require_text(raw, kind.value))


def condition_to_record(condition: Condition) -> Dict[str, Any]:
    """Serialize a condition back into the mapping shape read by :func:`parse_condition`."""

    if isinstance(condition, MinAmountCondition):
        return {"type": condition.kind.value, "value": str(condition.amount)}
    if isinstance(condition, SpecificProductsCondition):
        return {
            "type": condition.kind.value,
            "value": list(condition.product_ids),
            "min_quantity": str(condition.min_quantity),
            "match": "all" if condition.require_all else "any",
        }
    if isinstance(condition, PaymentMethodCondition):
        return {"type": condition.kind.value, "value": condition.method}
    if isinstance(condition, CustomerTierCondition):
        return {"type": condition.kind.value, "value": condition.tier}
    if isinstance(condition, CardTypeCondition):
        return {"type": condition.kind.value, "value": condition.card_type}
    if isinstance(condition, BankNameCondition):
        return {"type": condition.kind.value, "value": condition.bank_name}
    return {"type": condition.type_name, "value": condition.value}


def _cart_amount(cart: Sequence[CartLine], product_id: str) -> Decimal:
    return sum((line.measured_amount for line in cart if line.product_id == product_id and not line.is_free_gift), ZERO)


def _is_card(payment_method: Optional[str]) -> bool:
    return payment_method == PaymentMethod.CARD.value


def evaluate_condition(
    condition: Condition,
    cart: Sequence[CartLine],
    customer: Optional[CustomerRow],
    payment_method: Optional[str],
    running_total: Decimal,
    card_meta: Optional[CardMeta] = None,
) -> bool:
    """Test one condition against the checkout state.

    Args:
        condition (Condition): Parsed condition.
        cart (Sequence[CartLine]): Lines currently in the cart.
        customer (CustomerRow | None): Selected customer, if any.
        payment_method (str | None): Payment method chosen at checkout.
        running_total (Decimal): Cart subtotal before any promotion. Every
            promotion is tested against this same figure.
        card_meta (CardMeta | None): Card details when paying by card.

    Returns:
        bool: Whether the condition holds. Card conditions are ``False``
            unless the payment method is ``"card"``.

    Raises:
        ConditionError: If ``condition`` is neither a condition object nor a
            mapping that :func:`parse_condition` accepts.
    """

    if isinstance(condition, Mapping):
        condition = parse_condition(condition)

    if isinstance(condition, MinAmountCondition):
        return running_total >= condition.amount

    if isinstance(condition, SpecificProductsCondition):
        matches = (_cart_amount(cart, product_id) >= condition.min_quantity for product_id in condition.product_ids)
        if condition.require_all:
            return bool(condition.product_ids) and all(matches)
        return any(matches)

    if isinstance(condition, PaymentMethodCondition):
        return payment_method == condition.method

    if isinstance(condition, CustomerTierCondition):
        return customer is not None and customer.price_tier == condition.tier

    if isinstance(condition, CardTypeCondition):
        return _is_card(payment_method) and card_meta is not None and card_meta.card_type == condition.card_type

    if isinstance(condition, BankNameCondition):
        return _is_card(payment_method) and card_meta is not None and card_meta.bank_name == condition.bank_name

    if not isinstance(condition, UnknownCondition):
        raise ConditionError(f"Not a condition: {condition!r}")
    log.debug("Condition type '%s' is not recognised; treating as satisfied", condition.type_name)
    return True


def weekday_index(moment: datetime) -> int:
    """Return the day of week with Sunday as 0 and Saturday as 6.

    The day is read on ``moment``'s own clock, so callers convert to the
    store's time zone first.
    """

    return moment.isoweekday() % 7


def is_discount_eligible(
    discount: "Discount",
    cart: Sequence[CartLine],
    customer: Optional[CustomerRow],
    payment_method: Optional[str],
    running_total: Decimal,
    card_meta: Optional[CardMeta] = None,
    *,
    now: datetime,
) -> bool:
    """Decide whether a promotion applies right now to this checkout.

    A promotion is eligible when it is active, ``now`` falls inside its
    inclusive validity window, today is one of its ``valid_days`` (an empty
    list allows every day) and all of its conditions hold. A promotion with a
    missing or incomparable date is never eligible.
    """

    if not discount.is_active:
        return False

    if discount.valid_from is None or discount.valid_to is None:
        log.warning("Discount '%s' has no complete validity window; skipping", discount.discount_id)
        return False
    try:
        if now < discount.valid_from or now > discount.valid_to:
            return False
    except TypeError:
        log.warning("Discount '%s' has dates that cannot be compared with %s; skipping", discount.discount_id, now)
        return False

    if discount.valid_days and weekday_index(now) not in discount.valid_days:
        return False

    return all(
        evaluate_condition(condition, cart, customer, payment_method, running_total, card_meta)
        for condition in discount.conditions
    )


_CARD_PATTERNS: Tuple[Tuple[CardType, "re.Pattern[str]"], ...] = (
    (CardType.VISA, re.compile(r"^4")),
    (CardType.MASTERCARD, re.compile(r"^(5[1-5]|2[2-7])")),
    (CardType.AMEX, re.compile(r"^3[47]")),
    (CardType.DISCOVER, re.compile(r"^6")),
)


def detect_card_type(card_number: str) -> CardType:
    """Identify the card network from the leading digits of ``card_number``."""

    digits = re.sub(r"\s", "", card_number or "")
    for card_type, pattern in _CARD_PATTERNS:
        if pattern.match(digits):
            return card_type
    return CardType.UNKNOWN


def expected_card_length(card_type: CardType) -> int:
    """Return the digit count of a full card number for ``card_type``."""

    return 15 if card_type is CardType.AMEX else 16
