"""Promotion definitions and the discount evaluation engine.

The engine walks every promotion in input order, keeps the eligible ones and
stacks their effects: percentage and fixed promotions each contribute an
:class:`~pos_promotions.pricing.AppliedDiscount`, free-gift promotions add
zero-priced gift lines. There is no "best promotion only" selection and the
combined amount is not limited to the cart subtotal.

A single bad promotion never aborts evaluation. Rows that cannot be parsed
are rejected by :func:`load_discount` with :class:`MalformedDiscountError`,
and anything that still fails during evaluation is logged and left out of
the result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import log
from .conditions import (
    CARD_ONLY_CONDITIONS,
    CardMeta,
    Condition,
    ConditionError,
    PaymentMethodCondition,
    SpecificProductsCondition,
    condition_to_record,
    is_discount_eligible,
    parse_condition,
)
from .constants import DiscountType, PaymentMethod
from .data_manager import CustomerRow, DiscountRow, ProductRow
from .pricing import HUNDRED, ZERO, AppliedDiscount, CartLine, make_free_gift_line


class MalformedDiscountError(ValueError):
    """Raised when a stored promotion cannot be turned into a :class:`Discount`."""


class InvalidDiscountDefinition(ValueError):
    """Raised when a promotion being created breaks an authoring rule."""


@dataclass(frozen=True)
class Discount:
    """An evaluable promotion.

    ``value`` holds percentage points for ``percentage`` promotions and a
    currency amount for ``fixed`` ones; it is ignored for ``free_gift``.
    ``valid_days`` uses 0 for Sunday through 6 for Saturday.
    """

    discount_id: str
    discount_name: str
    discount_type: DiscountType
    value: Optional[Decimal]
    valid_from: Optional[datetime]
    valid_to: Optional[datetime]
    conditions: Tuple[Condition, ...] = ()
    free_gift_products: Tuple[str, ...] = ()
    min_amount: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    valid_days: Tuple[int, ...] = ()
    is_active: bool = True
    description: str = ""


@dataclass(frozen=True)
class DiscountEvaluation:
    """Outcome of running the engine over one checkout state."""

    applied_discounts: Tuple[AppliedDiscount, ...] = ()
    free_gifts: Tuple[CartLine, ...] = ()

    @property
    def total_auto_discount(self) -> Decimal:
        return sum((applied.discount_amount for applied in self.applied_discounts), ZERO)


def _parse_optional_decimal(raw: Optional[str], label: str) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise MalformedDiscountError(f"{label} is not a number: {raw!r}") from exc


def _parse_moment(raw: Optional[str], label: str) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    try:
        moment = datetime.fromisoformat(str(raw))
    except ValueError as exc:
        raise MalformedDiscountError(f"{label} is not an ISO date: {raw!r}") from exc
    # naive timestamps are stored in UTC
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def _parse_json_list(raw: Optional[str], label: str) -> List[Any]:
    if raw is None or raw == "":
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedDiscountError(f"{label} is not valid JSON") from exc
    if not isinstance(parsed, list):
        raise MalformedDiscountError(f"{label} must be a JSON list")
    return parsed


def load_discount(row: DiscountRow) -> Discount:
    """Turn a stored promotion row into a :class:`Discount`.

    Dates that are absent stay ``None`` so the promotion is simply never
    eligible; dates that are present but unreadable reject the whole row.

    Raises:
        MalformedDiscountError: If the type, numbers, dates, day list or
            conditions cannot be interpreted.
    """

    try:
        discount_type = DiscountType(row.discount_type)
    except ValueError as exc:
        raise MalformedDiscountError(f"Unknown discount type: {row.discount_type!r}") from exc

    try:
        conditions = tuple(parse_condition(raw) for raw in _parse_json_list(row.conditions_json, "Conditions"))
    except ConditionError as exc:
        raise MalformedDiscountError(f"Invalid condition: {exc}") from exc

    try:
        valid_days = tuple(int(day) for day in _parse_json_list(row.valid_days_json, "Valid days"))
    except (TypeError, ValueError) as exc:
        raise MalformedDiscountError("Valid days must be integers") from exc

    return Discount(
        discount_id=row.discount_id,
        discount_name=row.discount_name,
        description=row.description,
        discount_type=discount_type,
        value=_parse_optional_decimal(row.value, "Value"),
        conditions=conditions,
        free_gift_products=tuple(str(item) for item in _parse_json_list(row.free_gift_products_json, "Free gift products")),
        min_amount=_parse_optional_decimal(row.min_amount, "Minimum amount"),
        max_discount=_parse_optional_decimal(row.max_discount, "Maximum discount"),
        valid_from=_parse_moment(row.valid_from, "Valid from"),
        valid_to=_parse_moment(row.valid_to, "Valid to"),
        valid_days=valid_days,
        is_active=row.is_active,
    )


def load_discounts(rows: Iterable[DiscountRow]) -> List[Discount]:
    """Load every readable promotion, logging and skipping malformed rows."""

    discounts: List[Discount] = []
    for row in rows:
        try:
            discounts.append(load_discount(row))
        except MalformedDiscountError as exc:
            log.warning("Skipping malformed discount '%s': %s", row.discount_id, exc)
    return discounts


def _optional_text(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def discount_to_row(discount: Discount) -> DiscountRow:
    """Serialize a :class:`Discount` into the row stored by the data layer."""

    return DiscountRow(
        discount_id=discount.discount_id,
        discount_name=discount.discount_name,
        description=discount.description,
        discount_type=discount.discount_type.value,
        value=_optional_text(discount.value),
        conditions_json=json.dumps([condition_to_record(condition) for condition in discount.conditions]),
        free_gift_products_json=json.dumps(list(discount.free_gift_products)),
        min_amount=_optional_text(discount.min_amount),
        max_discount=_optional_text(discount.max_discount),
        valid_from=discount.valid_from.isoformat() if discount.valid_from else None,
        valid_to=discount.valid_to.isoformat() if discount.valid_to else None,
        valid_days_json=json.dumps(list(discount.valid_days)),
        is_active=discount.is_active,
    )


def validate_discount(discount: Discount) -> None:
    """Check the authoring rules a new or edited promotion must satisfy.

    The engine itself tolerates any stored promotion; these rules only keep
    obviously broken definitions out of the store.

    Raises:
        InvalidDiscountDefinition: On the first rule that is broken.
    """

    if not discount.discount_name.strip():
        raise InvalidDiscountDefinition("Discount name is required")
    if discount.discount_type is DiscountType.BOGO:
        raise InvalidDiscountDefinition("Buy-one-get-one discounts are not supported")
    if discount.valid_from is None or discount.valid_to is None:
        raise InvalidDiscountDefinition("Both valid_from and valid_to are required")
    if discount.valid_from > discount.valid_to:
        raise InvalidDiscountDefinition("valid_from must not be after valid_to")
    if any(day < 0 or day > 6 for day in discount.valid_days):
        raise InvalidDiscountDefinition("Valid days must be between 0 (Sunday) and 6 (Saturday)")

    if discount.discount_type is DiscountType.PERCENTAGE:
        if discount.value is None or discount.value <= ZERO or discount.value > HUNDRED:
            raise InvalidDiscountDefinition("Percentage discounts need a value above 0 and at most 100")
    elif discount.discount_type is DiscountType.FIXED:
        if discount.value is None or discount.value <= ZERO:
            raise InvalidDiscountDefinition("Fixed discounts need a value above 0")
    elif not discount.free_gift_products:
        raise InvalidDiscountDefinition("Free gift discounts need at least one gift product")

    if discount.max_discount is not None and discount.max_discount < ZERO:
        raise InvalidDiscountDefinition("Maximum discount cannot be negative")

    for condition in discount.conditions:
        if not isinstance(condition, SpecificProductsCondition):
            continue
        if not condition.product_ids:
            raise InvalidDiscountDefinition("Specific product conditions need at least one product")
        if condition.min_quantity < Decimal("1"):
            raise InvalidDiscountDefinition("Specific product conditions need a minimum quantity of at least 1")

    has_card_condition = any(isinstance(condition, CARD_ONLY_CONDITIONS) for condition in discount.conditions)
    payment_conditions = [c for c in discount.conditions if isinstance(c, PaymentMethodCondition)]
    if has_card_condition and any(c.method != PaymentMethod.CARD.value for c in payment_conditions):
        raise InvalidDiscountDefinition(
            "Card type and bank name conditions require the card payment method"
        )
    if has_card_condition and not payment_conditions:
        log.warning(
            "Discount '%s' targets card details without a payment method condition; it only applies to card payments",
            discount.discount_id,
        )


def _gift_product(product_id: str, catalog: Optional[Mapping[str, ProductRow]]) -> ProductRow:
    if catalog is not None and product_id in catalog:
        return catalog[product_id]
    log.warning("Free gift product '%s' is not in the catalog; using a placeholder", product_id)
    return ProductRow(product_id=product_id, product_name=product_id, price=ZERO)


def _compute_amount(discount: Discount, subtotal: Decimal) -> Decimal:
    if discount.value is None:
        raise MalformedDiscountError("Discount has no value")
    if discount.discount_type is DiscountType.PERCENTAGE:
        amount = subtotal * discount.value / HUNDRED
        if discount.max_discount is not None:
            amount = min(amount, discount.max_discount)
        return amount
    return discount.value


def _apply_discount(
    discount: Discount,
    subtotal: Decimal,
    catalog: Optional[Mapping[str, ProductRow]],
    applied: List[AppliedDiscount],
    gifts: List[CartLine],
) -> None:
    if discount.discount_type is DiscountType.FREE_GIFT:
        if not discount.free_gift_products:
            log.warning("Free gift discount '%s' lists no products; granting none", discount.discount_id)
        gifts.extend(make_free_gift_line(_gift_product(pid, catalog)) for pid in discount.free_gift_products)
        applied.append(AppliedDiscount(discount.discount_id, discount.discount_name, ZERO, DiscountType.FREE_GIFT))
        return

    if discount.discount_type is DiscountType.BOGO:
        log.warning("Discount '%s' uses the unsupported bogo type; skipping", discount.discount_id)
        return

    amount = _compute_amount(discount, subtotal)
    if amount > ZERO:
        applied.append(AppliedDiscount(discount.discount_id, discount.discount_name, amount, discount.discount_type))


def evaluate_discounts(
    discounts: Iterable[Discount],
    cart: Sequence[CartLine],
    customer: Optional[CustomerRow],
    payment_method: Optional[str],
    subtotal: Decimal,
    card_meta: Optional[CardMeta] = None,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[Mapping[str, ProductRow]] = None,
) -> DiscountEvaluation:
    """Work out which promotions apply and what they are worth.

    Args:
        discounts (Iterable[Discount]): Every known promotion; inactive and
            out-of-window ones are filtered here.
        cart (Sequence[CartLine]): Lines in the cart.
        customer (CustomerRow | None): Selected customer, if any.
        payment_method (str | None): Chosen payment method.
        subtotal (Decimal): Cart subtotal before discounts. Each promotion is
            tested and priced against this same value.
        card_meta (CardMeta | None): Card details, consulted only for card
            payments.
        now (datetime | None): Evaluation moment; the current UTC time when
            omitted.
        catalog (Mapping[str, ProductRow] | None): Products by id, used to
            describe free-gift lines.

    Returns:
        DiscountEvaluation: Applied promotions in input order and the free
            gift lines they grant.
    """

    moment = now if now is not None else datetime.now(UTC)
    applied: List[AppliedDiscount] = []
    gifts: List[CartLine] = []

    for discount in discounts:
        staged_applied: List[AppliedDiscount] = []
        staged_gifts: List[CartLine] = []
        try:
            if not is_discount_eligible(discount, cart, customer, payment_method, subtotal, card_meta, now=moment):
                continue
            _apply_discount(discount, subtotal, catalog, staged_applied, staged_gifts)
        except (MalformedDiscountError, ArithmeticError, AttributeError, TypeError, ValueError) as exc:
            log.warning("Skipping discount '%s' during evaluation: %s", getattr(discount, "discount_id", "?"), exc)
            continue
        applied.extend(staged_applied)
        gifts.extend(staged_gifts)
        log.debug("Discount '%s' applied", discount.discount_id)

    return DiscountEvaluation(applied_discounts=tuple(applied), free_gifts=tuple(gifts))
