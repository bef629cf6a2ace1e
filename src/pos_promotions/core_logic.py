"""Business logic layer for the point-of-sale checkout.

This module orchestrates the pure pricing, promotion and invoice modules
around the record store. It consumes the Data Access Layer (DAL) for all I/O
and makes sure every write passes through the checkout rules: the preview a
cashier sees and the sale that gets stored are produced by the same
:func:`preview_checkout` call, and the invoice counter only advances as part
of a committed sale.
"""

from __future__ import annotations

import json
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, log
from .conditions import CardMeta
from .constants import EXPECTED_SCHEMA_VERSION, ManualDiscountType, PaymentMethod, SaleStatus
from .discounts import (
    Discount,
    DiscountEvaluation,
    InvalidDiscountDefinition,
    discount_to_row,
    evaluate_discounts,
    load_discounts,
    validate_discount,
)
from .invoice import draft_reference, next_invoice_number, peek_invoice_number
from .pricing import (
    ZERO,
    CartLine,
    Totals,
    apply_manual_discount,
    calculate_subtotal,
    calculate_totals,
    make_cart_line,
)


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, customer, or discount is unknown."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CartItemRequest:
    """One line the cashier wants in the cart."""

    product_id: str
    quantity: int = 1
    weight: Optional[Decimal] = None
    manual_discount: Optional[Decimal] = None
    manual_discount_type: ManualDiscountType = ManualDiscountType.FIXED


@dataclass(frozen=True)
class CheckoutCommand:
    """User intent for previewing or committing a sale."""

    items: Tuple[CartItemRequest, ...]
    payment_method: PaymentMethod = PaymentMethod.CASH
    customer_id: Optional[str] = None
    card_meta: Optional[CardMeta] = None
    cashier: str = ""
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CheckoutPreview:
    """Everything shown on the checkout screen for one cart state."""

    cart: Tuple[CartLine, ...]
    customer: Optional[data_manager.CustomerRow]
    evaluation: DiscountEvaluation
    totals: Totals
    store_settings: data_manager.StoreSettings
    timestamp: datetime


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or, when ``None``, the current UTC time."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name."""

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state."""

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))
    for name in names:
        context._cache.pop(name, None)


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product bucket with ``all``, ``active`` and ``by_id`` views."""

    bucket = _get_cache_bucket(context, "products")
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["active"] = [product for product in all_products if product.is_active]
        bucket["by_id"] = {product.product_id: product for product in all_products}
        log.debug(
            "Populated products cache with %d entries (%d active)",
            len(all_products),
            len(bucket["active"]),
        )
    return bucket


def _ensure_customers_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the customer bucket with ``all`` and ``by_id`` views."""

    bucket = _get_cache_bucket(context, "customers")
    if "all" not in bucket:
        all_customers = list(data_manager.iter_customers(context.workbook))
        bucket["all"] = all_customers
        bucket["by_id"] = {customer.customer_id: customer for customer in all_customers}
        log.debug("Populated customers cache with %d entries", len(all_customers))
    return bucket


def _ensure_discounts_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the discount bucket with raw rows and loaded promotions.

    ``ids`` covers every stored row, including malformed ones, so a new
    promotion can never reuse an identifier already on the sheet.
    """

    bucket = _get_cache_bucket(context, "discounts")
    if "all" not in bucket:
        rows = list(data_manager.iter_discounts(context.workbook))
        loaded = load_discounts(rows)
        bucket["ids"] = {row.discount_id for row in rows}
        bucket["all"] = loaded
        bucket["by_id"] = {discount.discount_id: discount for discount in loaded}
        log.debug("Populated discounts cache with %d of %d rows", len(loaded), len(rows))
    return bucket


def _ensure_sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the sales bucket with every stored sale in insertion order."""

    bucket = _get_cache_bucket(context, "sales")
    if "all" not in bucket:
        bucket["all"] = list(data_manager.iter_sales(context.workbook))
        log.debug("Populated sales cache with %d entries", len(bucket["all"]))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work with a workbook declared for another schema version.

    Raises:
        RuntimeError: If ``config.ini`` declares a schema version other than
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.ProductRow]:
    """Return cached product rows, active ones only unless asked otherwise."""
    cache = _ensure_products_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def list_customers(context: RuntimeContext) -> List[data_manager.CustomerRow]:
    """Return cached customer rows in sheet order."""
    return list(_ensure_customers_cache(context)["all"])


def list_discounts(context: RuntimeContext) -> List[Discount]:
    """Return every promotion that could be loaded, in sheet order.

    Malformed rows are left out (and logged once per cache fill) so the
    engine only ever sees well-formed promotions from the store.
    """
    return list(_ensure_discounts_cache(context)["all"])


def list_sales(context: RuntimeContext, *, include_drafts: bool = True) -> List[data_manager.SaleRow]:
    """Return stored sales, optionally hiding drafts."""
    sales = _ensure_sales_cache(context)["all"]
    if include_drafts:
        return list(sales)
    return [sale for sale in sales if sale.status != SaleStatus.DRAFT.value]


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is absent from the workbook.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def get_customer(context: RuntimeContext, customer_id: str) -> data_manager.CustomerRow:
    """Resolve a customer record by its identifier.

    Raises:
        MissingReferenceError: If ``customer_id`` cannot be located.
    """
    cache = _ensure_customers_cache(context)
    try:
        return cache["by_id"][customer_id]
    except KeyError as exc:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Unknown customer id: {customer_id}") from exc


def get_discount(context: RuntimeContext, discount_id: str) -> Discount:
    """Resolve a loaded promotion by its identifier.

    Raises:
        MissingReferenceError: If no well-formed promotion has that id.
    """
    cache = _ensure_discounts_cache(context)
    try:
        return cache["by_id"][discount_id]
    except KeyError as exc:
        log.warning("Discount lookup failed for id '%s'", discount_id)
        raise MissingReferenceError(f"Unknown discount id: {discount_id}") from exc


def get_store_settings(context: RuntimeContext) -> data_manager.StoreSettings:
    """Return tax rate, currency and invoice counter from the ``Settings`` sheet."""
    bucket = _get_cache_bucket(context, "settings")
    if "current" not in bucket:
        bucket["current"] = data_manager.read_store_settings(context.workbook)
    return bucket["current"]


def add_product(
    context: RuntimeContext,
    *,
    product_id: str,
    product_name: str,
    price: Decimal,
    price_per_unit: Decimal = ZERO,
    is_weight_based: bool = False,
    unit: str = "piece",
    category: str = "",
    is_active: bool = True,
) -> data_manager.ProductRow:
    """Register a new product in the catalog.

    Raises:
        BusinessRuleViolation: If the identifier is already taken.
        ValueError: If a price is negative.
    """
    if product_id in _ensure_products_cache(context)["by_id"]:
        log.warning("Attempted to add duplicate product '%s'", product_id)
        raise BusinessRuleViolation(f"Product '{product_id}' already exists")
    require_nonnegative_money(price)
    require_nonnegative_money(price_per_unit)

    record = data_manager.ProductRow(
        product_id=product_id,
        product_name=product_name,
        price=price,
        price_per_unit=price_per_unit,
        is_weight_based=is_weight_based,
        unit=unit,
        category=category,
        is_active=is_active,
    )
    data_manager.append_product(context.workbook, record)
    _invalidate_cache(context, "products")
    log.info("Added product '%s' (%s)", product_id, product_name)
    return record


def add_customer(
    context: RuntimeContext,
    *,
    customer_id: str,
    customer_name: str,
    price_tier: str = "Standard",
    credit_limit: Decimal = ZERO,
) -> data_manager.CustomerRow:
    """Register a new customer with an empty credit balance.

    Raises:
        BusinessRuleViolation: If the identifier is already taken.
        ValueError: If ``credit_limit`` is negative.
    """
    if customer_id in _ensure_customers_cache(context)["by_id"]:
        log.warning("Attempted to add duplicate customer '%s'", customer_id)
        raise BusinessRuleViolation(f"Customer '{customer_id}' already exists")
    require_nonnegative_money(credit_limit)

    record = data_manager.CustomerRow(
        customer_id=customer_id,
        customer_name=customer_name,
        price_tier=price_tier,
        credit_limit=credit_limit,
    )
    data_manager.append_customer(context.workbook, record)
    _invalidate_cache(context, "customers")
    log.info("Added customer '%s' (%s, tier %s)", customer_id, customer_name, price_tier)
    return record


def add_discount(context: RuntimeContext, discount: Discount) -> Discount:
    """Validate and store a new promotion.

    Raises:
        BusinessRuleViolation: If the id is taken or the definition breaks an
            authoring rule.
        MissingReferenceError: If a free gift product is not in the catalog.
    """
    if discount.discount_id in _ensure_discounts_cache(context)["ids"]:
        log.warning("Attempted to add duplicate discount '%s'", discount.discount_id)
        raise BusinessRuleViolation(f"Discount '{discount.discount_id}' already exists")
    try:
        validate_discount(discount)
    except InvalidDiscountDefinition as exc:
        log.error("Discount '%s' rejected: %s", discount.discount_id, exc)
        raise BusinessRuleViolation(str(exc)) from exc
    for product_id in discount.free_gift_products:
        get_product(context, product_id)

    data_manager.append_discount(context.workbook, discount_to_row(discount))
    _invalidate_cache(context, "discounts")
    log.info("Added %s discount '%s' (%s)", discount.discount_type.value, discount.discount_id, discount.discount_name)
    return discount


def set_discount_active(context: RuntimeContext, discount_id: str, active: bool) -> None:
    """Switch a stored promotion on or off without touching its definition.

    Raises:
        MissingReferenceError: If no stored row has ``discount_id``.
    """
    if discount_id not in _ensure_discounts_cache(context)["ids"]:
        raise MissingReferenceError(f"Unknown discount id: {discount_id}")
    data_manager.update_discount(context.workbook, discount_id, field_values={"IsActive": active})
    _invalidate_cache(context, "discounts")
    log.info("Discount '%s' %s", discount_id, "activated" if active else "deactivated")


def build_cart(context: RuntimeContext, items: Sequence[CartItemRequest]) -> List[CartLine]:
    """Resolve cart requests into priced lines.

    Raises:
        MissingReferenceError: If a product id is unknown.
        BusinessRuleViolation: If a product is inactive.
        ValueError: If a quantity, weight or manual discount is invalid.
    """
    cart: List[CartLine] = []
    for item in items:
        product = get_product(context, item.product_id)
        if not product.is_active:
            log.warning("Attempted to sell inactive product '%s'", item.product_id)
            raise BusinessRuleViolation(f"Product '{item.product_id}' is inactive")
        line = make_cart_line(product, quantity=item.quantity, weight=item.weight)
        if item.manual_discount is not None:
            line = apply_manual_discount(line, item.manual_discount, item.manual_discount_type)
        cart.append(line)
    return cart


def preview_checkout(context: RuntimeContext, command: CheckoutCommand) -> CheckoutPreview:
    """Price the cart, run the promotion engine and compute totals.

    The result is what the checkout screen displays, and :func:`record_sale`
    stores exactly this result, so preview and sale cannot drift apart.

    Raises:
        MissingReferenceError: If a product or the customer is unknown.
        BusinessRuleViolation: If a product is inactive.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    cart = build_cart(context, command.items)
    customer = get_customer(context, command.customer_id) if command.customer_id else None
    store_settings = get_store_settings(context)
    card_meta = command.card_meta if command.payment_method is PaymentMethod.CARD else None

    subtotal = calculate_subtotal(cart)
    evaluation = evaluate_discounts(
        list_discounts(context),
        cart,
        customer,
        command.payment_method.value,
        subtotal,
        card_meta,
        now=timestamp.astimezone(store_settings.zone),
        catalog=_ensure_products_cache(context)["by_id"],
    )
    totals = calculate_totals(cart, evaluation.applied_discounts, store_settings.tax_rate)
    log.debug(
        "Checkout preview: subtotal=%s auto=%s manual=%s total=%s (%d promotions)",
        totals.subtotal,
        totals.total_auto_discount,
        totals.total_manual_discount,
        totals.grand_total,
        len(evaluation.applied_discounts),
    )
    return CheckoutPreview(
        cart=tuple(cart),
        customer=customer,
        evaluation=evaluation,
        totals=totals,
        store_settings=store_settings,
        timestamp=timestamp,
    )


def record_sale(context: RuntimeContext, command: CheckoutCommand) -> data_manager.SaleRow:
    """Commit a checkout as a sale stamped with the next invoice number.

    The sale row, the advanced invoice counter and the customer's updated
    balances are written to the same in-memory workbook, so they reach disk
    together on the next :func:`persist_context`. Nothing is written when a
    rule below fails.

    Raises:
        BusinessRuleViolation: If the cart is empty, the total is negative,
            or a credit sale lacks a customer or enough available credit.
        MissingReferenceError: If a product or the customer is unknown.
    """
    if not command.items:
        raise BusinessRuleViolation("Cannot record a sale with an empty cart")
    preview = preview_checkout(context, command)
    totals = preview.totals
    if totals.grand_total < ZERO:
        log.error("Refusing sale with negative total %s", totals.grand_total)
        raise BusinessRuleViolation(f"Sale total cannot be negative: {totals.grand_total}")

    customer = preview.customer
    if command.payment_method is PaymentMethod.CREDIT:
        if customer is None:
            raise BusinessRuleViolation("Credit sales require a customer")
        if customer.available_credit < totals.grand_total:
            log.error(
                "Customer '%s' has %s available credit, sale needs %s",
                customer.customer_id,
                customer.available_credit,
                totals.grand_total,
            )
            raise BusinessRuleViolation(f"Customer '{customer.customer_id}' does not have enough available credit")

    invoice_number, new_counter = next_invoice_number(preview.store_settings)
    status = SaleStatus.CREDIT if command.payment_method is PaymentMethod.CREDIT else SaleStatus.COMPLETED
    sale = build_sale_row(
        preview,
        sale_id=generate_sale_id(when=preview.timestamp),
        invoice_number=invoice_number,
        payment_method=command.payment_method,
        status=status,
        card_meta=command.card_meta if command.payment_method is PaymentMethod.CARD else None,
        notes=command.notes,
    )

    # only the customer update can fail; it runs before anything is appended
    if customer is not None:
        field_values: Dict[str, Any] = {"TotalPurchases": customer.total_purchases + totals.grand_total}
        if command.payment_method is PaymentMethod.CREDIT:
            field_values["CreditUsed"] = customer.credit_used + totals.grand_total
        try:
            data_manager.update_customer(context.workbook, customer.customer_id, field_values=field_values)
        except KeyError as exc:
            log.error("Cannot update balances for customer '%s': %s", customer.customer_id, exc)
            raise MissingReferenceError(f"Customer row for '{customer.customer_id}' cannot be updated") from exc
    data_manager.append_sale(context.workbook, sale)
    data_manager.write_store_setting(context.workbook, data_manager.SETTING_INVOICE_COUNTER, new_counter)
    _invalidate_cache(context, "sales", "settings", "customers")
    log.info(
        "Recorded sale '%s' invoice %s (total=%s, payment=%s, promotions=%d)",
        sale.sale_id,
        invoice_number,
        totals.grand_total,
        command.payment_method.value,
        len(preview.evaluation.applied_discounts),
    )
    return sale


def save_draft(context: RuntimeContext, command: CheckoutCommand) -> data_manager.SaleRow:
    """Park the cart as a draft sale awaiting payment.

    Drafts keep manual line discounts only; promotions depend on the payment
    method and are evaluated when the draft is finally checked out. The
    invoice counter is left untouched.

    Raises:
        BusinessRuleViolation: If the cart is empty or a product is inactive.
        MissingReferenceError: If a product or the customer is unknown.
    """
    if not command.items:
        raise BusinessRuleViolation("Cannot save an empty cart as a draft")
    timestamp = _resolve_timestamp(command.timestamp)
    cart = build_cart(context, command.items)
    customer = get_customer(context, command.customer_id) if command.customer_id else None
    store_settings = get_store_settings(context)
    preview = CheckoutPreview(
        cart=tuple(cart),
        customer=customer,
        evaluation=DiscountEvaluation(),
        totals=calculate_totals(cart, (), store_settings.tax_rate),
        store_settings=store_settings,
        timestamp=timestamp,
    )
    reference = draft_reference(timestamp)
    draft = build_sale_row(
        preview,
        sale_id=generate_sale_id(prefix="D", when=timestamp),
        invoice_number=reference,
        payment_method=PaymentMethod.CASH,
        status=SaleStatus.DRAFT,
        card_meta=None,
        notes=command.notes or "Draft sale - payment pending",
    )
    data_manager.append_sale(context.workbook, draft)
    _invalidate_cache(context, "sales")
    log.info("Saved draft '%s' (%d lines, total=%s)", reference, len(cart), preview.totals.grand_total)
    return draft


def build_sale_row(
    preview: CheckoutPreview,
    *,
    sale_id: str,
    invoice_number: str,
    payment_method: PaymentMethod,
    status: SaleStatus,
    card_meta: Optional[CardMeta],
    notes: Optional[str],
) -> data_manager.SaleRow:
    """Materialize a checkout preview into a DAL sale row.

    ``discount_amount`` combines manual and automatic discounts, and the
    applied promotions and gift lines are embedded as JSON so the stored sale
    shows exactly what the preview showed.
    """
    totals = preview.totals
    customer = preview.customer
    return data_manager.SaleRow(
        sale_id=sale_id,
        invoice_number=invoice_number,
        receipt_number=invoice_number,
        timestamp_iso=preview.timestamp.isoformat(),
        customer_id=customer.customer_id if customer else None,
        customer_name=customer.customer_name if customer else None,
        payment_method=payment_method.value,
        status=status.value,
        subtotal=totals.subtotal,
        discount_amount=totals.total_discount,
        tax_amount=totals.tax_amount,
        total=totals.grand_total,
        items_json=json.dumps([line.to_record() for line in preview.cart]),
        applied_discounts_json=json.dumps([applied.to_record() for applied in preview.evaluation.applied_discounts]),
        free_gifts_json=json.dumps([gift.to_record() for gift in preview.evaluation.free_gifts]),
        card_type=card_meta.card_type if card_meta else None,
        bank_name=card_meta.bank_name if card_meta else None,
        notes=notes,
    )


def next_invoice_preview(context: RuntimeContext) -> str:
    """Return the invoice number the next committed sale will receive."""
    return peek_invoice_number(get_store_settings(context))


def calculate_sales_summary(context: RuntimeContext) -> Dict[str, Any]:
    """Aggregate committed sales for reporting.

    Drafts are excluded. ``by_payment_method`` maps each method to its
    revenue and ``promotion_usage`` counts how often each promotion was
    applied.

    Returns:
        dict[str, Any]: ``transactions``, ``total_revenue``,
            ``total_discounts``, ``total_tax``, ``by_payment_method`` and
            ``promotion_usage``.
    """
    total_revenue = ZERO
    total_discounts = ZERO
    total_tax = ZERO
    by_payment_method: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    promotion_usage: Counter[str] = Counter()
    sales = list_sales(context, include_drafts=False)
    for sale in sales:
        total_revenue += sale.total
        total_discounts += sale.discount_amount
        total_tax += sale.tax_amount
        by_payment_method[sale.payment_method] += sale.total
        for applied in sale.applied_discounts:
            promotion_usage[applied.get("discount_id", "")] += 1
    log.debug("Calculated sales summary over %d sales: revenue=%s", len(sales), total_revenue)
    return {
        "transactions": len(sales),
        "total_revenue": total_revenue,
        "total_discounts": total_discounts,
        "total_tax": total_tax,
        "by_payment_method": dict(by_payment_method),
        "promotion_usage": dict(promotion_usage),
    }


def calculate_customer_credit(context: RuntimeContext) -> Dict[str, Decimal]:
    """Map each customer id to the credit still available to them."""
    return {customer.customer_id: customer.available_credit for customer in list_customers(context)}


def generate_sale_id(*, prefix: str = "S", when: Optional[datetime] = None) -> str:
    """Generate a sortable sale identifier ``{prefix}{YYYYMMDDHHMMSSffffff}``."""
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook and an
            empty cache.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)
