"""Command-line entry points for the point-of-sale promotion toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing read-only reports. Keeping the CLI thin ensures the same
parser configuration can be reused by tests, scripts, or any alternative
front-end that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, log
from .conditions import CardMeta, detect_card_type, expected_card_length, parse_condition
from .constants import CardType, DiscountType, ManualDiscountType, PaymentMethod
from .discounts import Discount, MalformedDiscountError
from .pricing import format_money


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persists: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pos-cli",
        description="Command-line tools for the point-of-sale workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as checkouts and catalog edits."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-customer": register_add_customer_command(subparsers),
        "add-discount": register_add_discount_command(subparsers),
        "discount-status": register_discount_status_command(subparsers),
        "checkout": register_checkout_command(subparsers),
        "draft": register_draft_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as previews and reports."""
    specs = {
        "preview": register_preview_command(subparsers),
        "discounts": register_discounts_command(subparsers),
        "next-invoice": register_next_invoice_command(subparsers),
        "sales-summary": register_sales_summary_command(subparsers),
        "credit": register_credit_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def parse_item_argument(raw: str) -> Tuple[str, int]:
    """Parse ``ID[:QTY]`` into a product id and a unit quantity."""
    product_id, separator, quantity = raw.rpartition(":")
    if not separator:
        return raw, 1
    try:
        return product_id, int(quantity)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid quantity in '{raw}'") from exc


def parse_weight_argument(raw: str) -> Tuple[str, Decimal]:
    """Parse ``ID:WEIGHT`` into a product id and a weight."""
    product_id, separator, weight = raw.rpartition(":")
    if not separator:
        raise argparse.ArgumentTypeError(f"Expected ID:WEIGHT, got '{raw}'")
    try:
        return product_id, Decimal(weight)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid weight in '{raw}'") from exc


def parse_line_discount_argument(raw: str) -> Tuple[str, Decimal, ManualDiscountType]:
    """Parse ``ID:AMOUNT`` or ``ID:PERCENT%`` into a manual line discount."""
    product_id, separator, amount = raw.rpartition(":")
    if not separator:
        raise argparse.ArgumentTypeError(f"Expected ID:AMOUNT[%], got '{raw}'")
    discount_type = ManualDiscountType.FIXED
    if amount.endswith("%"):
        discount_type = ManualDiscountType.PERCENTAGE
        amount = amount[:-1]
    try:
        return product_id, Decimal(amount), discount_type
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid discount in '{raw}'") from exc


def parse_moment(raw: str, *, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime, assuming UTC when no offset is given.

    A bare date means the start of that day, or its last instant when
    ``end_of_day`` is set, so a ``--valid-to`` date covers the whole day.
    """
    moment = datetime.fromisoformat(raw)
    if len(raw) == 10 and end_of_day:
        moment = datetime.combine(moment.date(), time.max)
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def add_cart_arguments(parser: argparse.ArgumentParser) -> None:
    """Attach the repeatable cart line options shared by cart commands."""
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_item_argument,
        default=None,
        metavar="ID[:QTY]",
        help="Add a unit-priced product to the cart (repeatable).",
    )
    parser.add_argument(
        "--weight-item",
        dest="weight_items",
        action="append",
        type=parse_weight_argument,
        default=None,
        metavar="ID:WEIGHT",
        help="Add a weight-priced product to the cart (repeatable).",
    )
    parser.add_argument(
        "--line-discount",
        dest="line_discounts",
        action="append",
        type=parse_line_discount_argument,
        default=None,
        metavar="ID:AMOUNT[%]",
        help="Apply a manual discount to the first cart line for ID.",
    )
    parser.add_argument("--customer-id", default=None)
    parser.add_argument("--notes", dest="notes", default=None)


def add_payment_arguments(parser: argparse.ArgumentParser) -> None:
    """Attach payment method and card detail options."""
    parser.add_argument(
        "--payment-method",
        choices=[member.value for member in PaymentMethod],
        default=PaymentMethod.CASH.value,
    )
    parser.add_argument("--card-number", default=None, help="Used only to detect the card type.")
    parser.add_argument("--card-type", default=None)
    parser.add_argument("--bank-name", default=None)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--price-per-unit", default="0")
        parser.add_argument("--weight-based", action="store_true", help="Price the product by weight.")
        parser.add_argument("--unit", default="piece")
        parser.add_argument("--category", default="")
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_add_customer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""
    name = "add-customer"
    help_text = "Register a new customer in the Customers sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--customer-name", required=True)
        parser.add_argument("--price-tier", default="Standard")
        parser.add_argument("--credit-limit", default="0")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_customer)


def register_add_discount_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-discount``."""
    name = "add-discount"
    help_text = "Create a promotion in the Discounts sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--discount-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--description", default="")
        parser.add_argument(
            "--type",
            dest="discount_type",
            choices=[member.value for member in DiscountType if member is not DiscountType.BOGO],
            required=True,
        )
        parser.add_argument("--value", default=None)
        parser.add_argument("--max-discount", default=None)
        parser.add_argument("--min-amount", default=None)
        parser.add_argument("--valid-from", required=True, help="ISO date or datetime (UTC if no offset).")
        parser.add_argument("--valid-to", required=True, help="ISO date or datetime; a date covers the whole day.")
        parser.add_argument(
            "--valid-days",
            default="",
            help="Comma separated weekdays, 0 for Sunday through 6 for Saturday.",
        )
        parser.add_argument(
            "--condition",
            dest="conditions",
            action="append",
            default=None,
            metavar="JSON",
            help='Condition mapping, e.g. \'{"type": "min_amount", "value": 500}\' (repeatable).',
        )
        parser.add_argument("--gift-product", dest="gift_products", action="append", default=None)
        parser.add_argument("--inactive", action="store_true", help="Store the promotion switched off.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_discount)


def register_discount_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``discount-status``."""
    name = "discount-status"
    help_text = "Switch a promotion on or off."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--discount-id", required=True)
        state = parser.add_mutually_exclusive_group(required=True)
        state.add_argument("--enable", dest="active", action="store_true")
        state.add_argument("--disable", dest="active", action="store_false")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_discount_status)


def register_checkout_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``checkout``."""
    name = "checkout"
    help_text = "Commit a sale and stamp it with the next invoice number."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_cart_arguments(parser)
        add_payment_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_checkout)


def register_draft_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``draft``."""
    name = "draft"
    help_text = "Park a cart as a draft sale awaiting payment."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_cart_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_draft)


def register_preview_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``preview``."""
    name = "preview"
    help_text = "Show promotions and totals for a cart without recording it."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_cart_arguments(parser)
        add_payment_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_preview, persists=False)


def register_discounts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``discounts``."""
    name = "discounts"
    help_text = "List stored promotions."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_discounts_report, persists=False)


def register_next_invoice_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``next-invoice``."""
    name = "next-invoice"
    help_text = "Show the invoice number the next sale will receive."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_next_invoice, persists=False)


def register_sales_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales-summary``."""
    name = "sales-summary"
    help_text = "Display revenue, discount, and tax totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_summary, persists=False)


def register_credit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``credit``."""
    name = "credit"
    help_text = "Display available credit per customer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_credit_report, persists=False)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_id": args.product_id,
        "product_name": args.product_name,
        "price": Decimal(args.price),
        "price_per_unit": Decimal(args.price_per_unit),
        "is_weight_based": args.weight_based,
        "unit": args.unit,
        "category": args.category,
        "is_active": not getattr(args, "inactive", False),
    }


def translate_add_customer(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-customer request."""
    return {
        "customer_id": args.customer_id,
        "customer_name": args.customer_name,
        "price_tier": args.price_tier,
        "credit_limit": Decimal(args.credit_limit),
    }


def translate_add_discount(args: argparse.Namespace) -> Discount:
    """Translate CLI args into a promotion definition.

    Raises:
        MalformedDiscountError: If a ``--condition`` is not a valid condition
            mapping.
    """
    try:
        conditions = tuple(parse_condition(json.loads(raw)) for raw in args.conditions or ())
    except (json.JSONDecodeError, ValueError) as exc:
        raise MalformedDiscountError(f"Invalid condition: {exc}") from exc
    valid_days = tuple(int(day) for day in args.valid_days.split(",") if day.strip())
    return Discount(
        discount_id=args.discount_id,
        discount_name=args.name,
        description=args.description,
        discount_type=DiscountType(args.discount_type),
        value=Decimal(args.value) if args.value is not None else None,
        max_discount=Decimal(args.max_discount) if args.max_discount is not None else None,
        min_amount=Decimal(args.min_amount) if args.min_amount is not None else None,
        valid_from=parse_moment(args.valid_from),
        valid_to=parse_moment(args.valid_to, end_of_day=True),
        valid_days=valid_days,
        conditions=conditions,
        free_gift_products=tuple(args.gift_products or ()),
        is_active=not args.inactive,
    )


def translate_cart(args: argparse.Namespace) -> Tuple[core_logic.CartItemRequest, ...]:
    """Translate cart options into line requests in the order they were given.

    Unit items come first, then weighed items. Each ``--line-discount`` is
    attached to the first line for its product that has no discount yet.

    Raises:
        ValueError: If a line discount names a product missing from the cart.
    """
    requests: List[Dict[str, Any]] = [
        {"product_id": product_id, "quantity": quantity} for product_id, quantity in args.items or ()
    ]
    requests.extend({"product_id": product_id, "weight": weight} for product_id, weight in args.weight_items or ())
    for product_id, amount, discount_type in args.line_discounts or ():
        target = next(
            (request for request in requests if request["product_id"] == product_id and "manual_discount" not in request),
            None,
        )
        if target is None:
            raise ValueError(f"Line discount targets product '{product_id}' which is not in the cart")
        target["manual_discount"] = amount
        target["manual_discount_type"] = discount_type
    return tuple(core_logic.CartItemRequest(**request) for request in requests)


def translate_card_meta(args: argparse.Namespace) -> Optional[CardMeta]:
    """Collect card details, detecting the card type from the number if needed.

    Raises:
        ValueError: If the card number is not all digits or its length does
            not fit the detected network.
    """
    card_type = args.card_type
    if args.card_number:
        digits = re.sub(r"\s", "", args.card_number)
        detected = detect_card_type(digits)
        if not digits.isdigit():
            raise ValueError("Card number must contain only digits")
        expected = expected_card_length(detected)
        if detected is not CardType.UNKNOWN and len(digits) != expected:
            raise ValueError(f"A {detected.value} card number has {expected} digits, got {len(digits)}")
        if card_type is None:
            card_type = detected.value
    if card_type is None and args.bank_name is None:
        return None
    return CardMeta(card_type=card_type, bank_name=args.bank_name)


def translate_checkout(args: argparse.Namespace) -> core_logic.CheckoutCommand:
    """Translate CLI args into a checkout command object."""
    payment = PaymentMethod(getattr(args, "payment_method", PaymentMethod.CASH.value))
    card_meta = translate_card_meta(args) if payment is PaymentMethod.CARD else None
    return core_logic.CheckoutCommand(
        items=translate_cart(args),
        payment_method=payment,
        customer_id=args.customer_id,
        card_meta=card_meta,
        notes=args.notes,
    )


def translate_draft(args: argparse.Namespace) -> core_logic.CheckoutCommand:
    """Translate CLI args into a draft command object."""
    return core_logic.CheckoutCommand(
        items=translate_cart(args),
        customer_id=args.customer_id,
        notes=args.notes,
    )


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    payload = translate_add_product(args)
    core_logic.add_product(context, **payload)
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-customer workflow in the BLL."""
    payload = translate_add_customer(args)
    core_logic.add_customer(context, **payload)
    return 0


def run_add_discount(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-discount workflow in the BLL."""
    discount = translate_add_discount(args)
    core_logic.add_discount(context, discount)
    return 0


def run_discount_status(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the discount activation workflow in the BLL."""
    core_logic.set_discount_active(context, args.discount_id, args.active)
    return 0


def run_checkout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the checkout workflow via the BLL and print the invoice."""
    command = translate_checkout(args)
    sale = core_logic.record_sale(context, command)
    currency = core_logic.get_store_settings(context).currency
    print(f"Invoice {sale.invoice_number}: {format_money(sale.total, currency)}")
    return 0


def run_draft(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the draft workflow via the BLL and print its reference."""
    command = translate_draft(args)
    draft = core_logic.save_draft(context, command)
    print(f"Draft {draft.invoice_number} saved")
    return 0


def render_preview(preview: core_logic.CheckoutPreview) -> List[str]:
    """Format a checkout preview as printable lines."""
    currency = preview.store_settings.currency
    lines = []
    for line in preview.cart:
        lines.append(f"{line.product.product_name} x{line.measured_amount}: {format_money(line.subtotal, currency)}")
    for applied in preview.evaluation.applied_discounts:
        lines.append(f"Promotion {applied.discount_name}: -{format_money(applied.discount_amount, currency)}")
    for gift in preview.evaluation.free_gifts:
        lines.append(f"Free gift: {gift.product.product_name}")
    totals = preview.totals
    lines.append(f"Subtotal: {format_money(totals.subtotal, currency)}")
    lines.append(f"Discounts: -{format_money(totals.total_discount, currency)}")
    lines.append(f"Tax: {format_money(totals.tax_amount, currency)}")
    lines.append(f"Total: {format_money(totals.grand_total, currency)}")
    return lines


def run_preview(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the checkout preview and print it."""
    preview = core_logic.preview_checkout(context, translate_checkout(args))
    for line in render_preview(preview):
        print(line)
    return 0


def run_discounts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every stored promotion with its window and state."""
    for discount in core_logic.list_discounts(context):
        state = "active" if discount.is_active else "inactive"
        window = f"{discount.valid_from.isoformat() if discount.valid_from else '?'} .. " + (
            discount.valid_to.isoformat() if discount.valid_to else "?"
        )
        print(f"{discount.discount_id}\t{discount.discount_name}\t{discount.discount_type.value}\t{state}\t{window}")
    return 0


def run_next_invoice(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the next invoice number without consuming it."""
    print(core_logic.next_invoice_preview(context))
    return 0


def run_sales_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the aggregated sales summary."""
    summary = core_logic.calculate_sales_summary(context)
    currency = core_logic.get_store_settings(context).currency
    print(f"Transactions: {summary['transactions']}")
    print(f"Revenue: {format_money(summary['total_revenue'], currency)}")
    print(f"Discounts: {format_money(summary['total_discounts'], currency)}")
    print(f"Tax: {format_money(summary['total_tax'], currency)}")
    for method, amount in sorted(summary["by_payment_method"].items()):
        print(f"  {method}: {format_money(amount, currency)}")
    return 0


def run_credit_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print available credit for every customer."""
    currency = core_logic.get_store_settings(context).currency
    for customer_id, available in core_logic.calculate_customer_credit(context).items():
        print(f"{customer_id}\t{format_money(available, currency)}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].persists:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
