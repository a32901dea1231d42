"""Command-line entry points for the Parts Ledger toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing the results. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end
that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, log, purchase_lifecycle, reports, sale_lifecycle, setup_store
from .constants import PurchasePaymentType, PurchaseStatus, SalePaymentType
from .records import PartRecord, format_price


LineSpec = Tuple[str, int, Decimal, Optional[str]]

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BUSINESS_RULE = 2
EXIT_MISSING_FILE = 3
EXIT_OPERATION_FAILED = 4


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[Optional[core_logic.RuntimeContext], argparse.Namespace], int]
    requires_context: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="parts-cli",
        description="Command-line tools for the Parts Ledger record store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini upwards).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    specs = [
        *register_setup_commands(subparsers).values(),
        *register_write_commands(subparsers).values(),
        *register_read_commands(subparsers).values(),
    ]
    for spec in specs:
        spec.register(subparsers)
    return build_command_table(specs)


def register_setup_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that run without an existing configuration."""
    return {"init": register_init_command(subparsers)}


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and purchase orders."""
    return {
        "sale": register_sale_command(subparsers),
        "sale-payment": register_sale_payment_command(subparsers),
        "cancel-sale": register_sale_status_command(subparsers, "cancel-sale"),
        "restore-sale": register_sale_status_command(subparsers, "restore-sale"),
        "purchase": register_purchase_command(subparsers),
        "purchase-status": register_purchase_status_command(subparsers),
        "purchase-payment": register_purchase_payment_command(subparsers),
        "add-part": register_add_part_command(subparsers),
        "delete-part": register_delete_part_command(subparsers),
        "import-parts": register_import_parts_command(subparsers),
        "export-parts": register_export_parts_command(subparsers),
        "customer-balance": register_balance_command(subparsers, "customer-balance"),
        "supplier-balance": register_balance_command(subparsers, "supplier-balance"),
        "delete-customer": register_delete_party_command(subparsers, "delete-customer"),
        "delete-supplier": register_delete_party_command(subparsers, "delete-supplier"),
    }


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and reports."""
    return {
        "stock": register_listing_command(subparsers, "stock", "Display current stock levels.", run_stock),
        "sales": register_listing_command(subparsers, "sales", "List recorded sales.", run_sales_listing),
        "purchases": register_listing_command(
            subparsers, "purchases", "List purchase orders.", run_purchases_listing
        ),
        "customers": register_listing_command(
            subparsers, "customers", "List customers with their amount due.", run_customers_listing
        ),
        "suppliers": register_listing_command(
            subparsers, "suppliers", "List suppliers with their amount owed.", run_suppliers_listing
        ),
        "reconcile": register_listing_command(
            subparsers, "reconcile", "Show parties whose stored balance drifted.", run_reconcile
        ),
        "report": register_report_command(subparsers),
    }


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def parse_money(raw: str) -> Decimal:
    """argparse type for monetary values."""
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Not a monetary amount: {raw!r}") from exc


def parse_date(raw: str) -> date:
    """argparse type for ISO dates (``YYYY-MM-DD``)."""
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an ISO date: {raw!r}") from exc


def parse_line_spec(raw: str) -> LineSpec:
    """Parse ``NUMBER,QTY,PRICE[,NAME]`` into a line tuple.

    The optional name may itself contain commas.
    """
    pieces = [piece.strip() for piece in raw.split(",", 3)]
    if len(pieces) < 3 or not pieces[0]:
        raise argparse.ArgumentTypeError(f"Expected NUMBER,QTY,PRICE[,NAME], got {raw!r}")
    try:
        quantity = int(pieces[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Quantity must be an integer in {raw!r}") from exc
    price = parse_money(pieces[2])
    name = pieces[3] if len(pieces) == 4 and pieces[3] else None
    return pieces[0], quantity, price, name


def _add_item_argument(parser: argparse.ArgumentParser, price_label: str) -> None:
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_line_spec,
        required=True,
        metavar="LINE",
        help=f"Line item as NUMBER,QTY,{price_label} with an optional trailing ,NAME; repeat for several lines.",
    )


# ---------------------------------------------------------------------------
# Command registration
# ---------------------------------------------------------------------------


def register_init_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``init``."""
    name = "init"
    help_text = "Write config.ini and create an empty record store."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--data-dir", default=setup_store.DEFAULT_DATA_DIR)
        parser.add_argument("--shop-name", default=setup_store.DEFAULT_SHOP_NAME)
        parser.add_argument("--force", action="store_true", help="Overwrite existing files.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_init, requires_context=False)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--buyer", required=True)
        _add_item_argument(parser, "PRICE")
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in SalePaymentType],
            default=SalePaymentType.CASH.value,
        )
        parser.add_argument("--discount", type=parse_money, default=Decimal("0"))
        parser.add_argument("--gst-number", default=None)
        parser.add_argument("--contact", default=None)
        parser.add_argument("--email", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_sale_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale-payment``."""
    name = "sale-payment"
    help_text = "Switch a sale between cash and credit."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in SalePaymentType],
            required=True,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale_payment)


def register_sale_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
) -> CommandSpec:
    """Register ``cancel-sale`` or ``restore-sale``."""
    help_text = "Cancel a completed sale." if name == "cancel-sale" else "Restore a cancelled sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    execute = run_cancel_sale if name == "cancel-sale" else run_restore_sale
    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record a purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier", required=True, help="Supplier name.")
        parser.add_argument("--supplier-id", default=None)
        _add_item_argument(parser, "COST")
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in PurchasePaymentType],
            default=PurchasePaymentType.CASH.value,
        )
        parser.add_argument(
            "--status",
            choices=[member.value for member in PurchaseStatus],
            default=PurchaseStatus.PENDING.value,
        )
        parser.add_argument("--shipping", type=parse_money, default=Decimal("0"))
        parser.add_argument("--other-charges", type=parse_money, default=Decimal("0"))
        parser.add_argument("--invoice-number", default=None)
        parser.add_argument("--contact-person", default=None)
        parser.add_argument("--email", default=None)
        parser.add_argument("--phone", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_purchase_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase-status``."""
    name = "purchase-status"
    help_text = "Change the order status of a purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.add_argument("--status", choices=[member.value for member in PurchaseStatus], required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase_status)


def register_purchase_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase-payment``."""
    name = "purchase-payment"
    help_text = "Mark an on-credit purchase order as paid or due."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        state = parser.add_mutually_exclusive_group(required=True)
        state.add_argument("--paid", dest="settled", action="store_true")
        state.add_argument("--due", dest="settled", action="store_false")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase_payment)


def register_add_part_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-part``."""
    name = "add-part"
    help_text = "Add a part, or update the part with the same number and MRP."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--part-number", required=True)
        parser.add_argument("--part-name", required=True)
        parser.add_argument("--mrp", required=True)
        parser.add_argument("--quantity", type=int, default=0)
        parser.add_argument("--other-name", default=None)
        parser.add_argument("--company", default=None)
        parser.add_argument("--category", default=None)
        parser.add_argument("--shelf", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_part)


def register_delete_part_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-part``."""
    name = "delete-part"
    help_text = "Remove a part from stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--part-number", required=True)
        parser.add_argument("--mrp", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_part)


def register_import_parts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import-parts``."""
    name = "import-parts"
    help_text = "Merge parts from a spreadsheet into stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("path", type=Path)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import_parts)


def register_export_parts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export-parts``."""
    name = "export-parts"
    help_text = "Write all parts to a spreadsheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("path", type=Path)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export_parts)


def register_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
) -> CommandSpec:
    """Register ``customer-balance`` or ``supplier-balance``."""
    party = "customer" if name == "customer-balance" else "supplier"
    help_text = f"Manually set a {party}'s balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--id", dest="party_id", required=True)
        parser.add_argument("--balance", type=parse_money, required=True)
        parser.set_defaults(command=name)
        return parser

    execute = run_customer_balance if party == "customer" else run_supplier_balance
    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_delete_party_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
) -> CommandSpec:
    """Register ``delete-customer`` or ``delete-supplier``."""
    party = "customer" if name == "delete-customer" else "supplier"
    help_text = f"Delete a {party}."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--id", dest="party_id", required=True)
        parser.set_defaults(command=name)
        return parser

    execute = run_delete_customer if party == "customer" else run_delete_supplier
    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_listing_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
    help_text: str,
    execute: Callable[[Optional[core_logic.RuntimeContext], argparse.Namespace], int],
) -> CommandSpec:
    """Register an argument-less read command."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


REPORT_KINDS = ("sales", "purchases", "valuation", "movement", "dashboard")


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Display a summary report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("kind", choices=REPORT_KINDS)
        parser.add_argument("--start", type=parse_date, default=None, help="First day (YYYY-MM-DD).")
        parser.add_argument("--end", type=parse_date, default=None, help="Last day (YYYY-MM-DD).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: Optional[core_logic.RuntimeContext],
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


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_sale(args: argparse.Namespace) -> sale_lifecycle.SaleCommand:
    """Translate CLI args into a sale command object."""
    return sale_lifecycle.SaleCommand(
        buyer_name=args.buyer,
        items=[
            sale_lifecycle.SaleLine(part_number=number, quantity=quantity, unit_price=price, part_name=name)
            for number, quantity, price, name in args.items
        ],
        payment_type=SalePaymentType(args.payment_type),
        discount=args.discount,
        gst_number=args.gst_number,
        contact_details=args.contact,
        email_address=args.email,
    )


def translate_purchase(args: argparse.Namespace) -> purchase_lifecycle.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return purchase_lifecycle.PurchaseCommand(
        supplier_name=args.supplier,
        supplier_id=args.supplier_id,
        items=[
            purchase_lifecycle.PurchaseLine(part_number=number, quantity=quantity, unit_cost=cost, part_name=name)
            for number, quantity, cost, name in args.items
        ],
        payment_type=PurchasePaymentType(args.payment_type),
        status=PurchaseStatus(args.status),
        shipping_costs=args.shipping,
        other_charges=args.other_charges,
        invoice_number=args.invoice_number,
        contact_person=args.contact_person,
        email=args.email,
        phone=args.phone,
    )


def translate_part(args: argparse.Namespace) -> PartRecord:
    """Translate CLI args into a part record."""
    return PartRecord(
        part_number=args.part_number.strip(),
        part_name=args.part_name.strip(),
        mrp=args.mrp,
        quantity=args.quantity,
        other_name=args.other_name,
        company=args.company,
        category=args.category,
        shelf=args.shelf,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def emit_result(result: core_logic.OperationResult) -> int:
    """Print an operation result and map it to an exit code."""
    print(result.message)
    for warning in result.warnings:
        print(f"  warning: {warning}")
    if not result.success:
        log.error("%s", result.message)
        return EXIT_OPERATION_FAILED
    return EXIT_OK


def _money(context: core_logic.RuntimeContext, amount: Decimal) -> str:
    return format_price(amount, context.settings.currency_symbol)


def run_init(context: Optional[core_logic.RuntimeContext], args: argparse.Namespace) -> int:
    """Bootstrap config.ini and the record store."""
    config_path = args.config if args.config is not None else Path.cwd() / "config.ini"
    store = setup_store.run_setup(
        config_path,
        data_dir=args.data_dir,
        shop_name=args.shop_name,
        overwrite=args.force,
    )
    print(f"Created record store at '{store.data_dir}'.")
    return EXIT_OK


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow."""
    return emit_result(sale_lifecycle.create_sale(context, translate_sale(args)))


def run_sale_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(
        sale_lifecycle.change_sale_payment_type(context, args.sale_id, SalePaymentType(args.payment_type))
    )


def run_cancel_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(sale_lifecycle.cancel_sale(context, args.sale_id))


def run_restore_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(sale_lifecycle.restore_sale(context, args.sale_id))


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase order workflow."""
    return emit_result(purchase_lifecycle.create_purchase(context, translate_purchase(args)))


def run_purchase_status(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(
        purchase_lifecycle.change_purchase_status(context, args.purchase_id, PurchaseStatus(args.status))
    )


def run_purchase_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(purchase_lifecycle.change_purchase_settlement(context, args.purchase_id, args.settled))


def run_add_part(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.add_or_update_part(context, translate_part(args)))


def run_delete_part(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.delete_part(context, args.part_number, args.mrp))


def run_import_parts(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.import_parts_file(context, args.path))


def run_export_parts(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.export_parts_file(context, args.path))


def run_customer_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.adjust_customer_balance(context, args.party_id, args.balance))


def run_supplier_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.adjust_supplier_balance(context, args.party_id, args.balance))


def run_delete_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.delete_customer(context, args.party_id))


def run_delete_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return emit_result(core_logic.delete_supplier(context, args.party_id))


def run_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every stock entry."""
    for part in core_logic.list_parts(context):
        print(f"{part.part_number:<16} {part.mrp:>12} {part.quantity:>6}  {part.part_name}")
    return EXIT_OK


def run_sales_listing(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for sale in core_logic.list_sales(context):
        print(
            f"{sale.sale_id}  {sale.date[:10]}  {sale.status.value:<9} {sale.payment_type.value:<6} "
            f"{_money(context, sale.net_amount):>12}  {sale.buyer_name}"
        )
    return EXIT_OK


def run_purchases_listing(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for purchase in core_logic.list_purchases(context):
        settlement = "paid" if purchase.payment_settled else "due"
        print(
            f"{purchase.purchase_id}  {purchase.date[:10]}  {purchase.status.value:<18} "
            f"{purchase.payment_type.value:<13} {settlement:<4} {_money(context, purchase.net_amount):>12}  "
            f"{purchase.supplier_name}"
        )
    return EXIT_OK


def run_customers_listing(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for customer in core_logic.list_customers(context):
        print(f"{customer.customer_id}  {_money(context, customer.balance):>12}  {customer.name}")
    return EXIT_OK


def run_suppliers_listing(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for supplier in core_logic.list_suppliers(context):
        print(f"{supplier.supplier_id}  {_money(context, supplier.balance):>12}  {supplier.name}")
    return EXIT_OK


def run_reconcile(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print balance drift; exits non-zero when any party drifted."""
    drifted = False
    for kind, drifts in core_logic.reconcile_balances(context).items():
        for drift in drifts:
            drifted = True
            print(
                f"{kind[:-1]} {drift.party_id} ({drift.name}): stored {_money(context, drift.stored)}, "
                f"live {_money(context, drift.live)}"
            )
    if not drifted:
        print("All balances agree.")
        return EXIT_OK
    return EXIT_OPERATION_FAILED


def _report_range(args: argparse.Namespace) -> Tuple[date, date]:
    end = args.end or date.today()
    start = args.start or end
    return start, end


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute one of the summary reports."""
    lines: List[str] = []
    if args.kind == "sales":
        start, end = _report_range(args)
        summary = reports.sales_summary(context, start, end)
        lines = [
            f"Sales {start} to {end}: {summary.transactions} transactions",
            f"  total  {_money(context, summary.total)}",
            f"  cash   {_money(context, summary.cash_total)}",
            f"  credit {_money(context, summary.credit_total)}",
        ]
        if summary.top_part is not None:
            lines.append(f"  top part {summary.top_part.key} ({summary.top_part.name}): {summary.top_part.amount}")
    elif args.kind == "purchases":
        start, end = _report_range(args)
        bought = reports.purchase_summary(context, start, end)
        lines = [
            f"Purchases {start} to {end}: {bought.orders} orders",
            f"  total {_money(context, bought.total)}",
        ]
        if bought.top_part is not None:
            lines.append(f"  top part {bought.top_part.key} ({bought.top_part.name}): {bought.top_part.amount}")
        if bought.top_supplier is not None:
            lines.append(
                f"  top supplier {bought.top_supplier.name}: {_money(context, bought.top_supplier.amount)}"
            )
    elif args.kind == "valuation":
        valuation = reports.inventory_valuation(context)
        lines = [
            f"Inventory value {_money(context, valuation.total_value)}",
            f"  unique parts   {valuation.unique_parts}",
            f"  total quantity {valuation.total_quantity}",
        ]
    elif args.kind == "movement":
        lines = [
            f"{entry.day}  sold {entry.sold:>5}  purchased {entry.purchased:>5}"
            for entry in reports.stock_movement(context, today=args.end)
        ]
    else:
        board = reports.dashboard(context, today=args.end)
        settings = context.settings
        contact = [settings.shop_address, *settings.shop_phone_numbers]
        if settings.shop_gst_number:
            contact.append(f"GST {settings.shop_gst_number}")
        lines = [
            f"{settings.shop_name}",
            *(f"  {detail}" for detail in contact if detail),
            f"  revenue since {board.fiscal_year_start}: {_money(context, board.revenue)}",
            f"  parts in stock   {board.parts_in_stock}",
            f"  active customers {board.active_customers}",
            f"  sales today      {board.sales_today}",
            f"  low stock        {', '.join(part.part_number for part in board.low_stock) or '-'}",
        ]
    for line in lines:
        print(line)
    return EXIT_OK


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return EXIT_BUSINESS_RULE
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return EXIT_MISSING_FILE
    log.error("%s", error)
    return EXIT_ERROR


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        spec = command_table[args.command]
        context = load_runtime_context(args.config) if spec.requires_context else None
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
