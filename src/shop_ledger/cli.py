"""Command-line entry points for the shop ledger.

This module only wires argparse and turns command-line arguments into the
request payloads the service layer accepts. Every command prints a JSON
document shaped like ``{"success": ..., "message": ..., "data": ...}`` so
scripts can consume the output the same way a web client would.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import billing, core_logic, dashboard, data_manager, log
from .constants import ChartView, GstType, RepairStatus
from .setup_excel import create_data_workbook


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


@dataclass(frozen=True)
class EntityHandlers:
    """Service functions backing the generic ``list``/``show``/``delete`` commands."""

    list_all: Callable[[core_logic.RuntimeContext], List[Any]]
    get_one: Callable[[core_logic.RuntimeContext, int], Any]
    delete_one: Callable[[core_logic.RuntimeContext, int], None]
    serialize: Callable[[Any], Dict[str, Any]]
    deleted_message: str


ENTITIES: Mapping[str, EntityHandlers] = {
    "products": EntityHandlers(
        core_logic.list_products,
        core_logic.get_product,
        core_logic.delete_product,
        data_manager.serialize_product,
        "Product deleted successfully",
    ),
    "categories": EntityHandlers(
        core_logic.list_categories,
        core_logic.get_category,
        core_logic.delete_category,
        data_manager.serialize_category,
        "Category deleted successfully",
    ),
    "repairs": EntityHandlers(
        core_logic.list_repairs,
        core_logic.get_repair,
        core_logic.delete_repair,
        data_manager.serialize_repair,
        "Repair deleted successfully",
    ),
    "bills": EntityHandlers(
        billing.list_bills,
        billing.get_bill,
        billing.delete_bill,
        data_manager.serialize_bill,
        "Bill deleted successfully",
    ),
    "others": EntityHandlers(
        core_logic.list_others,
        core_logic.get_other,
        core_logic.delete_other,
        data_manager.serialize_other,
        "Transaction deleted successfully",
    ),
    "other-categories": EntityHandlers(
        core_logic.list_other_categories,
        core_logic.get_other_category,
        core_logic.delete_other_category,
        data_manager.serialize_category,
        "Category deleted successfully",
    ),
}


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shop-cli",
        description="Command-line tools for the Shop Ledger workbook.",
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
    """Declare mutating CLI commands."""
    specs = {
        "init": register_init_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "update-product": register_update_product_command(subparsers),
        "delete": register_delete_command(subparsers),
        "add-category": register_add_category_command(subparsers),
        "update-category": register_update_category_command(subparsers),
        "add-repair": register_add_repair_command(subparsers),
        "update-repair": register_update_repair_command(subparsers),
        "set-repair-status": register_set_repair_status_command(subparsers),
        "add-other": register_add_other_command(subparsers),
        "update-other": register_update_other_command(subparsers),
        "add-other-category": register_add_other_category_command(subparsers),
        "update-other-category": register_update_other_category_command(subparsers),
        "create-bill": register_create_bill_command(subparsers),
        "save-settings": register_save_settings_command(subparsers),
        "change-password": register_change_password_command(subparsers),
        "reset-password": register_reset_password_command(subparsers),
        "reset-data": register_reset_data_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and reports."""
    specs = {
        "list": register_list_command(subparsers),
        "show": register_show_command(subparsers),
        "stats": register_stats_command(subparsers),
        "chart": register_chart_command(subparsers),
        "export": register_export_command(subparsers),
        "settings": register_settings_command(subparsers),
        "login": register_login_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    add_arguments: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if add_arguments is not None:
            add_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def parse_item_argument(raw: str) -> Dict[str, Any]:
    """Parse ``NAME:QUANTITY:PRICE`` into a bill item mapping."""
    parts = raw.rsplit(":", 2)
    if len(parts) != 3 or not parts[0].strip():
        raise argparse.ArgumentTypeError(f"Expected NAME:QUANTITY:PRICE, got '{raw}'")
    name, quantity, price = parts
    return {"type": "custom", "name": name.strip(), "quantity": quantity.strip(), "price": price.strip()}


def _add_product_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--category", required=True)
    parser.add_argument("--quantity", required=True)
    parser.add_argument("--buy-price", required=True)
    parser.add_argument("--sell-price", required=True)
    parser.add_argument("--notes", default=None)


def _add_category_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--description", default=None)


def _add_repair_arguments(parser: argparse.ArgumentParser, *, status_required: bool = False) -> None:
    parser.add_argument("--customer-name", required=True)
    parser.add_argument("--customer-phone", default=None)
    parser.add_argument("--device-name", required=True)
    parser.add_argument("--issue", required=True)
    parser.add_argument("--estimated-cost", required=True)
    if status_required:
        parser.add_argument("--status", required=True)
    else:
        parser.add_argument("--status", default=RepairStatus.PENDING.value)
    parser.add_argument("--notes", default=None)


def _add_other_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--category", required=True)
    parser.add_argument("--description", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--customer-name", default=None)
    parser.add_argument("--notes", default=None)


def _with_id(add_arguments: Callable[[argparse.ArgumentParser], None]) -> Callable[[argparse.ArgumentParser], None]:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--id", type=int, required=True)
        add_arguments(parser)

    return arguments


def _add_entity_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("entity", choices=sorted(ENTITIES))


def register_init_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``init``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--force", action="store_true", help="Overwrite an existing workbook.")

    return _command("init", "Create an empty data workbook at the configured path.", run_init, arguments)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    return _command("add-product", "Add a product to the inventory.", run_add_product, _add_product_arguments)


def register_update_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-product``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--id", type=int, required=True)
        _add_product_arguments(parser)

    return _command("update-product", "Overwrite an existing product.", run_update_product, arguments)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        _add_entity_argument(parser)
        parser.add_argument("--id", type=int, required=True)

    return _command("delete", "Delete a record by id.", run_delete, arguments)


def register_add_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-category``."""
    return _command("add-category", "Add a product category.", run_add_category, _add_category_arguments)


def register_update_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-category``."""
    return _command(
        "update-category", "Rename or describe a product category.", run_update_category, _with_id(_add_category_arguments)
    )


def register_add_repair_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-repair``."""
    return _command("add-repair", "Open a repair or service job.", run_add_repair, _add_repair_arguments)


def register_update_repair_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-repair``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        _add_repair_arguments(parser, status_required=True)

    return _command("update-repair", "Overwrite an existing service job.", run_update_repair, _with_id(arguments))


def register_set_repair_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-repair-status``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--id", type=int, required=True)
        parser.add_argument("--status", required=True)

    return _command("set-repair-status", "Change the status of a service job.", run_set_repair_status, arguments)


def register_add_other_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-other``."""
    return _command("add-other", "Record a miscellaneous revenue entry.", run_add_other, _add_other_arguments)


def register_update_other_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-other``."""
    return _command(
        "update-other", "Overwrite a miscellaneous revenue entry.", run_update_other, _with_id(_add_other_arguments)
    )


def register_add_other_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-other-category``."""
    return _command(
        "add-other-category", "Add a category for miscellaneous revenue.", run_add_other_category, _add_category_arguments
    )


def register_update_other_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-other-category``."""
    return _command(
        "update-other-category",
        "Rename or describe a miscellaneous revenue category.",
        run_update_other_category,
        _with_id(_add_category_arguments),
    )


def register_create_bill_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``create-bill``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--buyer-name", required=True)
        parser.add_argument("--buyer-phone", default=None)
        parser.add_argument("--buyer-email", default=None)
        parser.add_argument("--buyer-address", default=None)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=parse_item_argument,
            required=True,
            metavar="NAME:QTY:PRICE",
            help="Bill line; repeat for several items.",
        )
        parser.add_argument("--gst", action="store_true", help="Apply GST to the bill.")
        parser.add_argument("--gst-type", choices=[member.value for member in GstType], default=GstType.INTRA.value)
        parser.add_argument("--cgst-rate", default=None)
        parser.add_argument("--sgst-rate", default=None)
        parser.add_argument("--igst-rate", default=None)
        parser.add_argument("--payment-method", default=None)
        parser.add_argument("--notes", default=None)
        parser.add_argument("--show-signature", action="store_true")

    return _command("create-bill", "Create a bill and compute its GST.", run_create_bill, arguments)


def register_save_settings_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``save-settings``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--shop-name", required=True)
        parser.add_argument("--shop-phone", default=None)
        parser.add_argument("--shop-email", default=None)
        parser.add_argument("--shop-gstin", default=None)
        parser.add_argument("--shop-address", default=None)
        parser.add_argument("--default-cgst-rate", default=None)
        parser.add_argument("--default-sgst-rate", default=None)
        parser.add_argument("--default-igst-rate", default=None)
        parser.add_argument("--shop-logo-url", default=None)

    return _command("save-settings", "Replace the shop settings.", run_save_settings, arguments)


def register_change_password_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``change-password``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--username", required=True)
        parser.add_argument("--current-password", required=True)
        parser.add_argument("--new-password", required=True)

    return _command("change-password", "Change a user's password.", run_change_password, arguments)


def register_reset_password_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reset-password``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--email", required=True)
        parser.add_argument("--new-password", required=True)

    return _command("reset-password", "Set a new password for the user with this e-mail.", run_reset_password, arguments)


def register_reset_data_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reset-data``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--yes", action="store_true", required=True, help="Confirm that all data should go.")

    return _command("reset-data", "Clear every sheet except Users.", run_reset_data, arguments)


def register_list_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``list``."""
    return _command("list", "List the records of one entity.", run_list, _add_entity_argument)


def register_show_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``show``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        _add_entity_argument(parser)
        parser.add_argument("--id", type=int, required=True)

    return _command("show", "Show a single record by id.", run_show, arguments)


def register_stats_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stats``."""
    return _command("stats", "Display dashboard figures.", run_stats)


def register_chart_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``chart``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--view",
            choices=[member.value for member in ChartView],
            default=ChartView.LAST_30_DAYS.value,
        )
        parser.add_argument("--start", default=None, help="First day of a custom range (YYYY-MM-DD).")
        parser.add_argument("--end", default=None, help="Last day of a custom range (YYYY-MM-DD).")

    return _command("chart", "Display revenue grouped for charting.", run_chart, arguments)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--output", type=Path, default=None, help="Target file or directory.")

    return _command("export", "Copy the data workbook for download.", run_export, arguments)


def register_settings_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``settings``."""
    return _command("settings", "Display the shop settings.", run_settings)


def register_login_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``login``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--username", required=True)
        parser.add_argument("--password", required=True)

    return _command("login", "Check a username and password.", run_login, arguments)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else None
    return core_logic.load_runtime_context(target)


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


# ---------------------------------------------------------------------------
# Translation from arguments to request payloads
# ---------------------------------------------------------------------------


def translate_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a product request."""
    return {
        "name": args.name,
        "category": args.category,
        "quantity": args.quantity,
        "buyPrice": args.buy_price,
        "sellPrice": args.sell_price,
        "notes": args.notes,
    }


def translate_repair(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a repair request."""
    return {
        "customerName": args.customer_name,
        "customerPhone": args.customer_phone,
        "deviceName": args.device_name,
        "issue": args.issue,
        "estimatedCost": args.estimated_cost,
        "status": args.status,
        "notes": args.notes,
    }


def translate_other(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a miscellaneous revenue request."""
    return {
        "category": args.category,
        "description": args.description,
        "amount": args.amount,
        "customerName": args.customer_name,
        "notes": args.notes,
    }


def translate_category(args: argparse.Namespace) -> Mapping[str, Any]:
    return {"name": args.name, "description": args.description}


def translate_bill(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a bill request."""
    return {
        "buyerName": args.buyer_name,
        "buyerPhone": args.buyer_phone,
        "buyerEmail": args.buyer_email,
        "buyerAddress": args.buyer_address,
        "items": list(args.items or []),
        "gstEnabled": args.gst,
        "gstType": args.gst_type,
        "cgstRate": args.cgst_rate,
        "sgstRate": args.sgst_rate,
        "igstRate": args.igst_rate,
        "paymentMethod": args.payment_method,
        "notes": args.notes,
        "showSignature": args.show_signature,
    }


def translate_settings(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a shop settings request."""
    return {
        "shopName": args.shop_name,
        "shopPhone": args.shop_phone,
        "shopEmail": args.shop_email,
        "shopGstin": args.shop_gstin,
        "shopAddress": args.shop_address,
        "defaultCgstRate": args.default_cgst_rate,
        "defaultSgstRate": args.default_sgst_rate,
        "defaultIgstRate": args.default_igst_rate,
        "shopLogoUrl": args.shop_logo_url,
    }


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def emit(payload: Mapping[str, Any]) -> None:
    """Print ``payload`` as indented JSON on stdout."""
    print(json.dumps(payload, indent=2, default=_json_default))


def _respond(data: Any = None, message: Optional[str] = None) -> int:
    emit(core_logic.success_payload(data, message))
    return 0


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_init(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Create the data workbook."""
    if context.data_file.exists() and not args.force:
        raise core_logic.ValidationError("Workbook already exists; pass --force to overwrite it")
    path = create_data_workbook(context.data_file, overwrite=args.force)
    return _respond({"dataFile": path}, "Workbook created successfully")


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = core_logic.create_product(context, translate_product(args))
    return _respond(data_manager.serialize_product(product), "Product added successfully")


def run_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-product workflow in the BLL."""
    product = core_logic.update_product(context, args.id, translate_product(args))
    return _respond(data_manager.serialize_product(product), "Product updated successfully")


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Delete one record of the chosen entity."""
    handlers = ENTITIES[args.entity]
    handlers.delete_one(context, args.id)
    return _respond(message=handlers.deleted_message)


def run_add_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.create_category(context, translate_category(args))
    return _respond(data_manager.serialize_category(category), "Category created successfully")


def run_update_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.update_category(context, args.id, translate_category(args))
    return _respond(data_manager.serialize_category(category), "Category updated successfully")


def run_add_repair(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    repair = core_logic.create_repair(context, translate_repair(args))
    return _respond(data_manager.serialize_repair(repair), "Repair added successfully")


def run_update_repair(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    repair = core_logic.update_repair(context, args.id, translate_repair(args))
    return _respond(data_manager.serialize_repair(repair), "Repair updated successfully")


def run_set_repair_status(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    repair = core_logic.update_repair_status(context, args.id, args.status)
    return _respond(data_manager.serialize_repair(repair), "Repair updated successfully")


def run_add_other(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    other = core_logic.create_other(context, translate_other(args))
    return _respond(data_manager.serialize_other(other), "Transaction added successfully")


def run_update_other(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    other = core_logic.update_other(context, args.id, translate_other(args))
    return _respond(data_manager.serialize_other(other), "Transaction updated successfully")


def run_add_other_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.create_other_category(context, translate_category(args))
    return _respond(data_manager.serialize_category(category), "Category created successfully")


def run_update_other_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.update_other_category(context, args.id, translate_category(args))
    return _respond(data_manager.serialize_category(category), "Category updated successfully")


def run_create_bill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the billing workflow via the BLL."""
    bill = billing.create_bill(context, translate_bill(args))
    return _respond(data_manager.serialize_bill(bill), "Bill created successfully")


def run_save_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    settings = core_logic.save_shop_settings(context, translate_settings(args))
    return _respond(data_manager.serialize_shop_settings(settings), "Shop settings saved successfully")


def run_change_password(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.change_password(context, args.username, args.current_password, args.new_password)
    return _respond(message="Password changed successfully")


def run_reset_password(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.reset_password(context, args.email, args.new_password)
    return _respond(message="Password reset successfully")


def run_reset_data(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cleared = dashboard.reset_all_data(context)
    return _respond({"clearedSheets": cleared}, "All data has been reset successfully")


def run_list(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    handlers = ENTITIES[args.entity]
    return _respond([handlers.serialize(row) for row in handlers.list_all(context)])


def run_show(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    handlers = ENTITIES[args.entity]
    return _respond(handlers.serialize(handlers.get_one(context, args.id)))


def run_stats(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the dashboard statistics report."""
    return _respond(dashboard.get_dashboard_stats(context).as_dict())


def run_chart(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the revenue chart report."""
    chart = dashboard.get_revenue_chart_data(context, args.view, args.start, args.end)
    return _respond(chart.as_dict())


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    target = dashboard.export_workbook(context, args.output)
    return _respond({"file": target}, "Workbook exported successfully")


def run_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    settings = core_logic.get_shop_settings(context)
    return _respond(data_manager.serialize_shop_settings(settings))


def run_login(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    user = core_logic.login(context, args.username, args.password)
    return _respond(user, "Login successful")


def handle_cli_error(error: Exception) -> int:
    """Report ``error`` as a failure payload and map it to an exit code."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        emit(core_logic.error_payload(error)[1])
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        emit({"success": False, "message": str(error)})
        return 3
    if isinstance(error, data_manager.StorageError):
        log.error("%s", error)
    emit(core_logic.error_payload(error)[1])
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        return dispatch_command(context, args, command_table)
    except Exception as error:
        return handle_cli_error(error)


if __name__ == "__main__":
    sys.exit(main())
