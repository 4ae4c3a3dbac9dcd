"""Business logic layer for the shop ledger.

Each domain service here loads its sheet through the Data Access Layer (DAL),
normalises the incoming fields, assigns ids and writes the whole sheet back.
Errors are raised as :class:`BusinessRuleViolation` subclasses carrying the
status code a front-end should report, and :func:`error_payload` turns any
exception into the ``{success: false, message}`` shape callers expect.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import data_manager, log
from .constants import (
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_ROLE,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_CGST_RATE,
    DEFAULT_IGST_RATE,
    DEFAULT_OTHER_CATEGORIES,
    DEFAULT_SGST_RATE,
    DEFAULT_SHOP_NAME,
    SheetName,
)
from .data_manager import (
    CategoryRow,
    OtherRow,
    ProductRow,
    RepairRow,
    ShopSettingsRow,
    UserRow,
)


GENERIC_ERROR_MESSAGE = "Server error. Please try again later."


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""

    status_code = 400


class ValidationError(BusinessRuleViolation):
    """Raised when a required field is missing or malformed."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced record does not exist."""

    status_code = 404


class AuthenticationError(BusinessRuleViolation):
    """Raised when supplied credentials do not match."""

    status_code = 401


@dataclass(frozen=True)
class RuntimeContext:
    """Configuration shared by every service call.

    The context deliberately holds no workbook: each operation reads the file
    again so that edits made in Excel between calls are always seen.
    """

    settings: data_manager.ConfigSettings

    @property
    def data_file(self) -> Path:
        return self.settings.data_file


def context_for(data_file: Path, **overrides: Any) -> RuntimeContext:
    """Build a context for ``data_file`` without a ``config.ini``."""

    settings = data_manager.ConfigSettings(data_file=Path(data_file).expanduser().resolve(), **overrides)
    return RuntimeContext(settings=settings)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Resolve ``config.ini`` and prepare the workbook for use.

    Legacy one-file-per-entity workbooks found next to the configured data
    file are merged into it before the context is returned.

    Args:
        config_path (Path | None): Optional override path for the
            configuration file. When omitted the data layer searches upward
            from the current working directory.

    Returns:
        RuntimeContext: Context ready for the service functions.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    data_manager.migrate_legacy_workbooks(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings)


def error_payload(error: BaseException) -> Tuple[int, Dict[str, Any]]:
    """Translate an exception into a status code and a failure payload.

    Domain errors keep their own message and status. Storage failures report
    500 with their message, which for a locked file tells the user to close
    the workbook. Anything else is logged and reported generically.
    """

    if isinstance(error, BusinessRuleViolation):
        return error.status_code, {"success": False, "message": str(error)}
    if isinstance(error, data_manager.StorageError):
        return error.status_code, {"success": False, "message": str(error)}
    log.error("Unhandled error: %s", error, exc_info=error)
    return 500, {"success": False, "message": GENERIC_ERROR_MESSAGE}


def success_payload(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return payload


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(UTC)


def now_timestamp() -> str:
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today_iso() -> str:
    return utc_now().date().isoformat()


def read_records(context: RuntimeContext, sheet: SheetName) -> List[data_manager.Record]:
    return data_manager.read_sheet(context.data_file, sheet)


def write_records(context: RuntimeContext, sheet: SheetName, records: Sequence[Mapping[str, Any]]) -> None:
    """Persist ``records`` as the full content of ``sheet``.

    Raises:
        ValidationError: If a text field holds characters Excel cannot store.
    """

    try:
        data_manager.write_sheet(
            context.data_file,
            sheet,
            records,
            retries=context.settings.lock_retries,
            retry_delay=context.settings.lock_retry_delay,
        )
    except data_manager.UnstorableValueError as exc:
        raise ValidationError("Text fields must not contain control characters") from exc


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require_fields(payload: Mapping[str, Any], fields: Iterable[str], message: str) -> None:
    """Raise :class:`ValidationError` with ``message`` if any field is blank."""

    missing = [field for field in fields if is_blank(payload.get(field))]
    if missing:
        log.warning("Rejected request, missing fields: %s", ", ".join(missing))
        raise ValidationError(message)


def clean_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_decimal(value: Any, field: str) -> Decimal:
    """Strict numeric conversion for user input."""

    if isinstance(value, bool):
        raise ValidationError(f"Invalid number for {field}")
    try:
        result = Decimal(str(value).strip())
    except (ArithmeticError, ValueError) as exc:
        raise ValidationError(f"Invalid number for {field}") from exc
    if not result.is_finite():
        raise ValidationError(f"Invalid number for {field}")
    return result


def parse_quantity(value: Any, field: str = "quantity") -> int:
    number = parse_decimal(value, field)
    if number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number")
    return int(number)


def _find_index(ids: Sequence[int], target: int) -> Optional[int]:
    for index, candidate in enumerate(ids):
        if candidate == target:
            return index
    return None


def _name_taken(names: Iterable[str], candidate: str) -> bool:
    lowered = candidate.strip().lower()
    return any(name.lower() == lowered for name in names if name)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

PRODUCT_REQUIRED = ("name", "category", "quantity", "buyPrice", "sellPrice")


def list_products(context: RuntimeContext) -> List[ProductRow]:
    """Return every product in sheet order."""

    return [data_manager.deserialize_product(record) for record in read_records(context, SheetName.PRODUCTS)]


def get_product(context: RuntimeContext, product_id: int) -> ProductRow:
    """Resolve a product by id.

    Raises:
        MissingReferenceError: If no product carries ``product_id``.
    """

    for product in list_products(context):
        if product.product_id == product_id:
            return product
    log.warning("Product lookup failed for id '%s'", product_id)
    raise MissingReferenceError("Product not found")


def create_product(context: RuntimeContext, payload: Mapping[str, Any]) -> ProductRow:
    """Validate ``payload`` and append a new product.

    Required fields are ``name``, ``category``, ``quantity``, ``buyPrice`` and
    ``sellPrice``. The category is stored by name; it does not have to exist
    in the Categories sheet.

    Returns:
        ProductRow: The stored product with its newly allocated id.

    Raises:
        ValidationError: On missing or non-numeric fields.
    """

    require_fields(payload, PRODUCT_REQUIRED, "Missing required fields")
    products = list_products(context)
    product = ProductRow(
        product_id=data_manager.next_id(data_manager.serialize_product(p) for p in products),
        name=clean_text(payload["name"]),
        category=clean_text(payload["category"]),
        quantity=parse_quantity(payload["quantity"]),
        buy_price=parse_decimal(payload["buyPrice"], "buyPrice"),
        sell_price=parse_decimal(payload["sellPrice"], "sellPrice"),
        notes=clean_text(payload.get("notes")),
        created_at=now_timestamp(),
    )
    products.append(product)
    write_records(context, SheetName.PRODUCTS, [data_manager.serialize_product(p) for p in products])
    log.info("Created product %d '%s'", product.product_id, product.name)
    return product


def update_product(context: RuntimeContext, product_id: int, payload: Mapping[str, Any]) -> ProductRow:
    """Overwrite the mutable fields of an existing product."""

    products = list_products(context)
    index = _find_index([p.product_id for p in products], product_id)
    if index is None:
        log.warning("Update failed, unknown product id '%s'", product_id)
        raise MissingReferenceError("Product not found")

    require_fields(payload, PRODUCT_REQUIRED, "Missing required fields")
    updated = replace(
        products[index],
        name=clean_text(payload["name"]),
        category=clean_text(payload["category"]),
        quantity=parse_quantity(payload["quantity"]),
        buy_price=parse_decimal(payload["buyPrice"], "buyPrice"),
        sell_price=parse_decimal(payload["sellPrice"], "sellPrice"),
        notes=clean_text(payload.get("notes")),
        updated_at=now_timestamp(),
    )
    products[index] = updated
    write_records(context, SheetName.PRODUCTS, [data_manager.serialize_product(p) for p in products])
    log.info("Updated product %d", product_id)
    return updated


def delete_product(context: RuntimeContext, product_id: int) -> None:
    """Remove a product. Unknown ids leave the sheet untouched."""

    products = list_products(context)
    remaining = [p for p in products if p.product_id != product_id]
    if len(remaining) == len(products):
        log.warning("Delete failed, unknown product id '%s'", product_id)
        raise MissingReferenceError("Product not found")
    write_records(context, SheetName.PRODUCTS, [data_manager.serialize_product(p) for p in remaining])
    log.info("Deleted product %d", product_id)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(context: RuntimeContext) -> List[CategoryRow]:
    """Return product categories, seeding the sheet from products if empty.

    Rows without a usable id are numbered after the highest stored id, in
    sheet order. Rows without a name are dropped.
    """

    records = read_records(context, SheetName.CATEGORIES)
    if not records:
        names: List[str] = []
        for product in list_products(context):
            if product.category and product.category not in names:
                names.append(product.category)
        if not names:
            return []
        seeded = [CategoryRow(category_id=index, name=name) for index, name in enumerate(names, start=1)]
        write_records(context, SheetName.CATEGORIES, [data_manager.serialize_category(c) for c in seeded])
        log.info("Seeded %d categories from product data", len(seeded))
        return seeded

    categories = [data_manager.deserialize_category(record) for record in records]
    next_free = max((c.category_id for c in categories), default=0) + 1
    for index, category in enumerate(categories):
        if not category.category_id:
            categories[index] = replace(category, category_id=next_free)
            next_free += 1
    return [category for category in categories if category.name]


def get_category(context: RuntimeContext, category_id: int) -> CategoryRow:
    for category in list_categories(context):
        if category.category_id == category_id:
            return category
    log.warning("Category lookup failed for id '%s'", category_id)
    raise MissingReferenceError("Category not found")


def create_category(context: RuntimeContext, payload: Mapping[str, Any]) -> CategoryRow:
    """Add a category whose name is unique ignoring case.

    Raises:
        ValidationError: If the name is blank or already used.
    """

    require_fields(payload, ("name",), "Category name is required")
    name = clean_text(payload["name"])
    categories = list_categories(context)
    if _name_taken((c.name for c in categories), name):
        log.warning("Rejected duplicate category '%s'", name)
        raise ValidationError("Category already exists")

    category = CategoryRow(
        category_id=data_manager.next_id(data_manager.serialize_category(c) for c in categories),
        name=name,
        description=clean_text(payload.get("description")),
    )
    categories.append(category)
    write_records(context, SheetName.CATEGORIES, [data_manager.serialize_category(c) for c in categories])
    log.info("Created category %d '%s'", category.category_id, category.name)
    return category


def update_category(context: RuntimeContext, category_id: int, payload: Mapping[str, Any]) -> CategoryRow:
    require_fields(payload, ("name",), "Category name is required")
    name = clean_text(payload["name"])
    categories = list_categories(context)
    index = _find_index([c.category_id for c in categories], category_id)
    if index is None:
        raise MissingReferenceError("Category not found")
    others = (c.name for position, c in enumerate(categories) if position != index)
    if _name_taken(others, name):
        raise ValidationError("Category name already exists")

    updated = replace(categories[index], name=name, description=clean_text(payload.get("description")))
    categories[index] = updated
    write_records(context, SheetName.CATEGORIES, [data_manager.serialize_category(c) for c in categories])
    log.info("Updated category %d", category_id)
    return updated


def delete_category(context: RuntimeContext, category_id: int) -> None:
    categories = list_categories(context)
    remaining = [c for c in categories if c.category_id != category_id]
    if len(remaining) == len(categories):
        raise MissingReferenceError("Category not found")
    write_records(context, SheetName.CATEGORIES, [data_manager.serialize_category(c) for c in remaining])
    log.info("Deleted category %d", category_id)


# ---------------------------------------------------------------------------
# Repairs
# ---------------------------------------------------------------------------

REPAIR_REQUIRED = ("customerName", "deviceName", "issue", "estimatedCost", "status")


def list_repairs(context: RuntimeContext) -> List[RepairRow]:
    return [data_manager.deserialize_repair(record) for record in read_records(context, SheetName.REPAIRS)]


def get_repair(context: RuntimeContext, repair_id: int) -> RepairRow:
    for repair in list_repairs(context):
        if repair.repair_id == repair_id:
            return repair
    log.warning("Repair lookup failed for id '%s'", repair_id)
    raise MissingReferenceError("Repair not found")


def create_repair(context: RuntimeContext, payload: Mapping[str, Any]) -> RepairRow:
    """Open a service job.

    ``status`` is stored as given; :class:`~shop_ledger.constants.RepairStatus`
    lists the values the shop normally uses but nothing enforces them.
    """

    require_fields(payload, REPAIR_REQUIRED, "Missing required fields")
    repairs = list_repairs(context)
    repair = RepairRow(
        repair_id=data_manager.next_id(data_manager.serialize_repair(r) for r in repairs),
        customer_name=clean_text(payload["customerName"]),
        customer_phone=clean_text(payload.get("customerPhone")),
        device_name=clean_text(payload["deviceName"]),
        issue=clean_text(payload["issue"]),
        estimated_cost=parse_decimal(payload["estimatedCost"], "estimatedCost"),
        status=clean_text(payload["status"]),
        notes=clean_text(payload.get("notes")),
        date=today_iso(),
        created_at=now_timestamp(),
    )
    repairs.append(repair)
    write_records(context, SheetName.REPAIRS, [data_manager.serialize_repair(r) for r in repairs])
    log.info("Created service entry %d for '%s'", repair.repair_id, repair.customer_name)
    return repair


def update_repair(context: RuntimeContext, repair_id: int, payload: Mapping[str, Any]) -> RepairRow:
    repairs = list_repairs(context)
    index = _find_index([r.repair_id for r in repairs], repair_id)
    if index is None:
        raise MissingReferenceError("Repair not found")

    require_fields(payload, REPAIR_REQUIRED, "Missing required fields")
    updated = replace(
        repairs[index],
        customer_name=clean_text(payload["customerName"]),
        customer_phone=clean_text(payload.get("customerPhone")),
        device_name=clean_text(payload["deviceName"]),
        issue=clean_text(payload["issue"]),
        estimated_cost=parse_decimal(payload["estimatedCost"], "estimatedCost"),
        status=clean_text(payload["status"]),
        notes=clean_text(payload.get("notes")),
        updated_at=now_timestamp(),
    )
    repairs[index] = updated
    write_records(context, SheetName.REPAIRS, [data_manager.serialize_repair(r) for r in repairs])
    log.info("Updated service entry %d (status '%s')", repair_id, updated.status)
    return updated


def update_repair_status(context: RuntimeContext, repair_id: int, status: str) -> RepairRow:
    """Change only the status of a service job, keeping the other fields."""

    current = get_repair(context, repair_id)
    payload = data_manager.serialize_repair(current)
    payload["status"] = status
    return update_repair(context, repair_id, payload)


def delete_repair(context: RuntimeContext, repair_id: int) -> None:
    repairs = list_repairs(context)
    remaining = [r for r in repairs if r.repair_id != repair_id]
    if len(remaining) == len(repairs):
        raise MissingReferenceError("Repair not found")
    write_records(context, SheetName.REPAIRS, [data_manager.serialize_repair(r) for r in remaining])
    log.info("Deleted service entry %d", repair_id)


# ---------------------------------------------------------------------------
# Others (miscellaneous revenue)
# ---------------------------------------------------------------------------

OTHER_REQUIRED = ("category", "description", "amount")


def list_others(context: RuntimeContext) -> List[OtherRow]:
    return [data_manager.deserialize_other(record) for record in read_records(context, SheetName.OTHERS)]


def get_other(context: RuntimeContext, other_id: int) -> OtherRow:
    for other in list_others(context):
        if other.other_id == other_id:
            return other
    raise MissingReferenceError("Transaction not found")


def create_other(context: RuntimeContext, payload: Mapping[str, Any]) -> OtherRow:
    """Record a miscellaneous revenue entry such as a recharge or photocopy."""

    require_fields(payload, OTHER_REQUIRED, "Category, description, and amount are required")
    others = list_others(context)
    other = OtherRow(
        other_id=data_manager.next_id(data_manager.serialize_other(o) for o in others),
        category=clean_text(payload["category"]),
        description=clean_text(payload["description"]),
        customer_name=clean_text(payload.get("customerName")),
        amount=parse_decimal(payload["amount"], "amount"),
        notes=clean_text(payload.get("notes")),
        date=today_iso(),
        created_at=now_timestamp(),
    )
    others.append(other)
    write_records(context, SheetName.OTHERS, [data_manager.serialize_other(o) for o in others])
    log.info("Created transaction %d in '%s'", other.other_id, other.category)
    return other


def update_other(context: RuntimeContext, other_id: int, payload: Mapping[str, Any]) -> OtherRow:
    others = list_others(context)
    index = _find_index([o.other_id for o in others], other_id)
    if index is None:
        raise MissingReferenceError("Transaction not found")

    require_fields(payload, OTHER_REQUIRED, "Category, description, and amount are required")
    updated = replace(
        others[index],
        category=clean_text(payload["category"]),
        description=clean_text(payload["description"]),
        customer_name=clean_text(payload.get("customerName")),
        amount=parse_decimal(payload["amount"], "amount"),
        notes=clean_text(payload.get("notes")),
        updated_at=now_timestamp(),
    )
    others[index] = updated
    write_records(context, SheetName.OTHERS, [data_manager.serialize_other(o) for o in others])
    log.info("Updated transaction %d", other_id)
    return updated


def delete_other(context: RuntimeContext, other_id: int) -> None:
    others = list_others(context)
    remaining = [o for o in others if o.other_id != other_id]
    if len(remaining) == len(others):
        raise MissingReferenceError("Transaction not found")
    write_records(context, SheetName.OTHERS, [data_manager.serialize_other(o) for o in remaining])
    log.info("Deleted transaction %d", other_id)


# ---------------------------------------------------------------------------
# Other categories
# ---------------------------------------------------------------------------
#
# The OtherCategories sheet stores names only; ids are row positions and so
# shift when an earlier row is deleted.


def _renumber(categories: Iterable[CategoryRow]) -> List[CategoryRow]:
    return [replace(category, category_id=position) for position, category in enumerate(categories, start=1)]


def _write_other_categories(context: RuntimeContext, categories: Iterable[CategoryRow]) -> None:
    write_records(
        context,
        SheetName.OTHER_CATEGORIES,
        [data_manager.serialize_other_category(c) for c in categories],
    )


def list_other_categories(context: RuntimeContext) -> List[CategoryRow]:
    """Return other-revenue categories with positional ids.

    An empty sheet is seeded from the categories already used by Other
    entries, or from the default four when there are none.
    """

    records = read_records(context, SheetName.OTHER_CATEGORIES)
    if not records:
        names: List[str] = []
        for other in list_others(context):
            if other.category and other.category not in names:
                names.append(other.category)
        if names:
            seeded = _renumber(CategoryRow(category_id=0, name=name) for name in names)
        else:
            seeded = _renumber(
                CategoryRow(category_id=0, name=name, description=description)
                for name, description in DEFAULT_OTHER_CATEGORIES
            )
        _write_other_categories(context, seeded)
        log.info("Seeded %d other categories", len(seeded))
        return seeded

    categories = [
        data_manager.deserialize_category({k: v for k, v in record.items() if k not in ("id", "ID")}, 0)
        for record in records
    ]
    return _renumber(category for category in categories if category.name)


def get_other_category(context: RuntimeContext, category_id: int) -> CategoryRow:
    for category in list_other_categories(context):
        if category.category_id == category_id:
            return category
    raise MissingReferenceError("Category not found")


def create_other_category(context: RuntimeContext, payload: Mapping[str, Any]) -> CategoryRow:
    require_fields(payload, ("name",), "Category name is required")
    name = clean_text(payload["name"])
    categories = list_other_categories(context)
    if _name_taken((c.name for c in categories), name):
        raise ValidationError("Category already exists")

    category = CategoryRow(
        category_id=len(categories) + 1,
        name=name,
        description=clean_text(payload.get("description")),
    )
    categories.append(category)
    _write_other_categories(context, categories)
    log.info("Created other category '%s'", name)
    return category


def update_other_category(context: RuntimeContext, category_id: int, payload: Mapping[str, Any]) -> CategoryRow:
    require_fields(payload, ("name",), "Category name is required")
    name = clean_text(payload["name"])
    categories = list_other_categories(context)
    index = _find_index([c.category_id for c in categories], category_id)
    if index is None:
        raise MissingReferenceError("Category not found")
    others = (c.name for position, c in enumerate(categories) if position != index)
    if _name_taken(others, name):
        raise ValidationError("Category name already exists")

    updated = replace(categories[index], name=name, description=clean_text(payload.get("description")))
    categories[index] = updated
    _write_other_categories(context, categories)
    return updated


def delete_other_category(context: RuntimeContext, category_id: int) -> None:
    categories = list_other_categories(context)
    remaining = [c for c in categories if c.category_id != category_id]
    if len(remaining) == len(categories):
        raise MissingReferenceError("Category not found")
    _write_other_categories(context, remaining)
    log.info("Deleted other category %d", category_id)


# ---------------------------------------------------------------------------
# Shop settings
# ---------------------------------------------------------------------------


def default_shop_settings() -> ShopSettingsRow:
    return ShopSettingsRow(
        shop_name=DEFAULT_SHOP_NAME,
        shop_phone="",
        shop_email="",
        shop_gstin="",
        shop_address="",
        default_cgst_rate=DEFAULT_CGST_RATE,
        default_sgst_rate=DEFAULT_SGST_RATE,
        default_igst_rate=DEFAULT_IGST_RATE,
    )


def get_shop_settings(context: RuntimeContext) -> ShopSettingsRow:
    """Return the singleton settings row, writing the defaults on first use."""

    records = read_records(context, SheetName.SHOP_SETTINGS)
    defaults = default_shop_settings()
    if not records:
        write_records(context, SheetName.SHOP_SETTINGS, [data_manager.serialize_shop_settings(defaults)])
        log.info("Initialised default shop settings")
        return defaults
    return data_manager.deserialize_shop_settings(records[0], defaults)


def save_shop_settings(context: RuntimeContext, payload: Mapping[str, Any]) -> ShopSettingsRow:
    """Replace the settings row. ``shopName`` is required.

    Missing tax rates fall back to 9% CGST, 9% SGST and 18% IGST.
    """

    require_fields(payload, ("shopName",), "Shop name is required")

    def _rate(field: str, default: Decimal) -> Decimal:
        value = payload.get(field)
        return default if is_blank(value) else parse_decimal(value, field)

    settings = ShopSettingsRow(
        shop_name=clean_text(payload["shopName"]),
        shop_phone=clean_text(payload.get("shopPhone")),
        shop_email=clean_text(payload.get("shopEmail")),
        shop_gstin=clean_text(payload.get("shopGstin")),
        shop_address=clean_text(payload.get("shopAddress")),
        default_cgst_rate=_rate("defaultCgstRate", DEFAULT_CGST_RATE),
        default_sgst_rate=_rate("defaultSgstRate", DEFAULT_SGST_RATE),
        default_igst_rate=_rate("defaultIgstRate", DEFAULT_IGST_RATE),
        shop_logo_url=clean_text(payload.get("shopLogoUrl")),
        updated_at=now_timestamp(),
    )
    write_records(context, SheetName.SHOP_SETTINGS, [data_manager.serialize_shop_settings(settings)])
    log.info("Saved shop settings for '%s'", settings.shop_name)
    return settings


# ---------------------------------------------------------------------------
# Users and authentication
# ---------------------------------------------------------------------------


def list_users(context: RuntimeContext) -> List[UserRow]:
    """Return all users, creating the default admin when the sheet is empty."""

    users = [data_manager.deserialize_user(record) for record in read_records(context, SheetName.USERS)]
    if users:
        return users

    admin = UserRow(
        user_id=1,
        username=DEFAULT_ADMIN_USERNAME,
        password=DEFAULT_ADMIN_PASSWORD,
        email="",
        role=DEFAULT_ADMIN_ROLE,
    )
    write_records(context, SheetName.USERS, [data_manager.serialize_user(admin)])
    log.warning("Created default '%s' user; change its password", DEFAULT_ADMIN_USERNAME)
    return [admin]


def _write_users(context: RuntimeContext, users: Iterable[UserRow]) -> None:
    write_records(context, SheetName.USERS, [data_manager.serialize_user(u) for u in users])


def _check_password_length(context: RuntimeContext, password: str) -> None:
    minimum = context.settings.min_password_length
    if len(password) < minimum:
        raise ValidationError(f"New password must be at least {minimum} characters long")


def login(context: RuntimeContext, username: Any, password: Any) -> Dict[str, str]:
    """Compare plaintext credentials against the Users sheet.

    Returns:
        dict[str, str]: ``username`` and ``role`` of the matching user.

    Raises:
        ValidationError: If either credential is blank.
        AuthenticationError: If no user matches.
    """

    if is_blank(username) or is_blank(password):
        raise ValidationError("Username and password are required")
    for user in list_users(context):
        if user.username == username and user.password == password:
            log.info("User '%s' logged in", username)
            return {"username": user.username, "role": user.role or DEFAULT_ADMIN_ROLE}
    log.warning("Failed login for '%s'", username)
    raise AuthenticationError("Invalid username or password")


def change_password(context: RuntimeContext, username: Any, current_password: Any, new_password: Any) -> None:
    if is_blank(username) or is_blank(current_password) or is_blank(new_password):
        raise ValidationError("Username, current password, and new password are required")
    _check_password_length(context, str(new_password))

    users = list_users(context)
    for index, user in enumerate(users):
        if user.username == username and user.password == current_password:
            users[index] = replace(user, password=str(new_password))
            _write_users(context, users)
            log.info("Password changed for '%s'", username)
            return
    log.warning("Password change refused for '%s'", username)
    raise AuthenticationError("Current password is incorrect")


def reset_password(context: RuntimeContext, email: Any, new_password: Any) -> None:
    """Set a new password for the user registered under ``email``.

    The one-time code check happens before this is called.
    """

    if is_blank(email) or is_blank(new_password):
        raise ValidationError("Email and new password are required")
    _check_password_length(context, str(new_password))

    wanted = clean_text(email).lower()
    users = list_users(context)
    for index, user in enumerate(users):
        if user.email and user.email.strip().lower() == wanted:
            users[index] = replace(user, password=str(new_password))
            _write_users(context, users)
            log.info("Password reset for '%s'", user.username)
            return
    raise MissingReferenceError("User not found")
