"""Data access layer for the shop ledger.

This module owns every read from and write to the unified ``data.xlsx``
workbook. Business rules belong elsewhere.

The public API covers three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, creating, migrating, and persisting the file.
3. Sheet operations: loading a whole sheet as loosely-typed records and
   rewriting a whole sheet from a record list, retrying while another
   program holds the file locked.

Every call goes back to disk. There is no caching and no locking between
concurrent writers, so two near-simultaneous writes may lose an update or
allocate the same id.
"""


from __future__ import annotations

import configparser
import errno
import json
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from zipfile import BadZipFile

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import IllegalCharacterError, InvalidFileException
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .constants import (
    LEGACY_WORKBOOKS,
    LOCK_RETRIES,
    LOCK_RETRY_DELAY_SECONDS,
    LOW_STOCK_THRESHOLD,
    MIN_PASSWORD_LENGTH,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
LOCKED_FILE_MESSAGE = (
    "Excel file is locked. Please close {name} if it is open in Excel "
    "or another program, then try again."
)
_LOCK_ERRNOS = frozenset({errno.EBUSY, errno.EACCES, errno.EAGAIN})
_HEADER_FONT = Font(bold=True)

SheetRef = Union[SheetName, str]
Record = Dict[str, Any]


class StorageError(Exception):
    """Raised when the workbook cannot be read or written."""

    status_code = 500


class FileLockedError(StorageError):
    """Raised when the workbook stays locked after every retry."""


class UnstorableValueError(StorageError):
    """Raised when a value holds characters that a worksheet cannot store."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    lock_retries: int = LOCK_RETRIES
    lock_retry_delay: float = LOCK_RETRY_DELAY_SECONDS
    low_stock_threshold: int = LOW_STOCK_THRESHOLD
    min_password_length: int = MIN_PASSWORD_LENGTH


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls where the workbook lives.

    An explicit path is returned untouched so callers can target a
    non-standard location. Otherwise the search walks up from the current
    working directory and the first ``config.ini`` found wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of the
            upward search.

    Returns:
        Path: The explicit path or the discovered configuration file.

    Raises:
        FileNotFoundError: If no parent directory holds ``config.ini``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser``.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser holding the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into :class:`ConfigSettings`.

    Only ``[System] DataFile`` is mandatory. Relative data file paths are
    anchored to ``base_path`` (normally the directory holding
    ``config.ini``) or to the current working directory. The remaining
    options fall back to the package defaults when absent.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor for a relative ``DataFile``.

    Returns:
        ConfigSettings: Immutable settings with an absolute data file path.

    Raises:
        KeyError: If ``[System] DataFile`` is missing.
        ValueError: If a numeric option cannot be parsed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    delay_ms = parser.getfloat(
        "Storage", "LockRetryDelayMs", fallback=LOCK_RETRY_DELAY_SECONDS * 1000
    )
    return ConfigSettings(
        data_file=data_file_path,
        lock_retries=parser.getint("Storage", "LockRetries", fallback=LOCK_RETRIES),
        lock_retry_delay=delay_ms / 1000,
        low_stock_threshold=parser.getint(
            "Inventory", "LowStockThreshold", fallback=LOW_STOCK_THRESHOLD
        ),
        min_password_length=parser.getint(
            "Auth", "MinPasswordLength", fallback=MIN_PASSWORD_LENGTH
        ),
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open an existing workbook.

    Args:
        data_file (Path): Filesystem path to an ``.xlsx`` file.

    Returns:
        Workbook: ``openpyxl`` workbook loaded from ``data_file``.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
        StorageError: If the file is not a readable workbook.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    try:
        return openpyxl.load_workbook(data_file)
    except (InvalidFileException, BadZipFile, KeyError) as exc:
        raise StorageError(f"Workbook '{data_file}' is not a valid spreadsheet: {exc}") from exc


def load_or_create_workbook(data_file: Path) -> Workbook:
    """Open ``data_file`` when it exists, otherwise start an empty workbook.

    The default ``Sheet`` tab openpyxl adds to new workbooks is removed so
    that only the ledger's own sheets ever appear in the file.
    """

    data_file = Path(data_file).expanduser().resolve()
    if data_file.exists():
        return open_workbook(data_file)

    workbook = openpyxl.Workbook()
    if workbook.active is not None and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)
    return workbook


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Target path; ``~`` is expanded.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def sheet_title(sheet: SheetRef) -> str:
    """Return the worksheet title for a :class:`SheetName` or plain string."""

    if isinstance(sheet, SheetName):
        return sheet.value
    return str(sheet).strip()


def resolve_sheet_title(workbook: Workbook, sheet: SheetRef) -> Optional[str]:
    """Find the existing tab for ``sheet``, ignoring case.

    Returns:
        str | None: The title exactly as stored in the workbook, or ``None``
            when the workbook has no such sheet.
    """

    title = sheet_title(sheet)
    if title in workbook.sheetnames:
        return title
    lowered = title.lower()
    for existing in workbook.sheetnames:
        if existing.lower() == lowered:
            return existing
    return None


def worksheet_records(worksheet: Worksheet) -> List[Record]:
    """Convert a worksheet into a list of header-keyed records.

    The first row supplies the keys. Fully empty rows are skipped and empty
    cells are left out of the record so that alias lookups fall through to
    the next candidate key. Values keep whatever type openpyxl produced.
    """

    rows = worksheet.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        return []

    keys = [str(cell).strip() if cell is not None else None for cell in header]
    records: List[Record] = []
    for raw in rows:
        if not any(cell is not None for cell in raw):
            continue
        record: Record = {}
        for key, value in zip(keys, raw):
            if key is None or value is None:
                continue
            record[key] = value
        records.append(record)
    return records


def collect_headers(records: Iterable[Mapping[str, Any]]) -> List[str]:
    """Union of record keys in first-seen order."""

    headers: List[str] = []
    seen = set()
    for record in records:
        for key in record:
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_cell(value: Any) -> Any:
    """Convert a record value into something openpyxl can store in one cell.

    Lists and dictionaries are JSON-encoded, enumerations collapse to their
    value, and numbers, booleans, strings and dates pass through.
    """

    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=_json_default)
    if isinstance(value, (str, bool, int, float, Decimal)):
        return value
    return str(value)


def replace_worksheet(workbook: Workbook, sheet: SheetRef, records: Sequence[Mapping[str, Any]]) -> Worksheet:
    """Swap the contents of ``sheet`` for ``records``.

    An existing sheet is removed and recreated at the same tab position,
    otherwise the sheet is appended. An empty record list leaves a blank
    sheet behind. Strings starting with ``=`` are stored as text, never as
    formulas.

    Raises:
        UnstorableValueError: If a value contains characters that are not
            allowed in a worksheet cell, such as ASCII control codes.
    """

    title = sheet_title(sheet)
    existing = resolve_sheet_title(workbook, title)
    if existing is not None:
        index = workbook.sheetnames.index(existing)
        workbook.remove(workbook[existing])
        worksheet = workbook.create_sheet(title=title, index=index)
    else:
        worksheet = workbook.create_sheet(title=title)

    headers = collect_headers(records)
    if not headers:
        return worksheet

    worksheet.append(headers)
    for cell in worksheet[1]:
        cell.font = _HEADER_FONT
    for record in records:
        try:
            worksheet.append([serialize_cell(record.get(header)) for header in headers])
        except IllegalCharacterError as exc:
            log.warning("Rejected a value for sheet '%s': %s", title, exc)
            raise UnstorableValueError(
                f"A value for sheet '{title}' contains characters that cannot be stored"
            ) from exc
        for cell in worksheet[worksheet.max_row]:
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"
    return worksheet


def is_lock_error(error: OSError) -> bool:
    """Tell whether ``error`` means another process holds the workbook."""

    if isinstance(error, PermissionError):
        return True
    if getattr(error, "errno", None) in _LOCK_ERRNOS:
        return True
    message = str(error).lower()
    return "locked" in message or "busy" in message


def rewrite_workbook(
    data_file: Path,
    mutate: Callable[[Workbook], None],
    *,
    retries: int = LOCK_RETRIES,
    retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
    description: str = "write workbook",
) -> None:
    """Load the workbook, apply ``mutate`` and write the whole file back.

    A lock error triggers up to ``retries`` further attempts, waiting
    ``attempt * retry_delay`` seconds before each one. Any other operating
    system error is surfaced straight away.

    Args:
        data_file (Path): Workbook to rewrite. Created when missing.
        mutate (Callable[[Workbook], None]): Change applied to a freshly
            loaded workbook on every attempt.
        retries (int): Extra attempts allowed after a lock error.
        retry_delay (float): Base delay in seconds between attempts.
        description (str): Human readable action used in log lines.

    Raises:
        FileLockedError: If the file is still locked after the last retry.
        StorageError: For any other failure to read or write the file.
    """

    data_file = Path(data_file).expanduser().resolve()
    for attempt in range(retries + 1):
        try:
            workbook = load_or_create_workbook(data_file)
            mutate(workbook)
            save_workbook(workbook, data_file)
            return
        except OSError as exc:
            if not is_lock_error(exc):
                log.error("Failed to %s in '%s': %s", description, data_file, exc)
                raise StorageError(f"Unable to {description}: {exc}") from exc
            if attempt >= retries:
                log.error("Failed to %s: '%s' is locked", description, data_file)
                raise FileLockedError(LOCKED_FILE_MESSAGE.format(name=data_file.name)) from exc
            wait = (attempt + 1) * retry_delay
            log.warning(
                "Workbook '%s' is locked, retrying in %.1fs (attempt %d/%d)",
                data_file,
                wait,
                attempt + 1,
                retries,
            )
            time.sleep(wait)


def read_sheet(data_file: Path, sheet: SheetRef) -> List[Record]:
    """Load every row of ``sheet`` as a record.

    The workbook is read from disk on every call. A missing file or sheet is
    not an error and yields an empty list.

    Args:
        data_file (Path): Location of the unified workbook.
        sheet (SheetName | str): Sheet to read; matched case-insensitively.

    Returns:
        list[dict[str, Any]]: Records keyed by header, without type coercion.

    Raises:
        StorageError: If the workbook exists but cannot be read.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        return []

    try:
        workbook = open_workbook(data_file)
    except OSError as exc:
        log.error("Failed to read '%s': %s", data_file, exc)
        raise StorageError(f"Unable to read workbook: {exc}") from exc

    title = resolve_sheet_title(workbook, sheet)
    if title is None:
        return []
    return worksheet_records(workbook[title])


def write_sheet(
    data_file: Path,
    sheet: SheetRef,
    records: Sequence[Mapping[str, Any]],
    *,
    retries: int = LOCK_RETRIES,
    retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
) -> None:
    """Replace ``sheet`` with ``records`` and rewrite the entire workbook.

    Args:
        data_file (Path): Location of the unified workbook.
        sheet (SheetName | str): Sheet to replace or create.
        records (Sequence[Mapping[str, Any]]): Full content of the sheet.
        retries (int): Extra attempts allowed while the file is locked.
        retry_delay (float): Base delay in seconds between attempts.

    Raises:
        FileLockedError: If the file stays locked.
        StorageError: For other I/O failures.
    """

    title = sheet_title(sheet)
    rows = list(records)

    def _replace(workbook: Workbook) -> None:
        replace_worksheet(workbook, title, rows)

    rewrite_workbook(
        data_file,
        _replace,
        retries=retries,
        retry_delay=retry_delay,
        description=f"write sheet '{title}'",
    )
    log.info("Wrote %d row(s) to sheet '%s'", len(rows), title)


def pick_field(record: Mapping[str, Any], aliases: Sequence[str], default: Any = None) -> Any:
    """Return the first non-empty value among ``aliases``.

    Aliases are listed camelCase key first, then the Title Case header, then
    any legacy names. ``None`` and empty strings count as absent; zero and
    ``False`` do not.
    """

    for key in aliases:
        value = record.get(key)
        if value is None or value == "":
            continue
        return value
    return default


def parse_int(value: Any) -> Optional[int]:
    """Best-effort integer conversion for identifiers and counts."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def record_id(record: Mapping[str, Any]) -> Optional[int]:
    """Numeric id stored under ``id`` or ``ID``, if any."""

    return parse_int(pick_field(record, ("id", "ID")))


def next_id(records: Iterable[Mapping[str, Any]]) -> int:
    """Return one more than the largest positive id in ``records``, or 1."""

    ids = [value for value in (record_id(record) for record in records) if value is not None and value > 0]
    return max(ids) + 1 if ids else 1


def get_next_id(data_file: Path, sheet: SheetRef) -> int:
    """Read ``sheet`` and allocate the next id.

    The read and the later write are not atomic.
    """

    return next_id(read_sheet(data_file, sheet))


def append_record(data_file: Path, sheet: SheetRef, record: Mapping[str, Any], **write_options: Any) -> None:
    """Append ``record`` to ``sheet`` by rewriting the whole sheet."""

    records = read_sheet(data_file, sheet)
    records.append(dict(record))
    write_sheet(data_file, sheet, records, **write_options)


def update_record(
    data_file: Path,
    sheet: SheetRef,
    target_id: int,
    changes: Mapping[str, Any],
    **write_options: Any,
) -> bool:
    """Merge ``changes`` into the record whose id equals ``target_id``.

    Returns:
        bool: ``False`` when no record matched. The file is untouched then.
    """

    records = read_sheet(data_file, sheet)
    for index, record in enumerate(records):
        if record_id(record) == target_id:
            records[index] = {**record, **changes}
            write_sheet(data_file, sheet, records, **write_options)
            return True
    return False


def delete_record(data_file: Path, sheet: SheetRef, target_id: int, **write_options: Any) -> bool:
    """Remove the record whose id equals ``target_id``.

    Returns:
        bool: ``False`` when no record matched. The file is untouched then.
    """

    records = read_sheet(data_file, sheet)
    remaining = [record for record in records if record_id(record) != target_id]
    if len(remaining) == len(records):
        return False
    write_sheet(data_file, sheet, remaining, **write_options)
    return True


def reset_all_data(
    data_file: Path,
    *,
    keep: Sequence[SheetName] = (SheetName.USERS,),
    retries: int = LOCK_RETRIES,
    retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
) -> List[str]:
    """Blank every ledger sheet except those listed in ``keep``.

    Returns:
        list[str]: Titles of the sheets that were cleared.
    """

    cleared = [sheet.value for sheet in SheetName if sheet not in keep]

    def _clear(workbook: Workbook) -> None:
        for title in cleared:
            replace_worksheet(workbook, title, [])

    rewrite_workbook(
        data_file,
        _clear,
        retries=retries,
        retry_delay=retry_delay,
        description="reset workbook data",
    )
    log.info("Cleared sheets %s", ", ".join(cleared))
    return cleared


def migrate_legacy_workbooks(data_file: Path) -> List[str]:
    """Fold the historical one-file-per-entity workbooks into ``data_file``.

    Each legacy file (``users.xlsx``, ``products.xlsx``...) sitting next to
    the unified workbook is imported from its first sheet, but only when the
    unified workbook has no sheet of that name yet and the legacy sheet holds
    at least one row.

    Returns:
        list[str]: Titles of the sheets that were imported.
    """

    data_file = Path(data_file).expanduser().resolve()
    data_dir = data_file.parent
    candidates = [
        (sheet, data_dir / filename)
        for sheet, filename in LEGACY_WORKBOOKS.items()
        if (data_dir / filename).exists()
    ]
    if not candidates:
        return []

    workbook = load_or_create_workbook(data_file)
    migrated: List[str] = []
    for sheet, legacy_path in candidates:
        if resolve_sheet_title(workbook, sheet) is not None:
            continue
        legacy = open_workbook(legacy_path)
        if not legacy.worksheets:
            continue
        records = worksheet_records(legacy.worksheets[0])
        if not records:
            continue
        replace_worksheet(workbook, sheet, records)
        migrated.append(sheet.value)

    if migrated:
        save_workbook(workbook, data_file)
        log.info("Migrated legacy workbooks into '%s': %s", data_file, ", ".join(migrated))
    return migrated


# ---------------------------------------------------------------------------
# Entity row views
# ---------------------------------------------------------------------------
#
# Each sheet has collected several header spellings over time. The alias
# tuples below list them in lookup order: camelCase, Title Case, legacy.

USER_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "username": ("username", "Username"),
    "password": ("password", "Password"),
    "email": ("email", "Email"),
    "role": ("role", "Role"),
}

PRODUCT_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "name": ("name", "Name"),
    "category": ("category", "Category"),
    "quantity": ("quantity", "Quantity", "stock", "Stock"),
    "buyPrice": ("buyPrice", "Buy Price", "buy_price"),
    "sellPrice": ("sellPrice", "Sell Price", "sell_price"),
    "notes": ("notes", "Notes"),
    "createdAt": ("createdAt", "Created At"),
    "updatedAt": ("updatedAt", "Updated At"),
}

CATEGORY_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "name": ("name", "Name", "category", "Category"),
    "description": ("description", "Description"),
}

REPAIR_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "customerName": ("customerName", "Customer Name", "customer", "Customer"),
    "customerPhone": ("customerPhone", "Customer Phone", "phone", "Phone"),
    "deviceName": ("deviceName", "Device Name", "device", "Device"),
    "issue": ("issue", "Issue"),
    "estimatedCost": ("estimatedCost", "Estimated Cost", "cost", "Cost"),
    "status": ("status", "Status"),
    "notes": ("notes", "Notes"),
    "date": ("date", "Date", "createdAt"),
    "createdAt": ("createdAt", "Created At"),
    "updatedAt": ("updatedAt", "Updated At"),
}

BILL_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "billNumber": ("billNumber", "Bill Number"),
    "buyerName": ("buyerName", "Buyer Name"),
    "buyerPhone": ("buyerPhone", "Buyer Phone"),
    "buyerEmail": ("buyerEmail", "Buyer Email"),
    "buyerAddress": ("buyerAddress", "Buyer Address"),
    "items": ("items", "Items"),
    "gstEnabled": ("gstEnabled", "GST Enabled"),
    "gstType": ("gstType", "GST Type"),
    "cgstRate": ("cgstRate", "CGST Rate"),
    "sgstRate": ("sgstRate", "SGST Rate"),
    "igstRate": ("igstRate", "IGST Rate"),
    "paymentMethod": ("paymentMethod", "Payment Method"),
    "notes": ("notes", "Notes"),
    "showSignature": ("showSignature", "Show Signature"),
    "subtotal": ("subtotal", "Subtotal"),
    "cgstAmount": ("cgstAmount", "CGST Amount"),
    "sgstAmount": ("sgstAmount", "SGST Amount"),
    "igstAmount": ("igstAmount", "IGST Amount"),
    "total": ("total", "Total"),
    "date": ("date", "Date"),
    "createdAt": ("createdAt", "Created At"),
}

OTHER_FIELDS: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID"),
    "category": ("category", "Category"),
    "description": ("description", "Description"),
    "customerName": ("customerName", "Customer Name", "customer", "Customer"),
    "amount": ("amount", "Amount"),
    "notes": ("notes", "Notes"),
    "date": ("date", "Date", "createdAt", "Created At"),
    "createdAt": ("createdAt", "Created At", "date", "Date"),
    "updatedAt": ("updatedAt", "Updated At"),
}

SHOP_SETTINGS_FIELDS: Dict[str, tuple[str, ...]] = {
    "shopName": ("shopName", "Shop Name"),
    "shopPhone": ("shopPhone", "Shop Phone"),
    "shopEmail": ("shopEmail", "Shop Email"),
    "shopGstin": ("shopGstin", "Shop GSTIN", "GSTIN"),
    "shopAddress": ("shopAddress", "Shop Address"),
    "defaultCgstRate": ("defaultCgstRate", "Default CGST Rate"),
    "defaultSgstRate": ("defaultSgstRate", "Default SGST Rate"),
    "defaultIgstRate": ("defaultIgstRate", "Default IGST Rate"),
    "shopLogoUrl": ("shopLogoUrl", "Shop Logo URL"),
    "updatedAt": ("updatedAt", "Updated At"),
}


@dataclass(frozen=True)
class UserRow:
    """In-memory view of a row from the ``Users`` sheet."""

    user_id: int
    username: str
    password: str
    email: str
    role: str


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: int
    name: str
    category: str
    quantity: int
    buy_price: Decimal
    sell_price: Decimal
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class CategoryRow:
    """A product or other-revenue category."""

    category_id: int
    name: str
    description: str = ""


@dataclass(frozen=True)
class RepairRow:
    """In-memory view of a row from the ``Repairs`` sheet."""

    repair_id: int
    customer_name: str
    customer_phone: str
    device_name: str
    issue: str
    estimated_cost: Decimal
    status: str
    notes: str = ""
    date: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class BillRow:
    """In-memory view of a row from the ``Bills`` sheet.

    ``items`` holds the decoded JSON list exactly as stored. The monetary
    fields are the values computed when the bill was created.
    """

    bill_id: int
    bill_number: str
    buyer_name: str
    buyer_phone: str
    buyer_email: str
    buyer_address: str
    items: List[Dict[str, Any]]
    gst_enabled: bool
    gst_type: str
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    payment_method: str
    notes: str
    show_signature: bool
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total: Decimal
    date: str = ""
    created_at: str = ""


@dataclass(frozen=True)
class OtherRow:
    """In-memory view of a row from the ``Others`` sheet."""

    other_id: int
    category: str
    description: str
    customer_name: str
    amount: Decimal
    notes: str = ""
    date: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class ShopSettingsRow:
    """The single row of the ``ShopSettings`` sheet."""

    shop_name: str
    shop_phone: str
    shop_email: str
    shop_gstin: str
    shop_address: str
    default_cgst_rate: Decimal
    default_sgst_rate: Decimal
    default_igst_rate: Decimal
    shop_logo_url: str = ""
    updated_at: str = ""


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Lenient conversion of a cell value into :class:`~decimal.Decimal`.

    Blank, non-numeric and non-finite values collapse to ``default``.
    """

    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (ArithmeticError, ValueError):
        return default
    return result if result.is_finite() else default


def to_bool(value: Any) -> bool:
    """Interpret spreadsheet booleans, including ``"TRUE"``/``"false"`` text."""

    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def to_text(value: Any) -> str:
    return "" if value is None else str(value)


def _text_field(record: Mapping[str, Any], aliases: Dict[str, tuple[str, ...]], name: str, default: str = "") -> str:
    return to_text(pick_field(record, aliases[name], default))


def decode_items(raw: Any) -> List[Dict[str, Any]]:
    """Decode the JSON ``items`` cell of a bill. Garbage yields an empty list."""

    if isinstance(raw, list):
        return [dict(item) for item in raw if isinstance(item, Mapping)]
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        log.warning("Ignoring undecodable bill items cell: %r", raw[:80])
        return []
    if not isinstance(decoded, list):
        return []
    return [dict(item) for item in decoded if isinstance(item, Mapping)]


def deserialize_user(record: Mapping[str, Any]) -> UserRow:
    """Convert a ``Users`` record into a :class:`UserRow`."""

    return UserRow(
        user_id=record_id(record) or 0,
        username=_text_field(record, USER_FIELDS, "username"),
        password=_text_field(record, USER_FIELDS, "password"),
        email=_text_field(record, USER_FIELDS, "email"),
        role=_text_field(record, USER_FIELDS, "role", "admin"),
    )


def serialize_user(row: UserRow) -> Record:
    return {
        "id": row.user_id,
        "username": row.username,
        "password": row.password,
        "email": row.email,
        "role": row.role,
    }


def deserialize_product(record: Mapping[str, Any]) -> ProductRow:
    """Convert a ``Products`` record into a :class:`ProductRow`.

    Quantities stored under ``stock`` by older versions are honoured, and
    prices become :class:`~decimal.Decimal` regardless of whether the cell
    held a number or text.
    """

    return ProductRow(
        product_id=record_id(record) or 0,
        name=_text_field(record, PRODUCT_FIELDS, "name"),
        category=_text_field(record, PRODUCT_FIELDS, "category"),
        quantity=parse_int(pick_field(record, PRODUCT_FIELDS["quantity"], 0)) or 0,
        buy_price=to_decimal(pick_field(record, PRODUCT_FIELDS["buyPrice"])),
        sell_price=to_decimal(pick_field(record, PRODUCT_FIELDS["sellPrice"])),
        notes=_text_field(record, PRODUCT_FIELDS, "notes"),
        created_at=_text_field(record, PRODUCT_FIELDS, "createdAt"),
        updated_at=_text_field(record, PRODUCT_FIELDS, "updatedAt"),
    )


def serialize_product(row: ProductRow) -> Record:
    record: Record = {
        "id": row.product_id,
        "name": row.name,
        "category": row.category,
        "quantity": row.quantity,
        "buyPrice": row.buy_price,
        "sellPrice": row.sell_price,
        "notes": row.notes,
        "createdAt": row.created_at,
    }
    if row.updated_at:
        record["updatedAt"] = row.updated_at
    return record


def deserialize_category(record: Mapping[str, Any], fallback_id: int = 0) -> CategoryRow:
    """Convert a category record; ``fallback_id`` stands in for a missing id."""

    identifier = record_id(record)
    return CategoryRow(
        category_id=identifier if identifier is not None and identifier > 0 else fallback_id,
        name=_text_field(record, CATEGORY_FIELDS, "name").strip(),
        description=_text_field(record, CATEGORY_FIELDS, "description"),
    )


def serialize_category(row: CategoryRow) -> Record:
    return {"id": row.category_id, "name": row.name, "description": row.description}


def serialize_other_category(row: CategoryRow) -> Record:
    """Other categories persist without an id column."""

    return {"name": row.name, "description": row.description}


def deserialize_repair(record: Mapping[str, Any]) -> RepairRow:
    """Convert a ``Repairs`` record into a :class:`RepairRow`."""

    return RepairRow(
        repair_id=record_id(record) or 0,
        customer_name=_text_field(record, REPAIR_FIELDS, "customerName"),
        customer_phone=_text_field(record, REPAIR_FIELDS, "customerPhone"),
        device_name=_text_field(record, REPAIR_FIELDS, "deviceName"),
        issue=_text_field(record, REPAIR_FIELDS, "issue"),
        estimated_cost=to_decimal(pick_field(record, REPAIR_FIELDS["estimatedCost"])),
        status=_text_field(record, REPAIR_FIELDS, "status"),
        notes=_text_field(record, REPAIR_FIELDS, "notes"),
        date=_text_field(record, REPAIR_FIELDS, "date"),
        created_at=_text_field(record, REPAIR_FIELDS, "createdAt"),
        updated_at=_text_field(record, REPAIR_FIELDS, "updatedAt"),
    )


def serialize_repair(row: RepairRow) -> Record:
    record: Record = {
        "id": row.repair_id,
        "customerName": row.customer_name,
        "customerPhone": row.customer_phone,
        "deviceName": row.device_name,
        "issue": row.issue,
        "estimatedCost": row.estimated_cost,
        "status": row.status,
        "notes": row.notes,
        "date": row.date,
        "createdAt": row.created_at,
    }
    if row.updated_at:
        record["updatedAt"] = row.updated_at
    return record


def deserialize_bill(record: Mapping[str, Any]) -> BillRow:
    """Convert a ``Bills`` record into a :class:`BillRow`.

    The ``items`` cell is JSON-decoded. Stored totals are taken as-is.
    """

    created_at = _text_field(record, BILL_FIELDS, "createdAt")
    return BillRow(
        bill_id=record_id(record) or 0,
        bill_number=_text_field(record, BILL_FIELDS, "billNumber"),
        buyer_name=_text_field(record, BILL_FIELDS, "buyerName"),
        buyer_phone=_text_field(record, BILL_FIELDS, "buyerPhone"),
        buyer_email=_text_field(record, BILL_FIELDS, "buyerEmail"),
        buyer_address=_text_field(record, BILL_FIELDS, "buyerAddress"),
        items=decode_items(pick_field(record, BILL_FIELDS["items"])),
        gst_enabled=to_bool(pick_field(record, BILL_FIELDS["gstEnabled"], False)),
        gst_type=_text_field(record, BILL_FIELDS, "gstType", "intra"),
        cgst_rate=to_decimal(pick_field(record, BILL_FIELDS["cgstRate"])),
        sgst_rate=to_decimal(pick_field(record, BILL_FIELDS["sgstRate"])),
        igst_rate=to_decimal(pick_field(record, BILL_FIELDS["igstRate"])),
        payment_method=_text_field(record, BILL_FIELDS, "paymentMethod", "Cash"),
        notes=_text_field(record, BILL_FIELDS, "notes"),
        show_signature=to_bool(pick_field(record, BILL_FIELDS["showSignature"], False)),
        subtotal=to_decimal(pick_field(record, BILL_FIELDS["subtotal"])),
        cgst_amount=to_decimal(pick_field(record, BILL_FIELDS["cgstAmount"])),
        sgst_amount=to_decimal(pick_field(record, BILL_FIELDS["sgstAmount"])),
        igst_amount=to_decimal(pick_field(record, BILL_FIELDS["igstAmount"])),
        total=to_decimal(pick_field(record, BILL_FIELDS["total"])),
        date=_text_field(record, BILL_FIELDS, "date", created_at.split("T")[0]),
        created_at=created_at,
    )


def serialize_bill(row: BillRow) -> Record:
    return {
        "id": row.bill_id,
        "billNumber": row.bill_number,
        "buyerName": row.buyer_name,
        "buyerPhone": row.buyer_phone,
        "buyerEmail": row.buyer_email,
        "buyerAddress": row.buyer_address,
        "items": list(row.items),
        "gstEnabled": row.gst_enabled,
        "gstType": row.gst_type,
        "cgstRate": row.cgst_rate,
        "sgstRate": row.sgst_rate,
        "igstRate": row.igst_rate,
        "paymentMethod": row.payment_method,
        "notes": row.notes,
        "showSignature": row.show_signature,
        "subtotal": row.subtotal,
        "cgstAmount": row.cgst_amount,
        "sgstAmount": row.sgst_amount,
        "igstAmount": row.igst_amount,
        "total": row.total,
        "date": row.date,
        "createdAt": row.created_at,
    }


def deserialize_other(record: Mapping[str, Any]) -> OtherRow:
    """Convert an ``Others`` record into an :class:`OtherRow`."""

    return OtherRow(
        other_id=record_id(record) or 0,
        category=_text_field(record, OTHER_FIELDS, "category"),
        description=_text_field(record, OTHER_FIELDS, "description"),
        customer_name=_text_field(record, OTHER_FIELDS, "customerName"),
        amount=to_decimal(pick_field(record, OTHER_FIELDS["amount"])),
        notes=_text_field(record, OTHER_FIELDS, "notes"),
        date=_text_field(record, OTHER_FIELDS, "date"),
        created_at=_text_field(record, OTHER_FIELDS, "createdAt"),
        updated_at=_text_field(record, OTHER_FIELDS, "updatedAt"),
    )


def serialize_other(row: OtherRow) -> Record:
    record: Record = {
        "id": row.other_id,
        "category": row.category,
        "description": row.description,
        "customerName": row.customer_name,
        "amount": row.amount,
        "notes": row.notes,
        "date": row.date,
        "createdAt": row.created_at,
    }
    if row.updated_at:
        record["updatedAt"] = row.updated_at
    return record


def deserialize_shop_settings(record: Mapping[str, Any], defaults: ShopSettingsRow) -> ShopSettingsRow:
    """Convert the settings record, filling gaps from ``defaults``."""

    fields = SHOP_SETTINGS_FIELDS
    return ShopSettingsRow(
        shop_name=to_text(pick_field(record, fields["shopName"], defaults.shop_name)),
        shop_phone=to_text(pick_field(record, fields["shopPhone"], defaults.shop_phone)),
        shop_email=to_text(pick_field(record, fields["shopEmail"], defaults.shop_email)),
        shop_gstin=to_text(pick_field(record, fields["shopGstin"], "")),
        shop_address=to_text(pick_field(record, fields["shopAddress"], defaults.shop_address)),
        default_cgst_rate=to_decimal(pick_field(record, fields["defaultCgstRate"]), defaults.default_cgst_rate),
        default_sgst_rate=to_decimal(pick_field(record, fields["defaultSgstRate"]), defaults.default_sgst_rate),
        default_igst_rate=to_decimal(pick_field(record, fields["defaultIgstRate"]), defaults.default_igst_rate),
        shop_logo_url=to_text(pick_field(record, fields["shopLogoUrl"], "")),
        updated_at=to_text(pick_field(record, fields["updatedAt"], "")),
    )


def serialize_shop_settings(row: ShopSettingsRow) -> Record:
    record: Record = {
        "shopName": row.shop_name,
        "shopPhone": row.shop_phone,
        "shopEmail": row.shop_email,
        "shopGstin": row.shop_gstin,
        "shopAddress": row.shop_address,
        "defaultCgstRate": row.default_cgst_rate,
        "defaultSgstRate": row.default_sgst_rate,
        "defaultIgstRate": row.default_igst_rate,
        "shopLogoUrl": row.shop_logo_url,
    }
    if row.updated_at:
        record["updatedAt"] = row.updated_at
    return record
