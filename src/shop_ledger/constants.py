"""Names and defaults shared by every layer of the shop ledger.

The workbook layout, the status vocabulary for service jobs and the default
tax rates live here so the sheet store, the services and the command line all
agree on them.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


class SheetName(str, Enum):
    """Enumerate the worksheets of the unified data workbook."""

    USERS = "Users"
    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    REPAIRS = "Repairs"
    BILLS = "Bills"
    SALES = "Sales"
    SHOP_SETTINGS = "ShopSettings"
    OTHERS = "Others"
    OTHER_CATEGORIES = "OtherCategories"


class RepairStatus(str, Enum):
    """Statuses offered for service jobs. Stored values are free text."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DELIVERED = "Delivered"


class GstType(str, Enum):
    """Intra-state bills carry CGST + SGST, inter-state bills carry IGST."""

    INTRA = "intra"
    INTER = "inter"


class ChartView(str, Enum):
    """Bucketing modes understood by the revenue chart."""

    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"
    MONTH = "month"
    CUSTOM = "custom"


# Legacy per-entity workbooks folded into the unified file on first start.
LEGACY_WORKBOOKS: dict[SheetName, str] = {
    SheetName.USERS: "users.xlsx",
    SheetName.PRODUCTS: "products.xlsx",
    SheetName.CATEGORIES: "categories.xlsx",
    SheetName.REPAIRS: "repairs.xlsx",
    SheetName.BILLS: "bills.xlsx",
    SheetName.SALES: "sales.xlsx",
    SheetName.SHOP_SETTINGS: "shop-settings.xlsx",
    SheetName.OTHERS: "others.xlsx",
    SheetName.OTHER_CATEGORIES: "other-categories.xlsx",
}

# Column headers written when a fresh workbook is created.
SHEET_COLUMNS: dict[SheetName, tuple[str, ...]] = {
    SheetName.USERS: ("id", "username", "password", "email", "role"),
    SheetName.PRODUCTS: (
        "id", "name", "category", "quantity", "buyPrice", "sellPrice", "notes", "createdAt",
    ),
    SheetName.CATEGORIES: ("id", "name", "description"),
    SheetName.REPAIRS: (
        "id", "customerName", "customerPhone", "deviceName", "issue",
        "estimatedCost", "status", "notes", "date", "createdAt",
    ),
    SheetName.BILLS: (
        "id", "billNumber", "buyerName", "buyerPhone", "buyerEmail", "buyerAddress",
        "items", "gstEnabled", "gstType", "cgstRate", "sgstRate", "igstRate",
        "paymentMethod", "notes", "showSignature", "subtotal", "cgstAmount",
        "sgstAmount", "igstAmount", "total", "date", "createdAt",
    ),
    SheetName.SALES: ("id", "date", "amount", "notes"),
    SheetName.SHOP_SETTINGS: (
        "shopName", "shopPhone", "shopEmail", "shopGstin", "shopAddress",
        "defaultCgstRate", "defaultSgstRate", "defaultIgstRate", "shopLogoUrl",
    ),
    SheetName.OTHERS: (
        "id", "category", "description", "customerName", "amount", "notes", "date", "createdAt",
    ),
    SheetName.OTHER_CATEGORIES: ("name", "description"),
}

DEFAULT_CGST_RATE = Decimal("9.0")
DEFAULT_SGST_RATE = Decimal("9.0")
DEFAULT_IGST_RATE = Decimal("18.0")
DEFAULT_PAYMENT_METHOD = "Cash"
DEFAULT_SHOP_NAME = "My Shop"

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "Admin@123"
DEFAULT_ADMIN_ROLE = "admin"

DEFAULT_OTHER_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Recharge", "Mobile/DTH Recharge"),
    ("Bill Payment", "Utility Bill Payments"),
    ("Money Transfer", "Money Transfer Services"),
    ("Xerox", "Photocopy Services"),
)

LOW_STOCK_THRESHOLD = 5
MIN_PASSWORD_LENGTH = 6
LOCK_RETRIES = 3
LOCK_RETRY_DELAY_SECONDS = 0.2
BILL_NUMBER_PREFIX = "BILL-"


__all__ = [
    "SheetName",
    "RepairStatus",
    "GstType",
    "ChartView",
    "LEGACY_WORKBOOKS",
    "SHEET_COLUMNS",
    "DEFAULT_CGST_RATE",
    "DEFAULT_SGST_RATE",
    "DEFAULT_IGST_RATE",
    "DEFAULT_PAYMENT_METHOD",
    "DEFAULT_SHOP_NAME",
    "DEFAULT_ADMIN_USERNAME",
    "DEFAULT_ADMIN_PASSWORD",
    "DEFAULT_ADMIN_ROLE",
    "DEFAULT_OTHER_CATEGORIES",
    "LOW_STOCK_THRESHOLD",
    "MIN_PASSWORD_LENGTH",
    "LOCK_RETRIES",
    "LOCK_RETRY_DELAY_SECONDS",
    "BILL_NUMBER_PREFIX",
]
