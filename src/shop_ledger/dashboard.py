"""Revenue dashboard: headline figures and chart buckets.

Revenue is gathered from three sheets. ``Sales`` holds ad-hoc entries from
older versions, ``Bills`` contributes each bill's stored total and ``Others``
contributes miscellaneous transactions. Rows whose date or amount cannot be
read simply contribute nothing.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import data_manager, log
from .constants import ChartView, SheetName
from .core_logic import MissingReferenceError, RuntimeContext, read_records, utc_now
from .data_manager import PRODUCT_FIELDS, REPAIR_FIELDS, pick_field, to_decimal

ZERO = Decimal("0")
PENDING_STATUSES = frozenset({"pending", "in progress", ""})
EXPORT_NAME_TEMPLATE = "shop-data-{day}.xlsx"

# Field aliases per revenue source: (amount keys, date keys).
REVENUE_SOURCES: Tuple[Tuple[SheetName, Tuple[str, ...], Tuple[str, ...]], ...] = (
    (SheetName.SALES, ("amount", "Amount", "total", "Total"), ("date", "Date", "createdAt")),
    (SheetName.BILLS, ("total", "Total"), ("date", "Date", "createdAt")),
    (SheetName.OTHERS, ("amount", "Amount"), ("date", "Date", "createdAt")),
)


@dataclass(frozen=True)
class RevenueEntry:
    day: Optional[date]
    amount: Decimal


@dataclass(frozen=True)
class ChartData:
    labels: List[str]
    data: List[Decimal]

    def as_dict(self) -> Dict[str, List[Any]]:
        return {"labels": list(self.labels), "data": list(self.data)}


@dataclass(frozen=True)
class DashboardStats:
    """Headline figures shown above the revenue chart."""

    today_revenue: Decimal
    total_revenue: Decimal
    pending_services: int
    low_stock_alerts: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "todayRevenue": self.today_revenue,
            "totalRevenue": self.total_revenue,
            "pendingServices": self.pending_services,
            "lowStockAlerts": self.low_stock_alerts,
        }


def parse_entry_date(value: Any) -> Optional[date]:
    """Read a date cell, an ISO date string or an ISO timestamp."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip().split("T")[0][:10])
    except ValueError:
        return None


def _today(today: Optional[date]) -> date:
    return today if today is not None else utc_now().date()


def collect_revenue(context: RuntimeContext) -> List[RevenueEntry]:
    """Combine Sales, Bills and Others into one list of dated amounts."""

    entries: List[RevenueEntry] = []
    for sheet, amount_keys, date_keys in REVENUE_SOURCES:
        for record in read_records(context, sheet):
            entries.append(
                RevenueEntry(
                    day=parse_entry_date(pick_field(record, date_keys)),
                    amount=to_decimal(pick_field(record, amount_keys, 0)),
                )
            )
    return entries


def _sum_between(entries: Iterable[RevenueEntry], first: date, last: date) -> Decimal:
    return sum(
        (entry.amount for entry in entries if entry.day is not None and first <= entry.day <= last),
        ZERO,
    )


def _day_label(day: date) -> str:
    return f"{day.day} {day:%b}"


def _shift_month(day: date, months_back: int) -> Tuple[int, int]:
    index = day.year * 12 + (day.month - 1) - months_back
    return index // 12, index % 12 + 1


def empty_chart() -> ChartData:
    return ChartData(labels=[], data=[])


def bucket_revenue(
    entries: Sequence[RevenueEntry],
    view: ChartView,
    *,
    today: date,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ChartData:
    """Group revenue into chart buckets, oldest first.

    ``7days`` gives one bucket per day ending today. ``30days`` gives five
    seven-day windows labelled ``Week 1`` to ``Week 5``; they are not
    calendar weeks. ``month`` gives the last twelve calendar months. A
    ``custom`` range of up to 31 days is shown per day, anything longer in
    seven-day windows clipped to the end date.

    Args:
        entries (Sequence[RevenueEntry]): Dated amounts to bucket.
        view (ChartView): Bucketing mode.
        today (date): Reference date for the relative views.
        start_date (date | None): First day of a custom range.
        end_date (date | None): Last day of a custom range, inclusive.

    Returns:
        ChartData: Parallel label and amount lists. Both are empty when a
        custom range is incomplete or ends before it starts.
    """

    labels: List[str] = []
    data: List[Decimal] = []

    if view is ChartView.LAST_7_DAYS:
        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            labels.append(f"{day:%a} {day.day}")
            data.append(_sum_between(entries, day, day))

    elif view is ChartView.LAST_30_DAYS:
        for week in range(4, -1, -1):
            first = today - timedelta(days=week * 7 + 6)
            last = today - timedelta(days=week * 7)
            labels.append(f"Week {5 - week}")
            data.append(_sum_between(entries, first, last))

    elif view is ChartView.MONTH:
        for months_back in range(11, -1, -1):
            year, month = _shift_month(today, months_back)
            labels.append(f"{date(year, month, 1):%b} {year}")
            data.append(
                sum(
                    (
                        entry.amount
                        for entry in entries
                        if entry.day is not None and (entry.day.year, entry.day.month) == (year, month)
                    ),
                    ZERO,
                )
            )

    else:
        if start_date is None or end_date is None or end_date < start_date:
            log.warning("Custom chart range %s to %s is unusable", start_date, end_date)
            return empty_chart()

        span = (end_date - start_date).days
        if span <= 31:
            for offset in range(span + 1):
                day = start_date + timedelta(days=offset)
                labels.append(_day_label(day))
                data.append(_sum_between(entries, day, day))
        else:
            first = start_date
            while first <= end_date:
                last = min(first + timedelta(days=6), end_date)
                labels.append(f"{_day_label(first)} - {_day_label(last)}")
                data.append(_sum_between(entries, first, last))
                first = last + timedelta(days=1)

    return ChartData(labels=labels, data=data)


def get_revenue_chart_data(
    context: RuntimeContext,
    view_type: Optional[str] = None,
    start_date: Any = None,
    end_date: Any = None,
    *,
    today: Optional[date] = None,
) -> ChartData:
    """Load revenue from the workbook and bucket it for ``view_type``.

    A missing view type means ``30days``. An unknown view type, or a custom
    range with a missing or unreadable date, gives an empty chart.
    """

    try:
        view = ChartView(view_type or ChartView.LAST_30_DAYS.value)
    except ValueError:
        log.warning("Unknown chart view type '%s'", view_type)
        return empty_chart()

    first = last = None
    if view is ChartView.CUSTOM:
        first = parse_entry_date(start_date)
        last = parse_entry_date(end_date)

    return bucket_revenue(
        collect_revenue(context),
        view,
        today=_today(today),
        start_date=first,
        end_date=last,
    )


def get_today_revenue(context: RuntimeContext, *, today: Optional[date] = None) -> Decimal:
    day = _today(today)
    return _sum_between(collect_revenue(context), day, day)


def get_total_revenue(context: RuntimeContext) -> Decimal:
    return sum((entry.amount for entry in collect_revenue(context)), ZERO)


def get_pending_services_count(context: RuntimeContext) -> int:
    """Count service jobs that are pending, in progress or have no status."""

    count = 0
    for record in read_records(context, SheetName.REPAIRS):
        status = str(pick_field(record, REPAIR_FIELDS["status"], "")).strip().lower()
        if status in PENDING_STATUSES:
            count += 1
    return count


def get_low_stock_count(context: RuntimeContext) -> int:
    """Count products that are in stock but at or below the alert threshold."""

    threshold = context.settings.low_stock_threshold
    count = 0
    for record in read_records(context, SheetName.PRODUCTS):
        quantity = to_decimal(pick_field(record, PRODUCT_FIELDS["quantity"], 0))
        if 0 < quantity <= threshold:
            count += 1
    return count


def get_dashboard_stats(context: RuntimeContext, *, today: Optional[date] = None) -> DashboardStats:
    entries = collect_revenue(context)
    day = _today(today)
    return DashboardStats(
        today_revenue=_sum_between(entries, day, day),
        total_revenue=sum((entry.amount for entry in entries), ZERO),
        pending_services=get_pending_services_count(context),
        low_stock_alerts=get_low_stock_count(context),
    )


def export_filename(today: Optional[date] = None) -> str:
    return EXPORT_NAME_TEMPLATE.format(day=_today(today).isoformat())


def export_workbook(
    context: RuntimeContext,
    destination: Optional[Path] = None,
    *,
    today: Optional[date] = None,
) -> Path:
    """Copy the raw workbook for download.

    Args:
        context (RuntimeContext): Active runtime context.
        destination (Path | None): Target file or directory. Defaults to the
            current working directory. Directories receive the file as
            ``shop-data-YYYY-MM-DD.xlsx``.
        today (date | None): Date used in the default file name.

    Returns:
        Path: Location of the copy.

    Raises:
        MissingReferenceError: If the workbook does not exist yet.
    """

    source = context.data_file
    if not source.exists():
        log.warning("Export requested but '%s' does not exist", source)
        raise MissingReferenceError("Excel file not found")

    target = Path(destination).expanduser() if destination is not None else Path.cwd()
    if target.is_dir():
        target = target / export_filename(today)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)
    log.info("Exported workbook to '%s'", target)
    return target.resolve()


def reset_all_data(context: RuntimeContext) -> List[str]:
    """Empty every sheet except ``Users``."""

    cleared = data_manager.reset_all_data(
        context.data_file,
        retries=context.settings.lock_retries,
        retry_delay=context.settings.lock_retry_delay,
    )
    log.warning("All shop data cleared from '%s'", context.data_file)
    return cleared
