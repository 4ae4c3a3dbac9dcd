"""Creation of an empty shop ledger workbook.

Used by the ``init`` command and by the test suite so that a fresh workbook
always carries the same sheets in the same order with bold header rows.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import SHEET_COLUMNS, SheetName


def create_data_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[SheetName, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the unified workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) an existing file is left
    alone and ``FileExistsError`` is raised.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet.value)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    log.info("Created data workbook '%s'", destination)
    return destination
