import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Sequence

import openpyxl  # type: ignore
from openpyxl.drawing.image import Image as XLImage  # type: ignore
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side  # type: ignore

from backend.models import ReportRow
from backend.services.reports import REPORT_COLUMNS

logger = logging.getLogger(__name__)

HEADER_FILL = "B91C1C"
ALT_ROW_FILL = "F5F5F5"
COLUMN_WIDTHS = (26, 28, 20, 10, 10, 10, 10)


def _row_values(row: ReportRow) -> list[str]:
    return [
        f"{row['date']} - {row['weekday']}",
        row["name"],
        row["role"],
        row["entry1"],
        row["exit1"],
        row["entry2"],
        row["exit2"],
    ]


def report_filename(period: str, extension: str) -> str:
    slug = period.replace("/", "-").replace(" ", "_")
    return f"attendance_report_{slug}.{extension}"


def rows_to_csv(rows: Sequence[ReportRow], period: str) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Period", period])
    writer.writerow(list(REPORT_COLUMNS))
    for row in rows:
        writer.writerow(_row_values(row))
    return output.getvalue()


def rows_to_xlsx(
    rows: Sequence[ReportRow],
    period: str,
    *,
    organization: str,
    logo_path: Path | None = None,
    generated_at: datetime | None = None,
) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Attendance"

    first_row = 1
    if logo_path is not None and logo_path.exists():
        try:
            logo = XLImage(str(logo_path))
            logo.height, logo.width = 45, int(45 * logo.width / max(1, logo.height))
            ws.add_image(logo, "A1")
            first_row = 4
        except (OSError, ValueError) as e:
            logger.warning("Could not embed report logo %s: %s", logo_path, e)

    ws.cell(row=first_row, column=1, value=f"{organization} - Attendance Report").font = Font(bold=True, size=14)
    ws.cell(row=first_row + 1, column=1, value=f"Period: {period}")
    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M")
    ws.cell(row=first_row + 2, column=1, value=f"Generated: {stamp}")

    header_row = first_row + 4
    side = Side(style="thin")
    border = Border(left=side, right=side, top=side, bottom=side)
    header_fill = PatternFill("solid", fgColor=HEADER_FILL)
    for col, (title, width) in enumerate(zip(REPORT_COLUMNS, COLUMN_WIDTHS), start=1):
        c = ws.cell(row=header_row, column=col, value=title)
        c.fill = header_fill
        c.font = Font(bold=True, color="FFFFFF")
        c.alignment = Alignment(horizontal="center")
        c.border = border
        ws.column_dimensions[c.column_letter].width = width

    alt_fill = PatternFill("solid", fgColor=ALT_ROW_FILL)
    for offset, row in enumerate(rows, start=1):
        rn = header_row + offset
        for col, value in enumerate(_row_values(row), start=1):
            c = ws.cell(row=rn, column=col, value=value)
            c.border = border
            if col > 3:
                c.alignment = Alignment(horizontal="center")
            if offset % 2 == 0:
                c.fill = alt_fill

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
