from datetime import date

from fastapi import APIRouter, HTTPException, Response

from backend.config import LOGO_PATH, ORGANIZATION_NAME, REPORT_TZ, REPORT_TZ_OFFSET
from backend.errors import EmptyReportPeriod
from backend.models import ReportRow
from backend.services.export import report_filename, rows_to_csv, rows_to_xlsx
from backend.services.reports import load_report, month_bounds, period_label

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _resolve_period(month: str | None, start: str | None, end: str | None) -> tuple[date, date]:
    try:
        if month:
            return month_bounds(month)
        if start:
            period_start = date.fromisoformat(start)
            period_end = date.fromisoformat(end) if end else period_start
            if period_end < period_start:
                raise HTTPException(status_code=400, detail="end must not be before start.")
            return period_start, period_end
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    raise HTTPException(status_code=400, detail="Provide month=YYYY-MM or start=YYYY-MM-DD.")


def _rows_or_404(period_start: date, period_end: date) -> list[ReportRow]:
    try:
        return load_report(period_start, period_end, REPORT_TZ)
    except EmptyReportPeriod as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/reports/attendance")
def attendance_report(month: str | None = None, start: str | None = None, end: str | None = None):
    period_start, period_end = _resolve_period(month, start, end)
    rows = _rows_or_404(period_start, period_end)
    return {
        "period": period_label(period_start, period_end),
        "start": period_start.isoformat(),
        "end": period_end.isoformat(),
        "tz_offset": REPORT_TZ_OFFSET,
        "rows": rows,
    }


@router.get("/reports/attendance.csv")
def attendance_report_csv(month: str | None = None, start: str | None = None, end: str | None = None):
    period_start, period_end = _resolve_period(month, start, end)
    rows = _rows_or_404(period_start, period_end)
    label = period_label(period_start, period_end)
    return Response(
        content=rows_to_csv(rows, label),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(label, "csv")}"'},
    )


@router.get("/reports/attendance.xlsx")
def attendance_report_xlsx(month: str | None = None, start: str | None = None, end: str | None = None):
    period_start, period_end = _resolve_period(month, start, end)
    rows = _rows_or_404(period_start, period_end)
    label = period_label(period_start, period_end)
    content = rows_to_xlsx(rows, label, organization=ORGANIZATION_NAME, logo_path=LOGO_PATH)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{report_filename(label, "xlsx")}"'},
    )
