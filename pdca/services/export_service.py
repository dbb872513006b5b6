"""Excel export of the finalized-in-period report.

Two sheets:
  Summary   one row per user with the finalized count for the period
  Detail    one row per (user, project, action)
"""
import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
PRIORITY_FONT = Font(color="E74C3C", bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

SUMMARY_HEADERS = ["User", "Finalized"]
DETAIL_HEADERS = ["User", "Project", "#", "Action", "Status", "Finalized on", "Priority"]


def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_finalized_xlsx(report: dict, registry=None) -> io.BytesIO:
    """Build the workbook for a ``finalized_in_period`` report.

    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws["A1"] = f"Finalized actions {report['start']} to {report['end']}"
    ws["A1"].font = Font(size=14, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, header in enumerate(SUMMARY_HEADERS, 1):
        ws.cell(row=header_row, column=col, value=header)
    _apply_header_style(ws, header_row, len(SUMMARY_HEADERS))

    row = header_row + 1
    for user_row in report["rows"]:
        ws.cell(row=row, column=1, value=user_row["name"]).border = THIN_BORDER
        ws.cell(row=row, column=2, value=user_row["count"]).border = THIN_BORDER
        row += 1
    ws.cell(row=row, column=1, value="Total").font = Font(bold=True)
    ws.cell(row=row, column=2, value=report["total"]).font = Font(bold=True)
    _auto_width(ws)

    detail = wb.create_sheet("Detail")
    for col, header in enumerate(DETAIL_HEADERS, 1):
        detail.cell(row=1, column=col, value=header)
    _apply_header_style(detail, 1, len(DETAIL_HEADERS))

    row = 2
    for user_row in report["rows"]:
        for project in user_row["projects"]:
            for action in project["actions"]:
                status = action.get("status")
                if registry is not None:
                    status = registry.lookup(status).label
                values = [
                    user_row["name"],
                    project["project_title"],
                    action.get("seq_id"),
                    action.get("action"),
                    status,
                    action.get("actual_end_date"),
                    "Yes" if action.get("priority") else "",
                ]
                for col, value in enumerate(values, 1):
                    cell = detail.cell(row=row, column=col, value=value)
                    cell.border = THIN_BORDER
                if action.get("priority"):
                    detail.cell(row=row, column=7).font = PRIORITY_FONT
                row += 1
    detail.freeze_panes = "A2"
    _auto_width(detail)

    logger.info("Exported finalized report %s..%s rows=%d",
                report["start"], report["end"], row - 2)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf
