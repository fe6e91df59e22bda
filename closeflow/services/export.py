"""Spreadsheet exports of workflow status and approval logs.

Both exports render from snapshots taken by the facade, so they never touch
live batch state. A ``threading.Event`` passed as ``cancel_event`` is checked
before every row; once set the export stops with ExportCancelled.
"""

import io
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from closeflow.core.errors import ExportCancelled

logger = logging.getLogger(__name__)

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
BODY_FONT = Font(name="Calibri", size=10)
OVERDUE_FONT = Font(name="Calibri", size=10, color="C00000")

WORKFLOW_COLUMNS = [
    "Step", "Status", "Owner", "Due Date", "Progress %",
    "Dependencies", "Critical Path", "Overdue",
]
APPROVAL_LOG_COLUMNS = ["Batch Date", "Level", "Approver", "Action", "Timestamp", "Reason"]


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ExportCancelled()


def _write_header(ws: Worksheet, columns: Sequence[str]) -> None:
    ws.append(list(columns))
    for col in range(1, len(columns) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"


def _auto_width(ws: Worksheet) -> None:
    for col in range(1, ws.max_column + 1):
        max_len = 0
        for row in ws.iter_rows(min_row=1, max_row=min(ws.max_row, 50), min_col=col, max_col=col):
            for cell in row:
                if cell.value is not None:
                    max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[get_column_letter(col)].width = min(max(max_len + 2, 12), 60)


def _to_bytes(wb: openpyxl.Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def workflow_workbook(
    batch_id: str,
    steps: Iterable[Dict[str, Any]],
    progress: Dict[str, Any],
    cancel_event: Optional[threading.Event] = None,
) -> bytes:
    """Render step views and the progress summary as an XLSX workbook."""
    _check_cancelled(cancel_event)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Workflow"
    _write_header(ws, WORKFLOW_COLUMNS)

    names = {}
    rows: List[Dict[str, Any]] = list(steps)
    for step in rows:
        names[step["id"]] = step["name"]

    for step in rows:
        _check_cancelled(cancel_event)
        ws.append([
            step["name"],
            step["status"],
            step.get("owner") or "",
            step.get("dueDate") or "",
            step.get("progress", 0),
            ", ".join(names.get(dep, dep) for dep in step.get("dependencies", [])),
            "Yes" if step.get("isOnCriticalPath") else "No",
            "Yes" if step.get("isOverdue") else "No",
        ])
        for cell in ws[ws.max_row]:
            cell.font = OVERDUE_FONT if step.get("isOverdue") else BODY_FONT
    _auto_width(ws)

    summary = wb.create_sheet("Summary")
    _write_header(summary, ["Metric", "Value"])
    for label, key in (
        ("Batch", "batchId"),
        ("Total Steps", "totalSteps"),
        ("Completed Steps", "completedSteps"),
        ("Progress %", "percentage"),
        ("Status", "status"),
        ("Estimated Completion", "estimatedCompletionDate"),
    ):
        value = batch_id if key == "batchId" else progress.get(key)
        summary.append([label, "" if value is None else value])
    _auto_width(summary)

    logger.info("Exported workflow for batch %s (%d steps)", batch_id, len(rows))
    return _to_bytes(wb)


def approval_logs_workbook(
    entries: Iterable[Dict[str, Any]],
    cancel_event: Optional[threading.Event] = None,
) -> bytes:
    """Render approval log entries as an XLSX workbook."""
    _check_cancelled(cancel_event)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Approval Logs"
    _write_header(ws, APPROVAL_LOG_COLUMNS)

    count = 0
    for entry in entries:
        _check_cancelled(cancel_event)
        level = entry["level"]
        ws.append([
            entry.get("batchDate") or "",
            f"Level {level}" if level else "Post-approval",
            entry["user"],
            entry["action"],
            entry["timestamp"],
            entry.get("reason") or "",
        ])
        count += 1
    _auto_width(ws)

    logger.info("Exported %d approval log entries", count)
    return _to_bytes(wb)
