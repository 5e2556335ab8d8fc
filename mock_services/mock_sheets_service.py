"""
mock_sheets_service.py — Mock Implementation of the Google Sheets values API

This module provides a simulated spreadsheet backend for local development and
for the test-suite. It exposes the subset of the Sheets v4 REST API the order
ledger uses and keeps all spreadsheets in memory.

Simulation Scenarios (chosen by spreadsheet id prefix):
    • "fail_"      → every request answers 503 (ledger outage)
    • "readonly_"  → reads work, writes answer 503
    • "noheader_"  → header writes (PUT) answer 403, appends work
    • anything else → normal behaviour

Endpoints:
    GET  /v4/spreadsheets/{id}                       — sheet titles
    GET  /v4/spreadsheets/{id}/values/{range}        — read a range
    PUT  /v4/spreadsheets/{id}/values/{range}        — overwrite a range
    POST /v4/spreadsheets/{id}/values/{range}:append — append rows

Port:
    Default: 8002 (HTTP). Point SHEETS_API_URL at http://localhost:8002.
"""

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Body, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

app = FastAPI(title="Mock Google Sheets Service")
log = logging.getLogger(__name__)

SHEET_TITLE = "Orders"

# spreadsheet id -> sheet title -> rows
SPREADSHEETS: Dict[str, Dict[str, List[List[Any]]]] = defaultdict(lambda: {SHEET_TITLE: []})

_CELLS = re.compile(r"^([A-Z]+)(\d*)(?::([A-Z]+)(\d*))?$")


@app.exception_handler(HTTPException)
async def google_error(request: Request, exc: HTTPException):
    """Answers with the error envelope the Google client libraries parse into HttpError."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.status_code, "message": exc.detail}},
    )


def reset():
    """Drops all in-memory spreadsheets."""
    SPREADSHEETS.clear()


def rows_of(spreadsheet_id: str, sheet: str = SHEET_TITLE) -> List[List[Any]]:
    return SPREADSHEETS[spreadsheet_id][sheet]


def _column_index(letters: str) -> int:
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index


def _column_letters(index: int) -> str:
    letters = ""
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def parse_a1(a1: str) -> Tuple[str, int, int, Optional[int], Optional[int]]:
    """
    Parses "'Orders'!A2:M" into (sheet, first_col, first_row, last_col, last_row).

    Columns and rows are 1-based; an open end is returned as None.
    """
    sheet, _, cells = a1.rpartition("!")
    if sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    match = _CELLS.match(cells)
    if not sheet or not match:
        raise HTTPException(status_code=400, detail=f"Unable to parse range: {a1}")
    col1, row1, col2, row2 = match.groups()
    return (
        sheet,
        _column_index(col1),
        int(row1) if row1 else 1,
        _column_index(col2) if col2 else _column_index(col1),
        int(row2) if row2 else None,
    )


def _check(spreadsheet_id: str, authorization: Optional[str], write: bool = False):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Request is missing required authentication credential.")
    if spreadsheet_id.startswith("fail_") or (write and spreadsheet_id.startswith("readonly_")):
        log.warning(f"[SHEETS] Simulating outage for {spreadsheet_id}.")
        raise HTTPException(status_code=503, detail="The service is currently unavailable.")


def _sheet_rows(spreadsheet_id: str, sheet: str) -> List[List[Any]]:
    sheets = SPREADSHEETS[spreadsheet_id]
    if sheet not in sheets:
        raise HTTPException(status_code=400, detail=f"Unable to parse range: {sheet}")
    return sheets[sheet]


@app.get("/v4/spreadsheets/{spreadsheet_id}")
def get_spreadsheet(spreadsheet_id: str, authorization: Optional[str] = Header(None)):
    _check(spreadsheet_id, authorization)
    titles = list(SPREADSHEETS[spreadsheet_id])
    return {"spreadsheetId": spreadsheet_id, "sheets": [{"properties": {"title": t}} for t in titles]}


@app.post("/v4/spreadsheets/{spreadsheet_id}/values/{a1_range}:append")
def append_values(
        spreadsheet_id: str,
        a1_range: str,
        body: dict = Body(...),
        authorization: Optional[str] = Header(None),
):
    """
    Appends rows after the last non-empty row of the sheet.

    Returns:
        dict: `updates.updatedRange` in A1 notation, e.g. "'Orders'!A2:M2".
    """
    _check(spreadsheet_id, authorization, write=True)
    sheet, first_col, _, _, _ = parse_a1(a1_range)
    rows = _sheet_rows(spreadsheet_id, sheet)
    values = body.get("values") or []

    start = len(rows) + 1
    rows.extend([list(v) for v in values])
    width = max((len(v) for v in values), default=1)
    end = start + len(values) - 1
    updated_range = (
        f"'{sheet}'!{_column_letters(first_col)}{start}:"
        f"{_column_letters(first_col + width - 1)}{end}"
    )
    log.info(f"[SHEETS] Appended {len(values)} row(s) to {spreadsheet_id} at {updated_range}.")
    return {
        "spreadsheetId": spreadsheet_id,
        "updates": {"updatedRange": updated_range, "updatedRows": len(values)},
    }


@app.get("/v4/spreadsheets/{spreadsheet_id}/values/{a1_range}")
def get_values(spreadsheet_id: str, a1_range: str, authorization: Optional[str] = Header(None)):
    _check(spreadsheet_id, authorization)
    sheet, first_col, first_row, last_col, last_row = parse_a1(a1_range)
    rows = _sheet_rows(spreadsheet_id, sheet)

    selected = []
    for row in rows[first_row - 1:last_row]:
        cells = row[first_col - 1:last_col]
        while cells and cells[-1] in ("", None):
            cells = cells[:-1]
        selected.append(cells)
    while selected and not selected[-1]:
        selected.pop()

    result = {"range": a1_range, "majorDimension": "ROWS"}
    if selected:
        result["values"] = selected
    return result


@app.put("/v4/spreadsheets/{spreadsheet_id}/values/{a1_range}")
def update_values(
        spreadsheet_id: str,
        a1_range: str,
        body: dict = Body(...),
        authorization: Optional[str] = Header(None),
):
    _check(spreadsheet_id, authorization, write=True)
    if spreadsheet_id.startswith("noheader_"):
        raise HTTPException(status_code=403, detail="The caller does not have permission")
    sheet, first_col, first_row, _, _ = parse_a1(a1_range)
    rows = _sheet_rows(spreadsheet_id, sheet)

    for offset, values in enumerate(body.get("values") or []):
        index = first_row - 1 + offset
        while len(rows) <= index:
            rows.append([])
        row = rows[index]
        while len(row) < first_col - 1 + len(values):
            row.append("")
        row[first_col - 1:first_col - 1 + len(values)] = list(values)

    return {"spreadsheetId": spreadsheet_id, "updatedRange": a1_range}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
