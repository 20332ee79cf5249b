import csv
import re
from datetime import date, datetime
from io import StringIO
from typing import Any, Mapping, Sequence

CSV_HEADER = ["Date", "Description", "Category", "Amount", "Account"]
UTF8_BOM = "\ufeff"

FORMULA_TRIGGERS = ("=", "+", "-", "@")
COMMAND_PATTERN = re.compile(r"^(cmd|powershell|bash|sh)\b", re.IGNORECASE)


def sanitize_csv_value(value: Any) -> str:
    """
    Prefix spreadsheet formula starters and shell command names with a tab.

    Everything else is written exactly as given.
    """
    if value is None:
        return ""
    value = str(value)
    if value.startswith(FORMULA_TRIGGERS) or COMMAND_PATTERN.match(value):
        return "\t" + value
    return value


def format_date(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return datetime.fromisoformat(str(value).strip()).date().isoformat()
    except ValueError:
        return str(value)


def format_amount(value: Any) -> str:
    if value is None or value == "":
        return ""
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return str(value)


def export_transactions(transactions: Sequence[Mapping[str, Any]]) -> str:
    """Render transactions as CSV text, BOM first so spreadsheets detect UTF-8.

    Fields holding a comma, double quote, CR or LF are quoted and embedded
    quotes are doubled (RFC 4180).
    """
    output = StringIO()
    writer = csv.writer(output, lineterminator="\r\n")
    writer.writerow(CSV_HEADER)
    for txn in transactions:
        writer.writerow(
            [
                format_date(txn.get("date")),
                sanitize_csv_value(txn.get("description")),
                sanitize_csv_value(txn.get("category")),
                format_amount(txn.get("amount")),
                txn.get("accountId") or "",
            ]
        )
    return UTF8_BOM + output.getvalue()
