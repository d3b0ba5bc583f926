"""Balance sheets built from bank notification messages, exported as CSV or JSON."""

from __future__ import annotations

import csv
import io
import json
import os
import re
from dataclasses import dataclass, field
from datetime import date, datetime

_MESSAGE_RE = re.compile(
    r"(\d{2}\.\d{2}\.\d{4}) (\D*) (-?[\d,]+(?:\.\d{2})?) \w+ - (.+)", re.ASCII
)
_REPORT_DATE_RE = re.compile("\U0001f4c5 " + r"(\d{2}\.\d{2}\.\d{4})", re.ASCII)
_REPORT_TRANSACTION_RE = re.compile(
    r"([+\-\u2212]\d{1,3}(?:,\d{3})*(?:\.\d{2})?) \| (.+)", re.ASCII
)


class AccountingError(ValueError):
    """Raised when a message or a stored balance sheet cannot be processed."""


@dataclass(frozen=True)
class Entry:
    """One booking on a balance sheet."""

    date: date
    balance_change: float
    notes: str


@dataclass
class BalanceSheet:
    """A keyed list of entries with creation and modification times."""

    key: str = ""
    created: datetime | None = None
    modified: datetime | None = None
    entries: list[Entry] = field(default_factory=list)


def _parse_date(text: str) -> date:
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise AccountingError(f"invalid date {text!r}") from exc


def _parse_amount(text: str) -> float:
    try:
        return float(text)
    except ValueError as exc:
        raise AccountingError(f"invalid amount {text!r}") from exc


def _add_entry(sheet: BalanceSheet, entry: Entry) -> bool:
    if entry in sheet.entries:
        return False
    sheet.entries.append(entry)
    return True


class AccountingService:
    """Updates and exports balance sheets."""

    def update_balance_sheet(self, sheet: BalanceSheet, message: str) -> None:
        """Add the booking described by a single notification message."""
        match = _MESSAGE_RE.search(message)
        if match is None:
            raise AccountingError("message format is incorrect")
        change = _parse_amount(match.group(3).replace(",", ""))
        if match.group(2) == "\u267b\ufe0f":
            change = -change
        if _add_entry(sheet, Entry(_parse_date(match.group(1)), change, match.group(4))):
            sheet.modified = datetime.now()

    def update_balance_sheet_from_report(self, sheet: BalanceSheet, message: str) -> None:
        """Add every booking listed in a multi-line report grouped by date."""
        current_date = date.min
        for line in message.splitlines():
            if date_match := _REPORT_DATE_RE.search(line):
                current_date = _parse_date(date_match.group(1))
            elif transaction := _REPORT_TRANSACTION_RE.search(line):
                amount = (
                    transaction.group(1)
                    .replace(",", "")
                    .replace("+", "", 1)
                    .replace("\u2212", "-", 1)
                )
                _add_entry(
                    sheet, Entry(current_date, _parse_amount(amount), transaction.group(2))
                )

    def export_to_csv(self, sheet: BalanceSheet) -> str:
        """Sort the sheet's entries by date and render them with a closing total row."""
        sheet.entries.sort(key=lambda entry: entry.date)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Date", "Balance Change", "Notes"])
        for entry in sheet.entries:
            writer.writerow(
                [entry.date.isoformat(), f"{entry.balance_change:.2f}", entry.notes]
            )
        total = sum(entry.balance_change for entry in sheet.entries)
        writer.writerow(["Total", f"{total:.2f}", ""])
        return buffer.getvalue()

    def load_from_json(self, filename: str | os.PathLike[str]) -> BalanceSheet:
        """Read a balance sheet stored by save_to_json."""
        with open(filename, encoding="utf-8") as handle:
            try:
                data = json.load(handle)
                return BalanceSheet(
                    key=data.get("key", ""),
                    created=data.get("created") and datetime.fromisoformat(data["created"]),
                    modified=data.get("modified") and datetime.fromisoformat(data["modified"]),
                    entries=[
                        Entry(date.fromisoformat(item["date"]),
                              float(item["balanceChange"]), item.get("notes", ""))
                        for item in data.get("entries") or []
                    ],
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise AccountingError(f"invalid balance sheet: {exc}") from exc

    def save_to_json(self, sheet: BalanceSheet, filename: str | os.PathLike[str]) -> None:
        """Write the balance sheet as JSON, readable only by the owner."""
        data = {
            "key": sheet.key,
            "created": sheet.created.isoformat() if sheet.created else None,
            "modified": sheet.modified.isoformat() if sheet.modified else None,
            "entries": [
                {"date": e.date.isoformat(), "balanceChange": e.balance_change, "notes": e.notes}
                for e in sheet.entries
            ],
        }
        descriptor = os.open(filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with open(descriptor, "w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False)