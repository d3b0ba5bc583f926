import os
from datetime import date, datetime

import pytest

from dpvapi.accounting import AccountingError, AccountingService, BalanceSheet, Entry


@pytest.fixture
def sheet():
    now = datetime.now()
    return BalanceSheet(key="123", created=now, modified=now)


@pytest.fixture
def service():
    return AccountingService()


def test_update_balance_sheet_and_export(service, sheet):
    messages = [
        "13.01.2024 \U0001f4e9 12345.67 EUR - Create account",
        "14.01.2024 \U0001f4e4 -5.00 EUR - Server Fee",
        "15.01.2024 \u267b\ufe0f 5.00 EUR - Maintenance Fee",
        "17.01.2024 \u267b\ufe0f -5.00 EUR - Refunded maintenance fee",
    ]
    for message in messages:
        service.update_balance_sheet(sheet, message)

    lines = service.export_to_csv(sheet).split("\n")
    assert len(lines) == 7
    assert lines[0] == "Date,Balance Change,Notes"
    assert lines[1] == "2024-01-13,12345.67,Create account"
    assert "-5.00" in lines[2]
    assert "-5.00" in lines[3]
    assert "5.00" in lines[4]
    assert lines[5] == "Total,12340.67,"
    assert lines[6] == ""


def test_update_balance_sheet_from_report(service, sheet):
    messages = (
        "\U0001f5c2 Here is your report:\n"
        "\n"
        "\U0001f4c5 15.01.2024\n"
        "00:00:00\n"
        "+5.00 | Earnings\n"
        "\U0001f4c5 14.01.2024\n"
        "00:00:00\n"
        "+3.99 | More earnings\n"
        "-8.00 | Monthly service charge\n"
        "\U0001f4c5 13.01.2024\n"
        "00:00:00\n"
        "\U0001f4c5 12.01.2024\n"
        "00:00:00\n"
        "+1,234.56 | admin_add\n"
        "\u22121,234.56 | Investment\n"
    )
    service.update_balance_sheet_from_report(sheet, messages)

    lines = service.export_to_csv(sheet).split("\n")
    assert len(lines) == 8
    assert lines[0] == "Date,Balance Change,Notes"
    assert lines[1] == "2024-01-12,1234.56,admin_add"
    assert "-1234.56" in lines[2]
    assert "3.99" in lines[3]
    assert "-8.00" in lines[4]
    assert lines[6] == "Total,0.99,"
    assert lines[7] == ""


def test_duplicate_message_is_ignored(service, sheet):
    message = "13.01.2024 \U0001f4e9 10.00 EUR - Deposit"
    service.update_balance_sheet(sheet, message)
    service.update_balance_sheet(sheet, message)
    assert sheet.entries == [Entry(date(2024, 1, 13), 10.0, "Deposit")]


def test_update_sets_modified(service):
    sheet = BalanceSheet(key="k")
    before = datetime.now()
    service.update_balance_sheet(sheet, "13.01.2024 \U0001f4e9 1.00 EUR - Deposit")
    after = datetime.now()
    assert before <= sheet.modified <= after


def test_duplicate_report_line_is_ignored(service, sheet):
    report = "\U0001f4c5 12.01.2024\n+1.00 | Same\n+1.00 | Same\n"
    service.update_balance_sheet_from_report(sheet, report)
    assert len(sheet.entries) == 1


def test_report_line_without_date_uses_earliest_date(service, sheet):
    service.update_balance_sheet_from_report(sheet, "+2.50 | Orphan\n")
    assert sheet.entries[0].date == date.min
    assert sheet.entries[0].balance_change == 2.5


def test_malformed_message_raises(service, sheet):
    with pytest.raises(AccountingError):
        service.update_balance_sheet(sheet, "not a booking")


def test_invalid_date_raises(service, sheet):
    with pytest.raises(AccountingError):
        service.update_balance_sheet(sheet, "32.13.2024 \U0001f4e9 1.00 EUR - Bad")


def test_export_quotes_notes_with_comma(service, sheet):
    sheet.entries.append(Entry(date(2024, 1, 1), 1.0, 'a, "b"'))
    lines = service.export_to_csv(sheet).split("\n")
    assert lines[1].endswith('"a, ""b"""')


def test_json_round_trip(service, sheet, tmp_path):
    service.update_balance_sheet(sheet, "13.01.2024 \U0001f4e9 12345.67 EUR - Create account")
    target = tmp_path / "sheet.json"
    service.save_to_json(sheet, target)
    loaded = service.load_from_json(target)
    assert loaded == sheet
    assert os.stat(target).st_mode & 0o777 == 0o600


def test_load_missing_file_raises(service, tmp_path):
    with pytest.raises(FileNotFoundError):
        service.load_from_json(tmp_path / "missing.json")


def test_load_invalid_json_raises(service, tmp_path):
    target = tmp_path / "broken.json"
    target.write_text("{", encoding="utf-8")
    with pytest.raises(AccountingError):
        service.load_from_json(target)