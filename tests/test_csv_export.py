import csv
from io import StringIO

from csv_utils import CSV_HEADER, export_transactions, sanitize_csv_value


def test_export_starts_with_bom_and_header() -> None:
    text = export_transactions([])
    assert text.startswith("\ufeff")
    assert text[1:].split("\r\n")[0] == "Date,Description,Category,Amount,Account"


def test_fields_with_commas_quotes_or_newlines_are_quoted() -> None:
    text = export_transactions(
        [
            {
                "date": "2024-01-15T00:00:00.000Z",
                "description": 'Coffee, "large"',
                "category": "Food",
                "amount": -4.5,
                "accountId": "acc1",
            },
            {
                "date": "2024-01-16",
                "description": "Line one\nLine two",
                "category": "Books",
                "amount": 12,
                "accountId": "acc2",
            },
        ]
    )

    lines = text[1:].split("\r\n")
    assert lines[1] == '2024-01-15,"Coffee, ""large""",Food,-4.50,acc1'
    assert lines[2] == '2024-01-16,"Line one\nLine two",Books,12.00,acc2'

    rows = list(csv.reader(StringIO(text[1:])))
    assert rows[0] == CSV_HEADER
    assert rows[2][1] == "Line one\nLine two"


def test_missing_fields_render_empty() -> None:
    text = export_transactions([{"amount": None}])
    assert text[1:].split("\r\n")[1] == ",,,,"


def test_formula_like_text_is_neutralized() -> None:
    assert sanitize_csv_value("=HYPERLINK(\"x\")") == '\t=HYPERLINK("x")'
    assert sanitize_csv_value("Campus Cafe") == "Campus Cafe"
    assert sanitize_csv_value(None) == ""


def test_ordinary_text_passes_through_unchanged() -> None:
    for text in ("Shopping", "Shoes from Shopko", " Padded ", ".htaccess refund", "https://shop.example"):
        assert sanitize_csv_value(text) == text

    assert sanitize_csv_value("sh -c 'rm x'") == "\tsh -c 'rm x'"
    assert sanitize_csv_value("@SUM(A1)") == "\t@SUM(A1)"

    text = export_transactions(
        [
            {
                "date": "2024-01-15",
                "description": "Shoes from Shopko",
                "category": "Shopping",
                "amount": -10,
                "accountId": "acc1",
            }
        ]
    )
    assert text[1:].split("\r\n")[1] == "2024-01-15,Shoes from Shopko,Shopping,-10.00,acc1"
