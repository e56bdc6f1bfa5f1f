import json

import pytest

import bill_pipeline
from bill_models import Fragment, InvalidBillFile, LineItem, ParseError, ParseErrorKind
from bill_pipeline import main, page_items, parse_bill, parse_pages, validate_pdf_path


def test_statement_end_to_end(statement):
    bill = parse_bill(statement)

    assert bill.lines == (
        LineItem("214.957.3190", 65.43, "John Smith"),
        LineItem("302.310.7589", 58.21, "Jane Doe"),
    )
    assert bill.total_amount == pytest.approx(123.64)
    assert bill.billing_period is None


def test_stated_total_and_period_are_used(statement, line):
    fragments = [
        *line(780, "Billing period", "Dec 15, 2025 - Jan 14, 2026"),
        *line(760, "Total due", "$130.00"),
        *statement,
    ]

    bill = parse_bill(fragments)

    assert bill.total_amount == 130.00
    assert bill.billing_period == "Dec 15, 2025 - Jan 14, 2026"


def test_row_value_wins_over_fallback_sentence(statement, line):
    fragments = [*statement, *line(600, "Total for 214.957.3190", "$70.00")]

    bill = parse_bill(fragments)

    assert [(item.line_number, item.total) for item in bill.lines] == [
        ("214.957.3190", 65.43),
        ("302.310.7589", 58.21),
    ]


def test_fallback_fills_lines_missing_from_table(statement, line):
    fragments = [*statement, *line(600, "Total for 469.555.0134", "$44.10")]

    bill = parse_bill(fragments)

    assert bill.lines[-1] == LineItem("469.555.0134", 44.10)
    assert bill.total_amount == pytest.approx(167.74)


def test_fallback_alone_recovers_lines(line):
    fragments = [
        *line(700, "Total for 214.957.3190", "$65.43"),
        *line(680, "Total for 302.310.7589", "$58.21"),
    ]

    bill = parse_bill(fragments)

    assert [item.line_number for item in bill.lines] == ["214.957.3190", "302.310.7589"]


def test_section_continues_across_pages(line):
    fragments = [
        *line(720, "Monthly charges"),
        *line(700, "214.957.3190", "John Smith", "$65.43"),
        *line(740, "302.310.7589", "Jane Doe", "$58.21", page=1),
        *line(720, "Subtotal for Group", page=1),
    ]

    bill = parse_bill(fragments)

    assert [item.line_number for item in bill.lines] == ["214.957.3190", "302.310.7589"]


def test_empty_input():
    with pytest.raises(ParseError) as exc_info:
        parse_bill([])

    assert exc_info.value.kind is ParseErrorKind.EMPTY_INPUT
    assert ParseErrorKind.NO_CONTENT is ParseErrorKind.EMPTY_INPUT


def test_only_degenerate_items_is_empty_input():
    pages = [[{"str": "orphan"}, {"str": "nan", "transform": [1, 0, 0, 1, None, None]}]]

    with pytest.raises(ParseError) as exc_info:
        parse_pages(pages)

    assert exc_info.value.kind is ParseErrorKind.EMPTY_INPUT


def test_whitespace_only_is_empty_input():
    with pytest.raises(ParseError) as exc_info:
        parse_bill([Fragment(" ", 10, 10)])

    assert exc_info.value.kind is ParseErrorKind.EMPTY_INPUT


def test_no_line_items(line):
    with pytest.raises(ParseError) as exc_info:
        parse_bill(line(700, "Total due", "$120.00"))

    assert exc_info.value.kind is ParseErrorKind.NO_LINE_ITEMS


def test_no_plausible_total(line):
    fragments = [
        *line(720, "Monthly charges"),
        *line(700, "214.957.3190", "Credit", "-", "$15.00"),
    ]

    with pytest.raises(ParseError) as exc_info:
        parse_bill(fragments)

    assert exc_info.value.kind is ParseErrorKind.NO_PLAUSIBLE_TOTAL


class FakePage:
    height = 792.0

    def __init__(self, words):
        self._words = words

    def extract_words(self):
        return self._words


def test_page_items_flip_y_into_pdf_space():
    page = FakePage([{"text": "$65.43", "x0": 450.0, "x1": 480.0, "top": 82.0, "bottom": 92.0}])

    (item,) = page_items(page)

    assert item == {
        "str": "$65.43",
        "transform": [1, 0, 0, 1, 450.0, 700.0],
        "width": 30.0,
        "height": 10.0,
    }


def test_page_items_feed_parse_pages():
    words = [
        ("Monthly", 40, 70),
        ("charges", 80, 70),
        ("214.957.3190", 40, 90),
        ("John", 120, 90),
        ("$65.43", 450, 90),
    ]
    page = FakePage(
        [{"text": t, "x0": x, "x1": x + 30, "top": top - 9, "bottom": top} for t, x, top in words]
    )

    bill = parse_pages([page_items(page)])

    assert bill.lines == (LineItem("214.957.3190", 65.43, "John"),)


def test_validate_pdf_path(tmp_path):
    with pytest.raises(InvalidBillFile, match="not found"):
        validate_pdf_path(tmp_path / "missing.pdf")

    text_file = tmp_path / "bill.txt"
    text_file.write_text("hello")
    with pytest.raises(InvalidBillFile, match="not a PDF"):
        validate_pdf_path(text_file)

    big = tmp_path / "big.pdf"
    big.write_bytes(b"0" * (bill_pipeline.MAX_PDF_BYTES + 1))
    with pytest.raises(InvalidBillFile, match="exceeds"):
        validate_pdf_path(big)


def _pages_for(statement):
    items = [
        {"str": f.text, "transform": [1, 0, 0, 1, f.x, f.y], "width": f.width, "height": f.height}
        for f in statement
    ]
    return [items]


def test_main_prints_json(tmp_path, monkeypatch, capsys, statement):
    pdf = tmp_path / "bill.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(bill_pipeline, "read_pdf_pages", lambda path: _pages_for(statement))

    assert main([str(pdf), "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["line_count"] == 2
    assert payload["lines"][1] == {
        "phone_number": "302.310.7589",
        "line_name": "Jane Doe",
        "amount_owed": 58.21,
    }


def test_main_prints_table(tmp_path, monkeypatch, capsys, statement):
    pdf = tmp_path / "bill.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(bill_pipeline, "read_pdf_pages", lambda path: _pages_for(statement))

    assert main([str(pdf)]) == 0

    out = capsys.readouterr().out
    assert "214.957.3190" in out
    assert "123.64" in out


def test_main_reports_unreadable_bill(tmp_path, monkeypatch, capsys):
    pdf = tmp_path / "bill.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(bill_pipeline, "read_pdf_pages", lambda path: [[]])

    assert main([str(pdf)]) == 1
    assert "Could not read this bill" in capsys.readouterr().err


def test_main_reports_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "nope.pdf")]) == 1
    assert "file not found" in capsys.readouterr().err
