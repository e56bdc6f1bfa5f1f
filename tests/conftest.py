import pytest

from bill_models import Fragment, Row


def _line(y, *texts, page=0, x0=40.0, step=70.0):
    return [
        Fragment(text=text, x=x0 + i * step, y=y, width=step - 10, height=9.0, page=page)
        for i, text in enumerate(texts)
    ]


@pytest.fixture
def line():
    """Build the fragments of one visual line, spaced left to right."""
    return _line


@pytest.fixture
def make_row():
    """Build a Row directly from texts, bypassing clustering."""

    def _make(*texts, y=700.0, page=0):
        fragments = tuple(_line(y, *texts, page=page))
        return Row(
            page=page,
            y_key=y,
            fragments=fragments,
            flat_text=" ".join(f.text for f in fragments),
        )

    return _make


@pytest.fixture
def statement(line):
    """Two-line statement bounded by the monthly charges landmarks."""
    return [
        *line(740, "Wireless", "Statement"),
        *line(720, "Monthly charges"),
        *line(700, "214.957.3190", "John Smith", "$40.00", "$12.50", "$65.43"),
        *line(680, "302.310.7589", "Jane Doe", "$38.00", "$58.21"),
        *line(660, "Subtotal for Group", "$123.64"),
    ]
