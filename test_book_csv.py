import csv
import io
from datetime import datetime

import pytest

from book_csv import BOOK_HEADERS, TRANSACTION_HEADERS, export_books_csv, export_transactions_csv, parse_books_csv
from errors import ValidationFailed
from models import Book, Transaction


def test_parse_full_rows():
    text = (
        "title,author,isbn,category,quantity,coverUrl\n"
        "Dune,Frank Herbert,978-0441013593,Science Fiction,4,https://example.com/dune.jpg\n"
    )
    [book] = parse_books_csv(text)

    assert book.title == "Dune"
    assert book.isbn == "978-0441013593"
    assert book.quantity == 4
    assert book.cover_url == "https://example.com/dune.jpg"


def test_optional_columns_and_quantity_defaults():
    text = (
        "﻿title,author,quantity\n"
        "Emma,Jane Austen,\n"
        "Ulysses,James Joyce,lots\n"
        "Beloved,Toni Morrison,-2\n"
        ",,\n"
        "Hamlet,William Shakespeare,0\n"
    )
    books = parse_books_csv(text)

    assert [b.title for b in books] == ["Emma", "Ulysses", "Beloved", "Hamlet"]
    assert [b.quantity for b in books] == [1, 1, 1, 0]
    assert books[0].isbn is None
    assert books[0].category is None


def test_missing_author_reports_line():
    text = "title,author\nDune,Frank Herbert\nNameless,\n"
    with pytest.raises(ValidationFailed) as exc:
        parse_books_csv(text)
    assert exc.value.field == "author"
    assert exc.value.details["line"] == 3


def test_empty_inputs():
    with pytest.raises(ValidationFailed) as exc:
        parse_books_csv("")
    assert exc.value.reason == "missing_header"

    with pytest.raises(ValidationFailed) as exc:
        parse_books_csv("title,author\n")
    assert exc.value.reason == "no_rows"


def test_export_books_reimports():
    books = [
        Book(id="BK001", title='Say "Hi", Sam', author="A. Writer", isbn=None, category="Humor", quantity=2, cover_url=None),
    ]
    text = export_books_csv(books)

    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == BOOK_HEADERS
    [again] = parse_books_csv(text)
    assert again.title == 'Say "Hi", Sam'
    assert again.quantity == 2


def test_export_transactions():
    txn = Transaction(
        id="txn_1",
        book_id="BK001",
        book_title="Dune",
        user_id="u1",
        user_name="Asha",
        user_usn="1CK23EC001",
        issue_date=datetime(2024, 1, 1, 9, 0),
        due_date=datetime(2024, 1, 16, 9, 0),
        return_date=None,
        status="issued",
    )
    text = export_transactions_csv([txn], fine_for=lambda t: 15)

    header, row = list(csv.reader(io.StringIO(text)))
    assert header == TRANSACTION_HEADERS
    assert row == ["txn_1", "Dune", "Asha", "1CK23EC001", "2024-01-01T09:00:00", "2024-01-16T09:00:00", "", "issued", "15"]


def test_field_over_its_limit_reports_line():
    text = "title,author,isbn\nDune,Frank Herbert,\n" + "x" * 300 + ",Someone,\n"
    with pytest.raises(ValidationFailed) as exc:
        parse_books_csv(text)
    assert (exc.value.field, exc.value.reason) == ("title", "invalid")
    assert exc.value.details["line"] == 3

    with pytest.raises(ValidationFailed) as exc:
        parse_books_csv("title,author,isbn\nDune,Frank Herbert," + "9" * 60 + "\n")
    assert exc.value.field == "isbn"
