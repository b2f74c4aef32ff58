"""Tests for the CSV extract."""

import csv
import io
from datetime import date

from identity_console.export import CSV_HEADER, export_filename, to_csv, write_csv
from identity_console.models import ProcessedUser


def _users() -> list[ProcessedUser]:
    return [
        ProcessedUser(
            id="u1",
            email="ann@example.com",
            first_name="Ann",
            last_name="Lee",
            full_name="Ann Lee",
            is_active=True,
            role_names=["Admin", "Viewer"],
            team_names=["Platform", "Data"],
            created_at="2024-01-01T00:00:00Z",
        ),
        ProcessedUser(
            id="u2",
            email="bo@example.com",
            first_name="Bo",
            last_name='"Chan", Jr',
            full_name='Bo "Chan", Jr',
            is_active=False,
            last_sign_in="2026-10-01T08:00:00Z",
        ),
    ]


def test__export_filename() -> None:
    assert export_filename(date(2026, 10, 17)) == "spectro_users_2026-10-17.csv"


def test__to_csv__header_and_rows() -> None:
    rows = list(csv.reader(io.StringIO(to_csv(_users()))))

    assert rows[0] == CSV_HEADER
    assert rows[1] == [
        "u1", "Ann Lee", "ann@example.com", "Active", "Never",
        "Admin, Viewer", "Platform, Data", "2024-01-01T00:00:00Z",
    ]
    assert rows[2][1] == 'Bo "Chan", Jr'
    assert rows[2][3] == "Inactive"
    assert rows[2][4] == "2026-10-01T08:00:00Z"
    assert rows[2][5] == ""


def test__to_csv__quotes_embedded_delimiters() -> None:
    text = to_csv(_users())

    assert '"Bo ""Chan"", Jr"' in text
    assert '"Admin, Viewer"' in text


def test__write_csv__returns_row_count() -> None:
    buf = io.StringIO()

    assert write_csv(_users(), buf) == 2
    assert buf.getvalue().count("\n") == 3


def test__to_csv__empty_set_has_header_only() -> None:
    assert to_csv([]) == ",".join(CSV_HEADER) + "\n"
