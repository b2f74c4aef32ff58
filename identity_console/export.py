"""CSV extract of the processed user set."""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import Iterable, Optional, TextIO

from identity_console.models import ProcessedUser

CSV_HEADER = [
    "ID", "Full Name", "Email", "Status",
    "Last Sign In", "Roles", "Teams", "Created At",
]


def export_filename(today: Optional[date] = None) -> str:
    return f"spectro_users_{(today or date.today()).isoformat()}.csv"


def _row(user: ProcessedUser) -> list[str]:
    return [
        user.id,
        user.full_name,
        user.email,
        user.status_label,
        user.display_last_sign_in,
        ", ".join(user.role_names),
        ", ".join(user.team_names),
        user.created_at,
    ]


def write_csv(users: Iterable[ProcessedUser], out: TextIO) -> int:
    """Write the header and one line per user. Returns the number of rows."""
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    count = 0
    for user in users:
        writer.writerow(_row(user))
        count += 1
    return count


def to_csv(users: Iterable[ProcessedUser]) -> str:
    buf = io.StringIO()
    write_csv(users, buf)
    return buf.getvalue()
