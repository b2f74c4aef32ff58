"""Search, sort and lookup over the processed user set for the console table."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from identity_console.models import ProcessedUser


def _sign_in_key(user: ProcessedUser) -> tuple[bool, str]:
    # Never-signed-in users sort as the oldest
    return (user.last_sign_in is not None, user.last_sign_in or "")


SORT_KEYS: dict[str, Callable[[ProcessedUser], Any]] = {
    "name": lambda u: u.full_name.lower(),
    "email": lambda u: u.email.lower(),
    "status": lambda u: (u.is_active, u.full_name.lower()),
    "last-sign-in": _sign_in_key,
    "created": lambda u: (u.created_at, u.full_name.lower()),
}


def matches(user: ProcessedUser, term: str) -> bool:
    """Case-insensitive match on full name, email or any team name."""
    needle = term.lower()
    return (
        needle in user.full_name.lower()
        or needle in user.email.lower()
        or any(needle in team.lower() for team in user.team_names)
    )


def search_users(users: Iterable[ProcessedUser], term: Optional[str]) -> list[ProcessedUser]:
    if not term:
        return list(users)
    return [u for u in users if matches(u, term)]


def sort_users(
    users: Iterable[ProcessedUser],
    key: str = "name",
    descending: bool = False,
) -> list[ProcessedUser]:
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key {key!r}, expected one of {sorted(SORT_KEYS)}")
    return sorted(users, key=SORT_KEYS[key], reverse=descending)


def find_user(users: Iterable[ProcessedUser], user_id: str) -> Optional[ProcessedUser]:
    for user in users:
        if user.id == user_id:
            return user
    return None
