"""Dashboard summary figures over the processed set."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from identity_console.models import ProcessedUser


@dataclass(frozen=True)
class DashboardStats:
    total: int
    active: int
    inactive: int
    unique_teams: int
    # (team name, member count), largest first
    team_counts: list[tuple[str, int]] = field(default_factory=list)


def summarize(users: Iterable[ProcessedUser]) -> DashboardStats:
    users = list(users)
    active = sum(1 for u in users if u.is_active)
    team_counter: Counter[str] = Counter()
    for user in users:
        team_counter.update(user.team_names)
    return DashboardStats(
        total=len(users),
        active=active,
        inactive=len(users) - active,
        unique_teams=len(team_counter),
        team_counts=team_counter.most_common(),
    )
