"""Join users, roles and teams into processed user records.

Role ids are resolved to display names; team membership is inverted from
the teams' member rosters. Ids that cannot be resolved pass through as-is
so that one dangling reference never fails a sync.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from identity_console.models import ProcessedUser, RawRole, RawTeam, RawUser


def build_role_map(roles: Iterable[RawRole]) -> dict[str, str]:
    """role id -> display name (canonical name when no display name is set)."""
    return {role.uid: role.label for role in roles}


def build_membership_maps(
    teams: Iterable[RawTeam],
) -> tuple[dict[str, list[str]], dict[str, dict[str, None]]]:
    """Invert team rosters.

    Returns (user id -> team names, user id -> project names). Team names are
    not deduplicated: a user listed twice, or in two teams sharing a name,
    gets the name twice. Project names are an insertion-ordered set (dict keys).
    """
    team_names: dict[str, list[str]] = {}
    project_names: dict[str, dict[str, None]] = {}

    for team in teams:
        for member in team.members:
            team_names.setdefault(member.uid, []).append(team.name)
            if team.projects:
                projects = project_names.setdefault(member.uid, {})
                for project in team.projects:
                    projects[project.name] = None

    return team_names, project_names


def join(
    users: Sequence[RawUser],
    roles: Iterable[RawRole],
    teams: Iterable[RawTeam],
) -> list[ProcessedUser]:
    """Build one ProcessedUser per input user, preserving input order."""
    role_map = build_role_map(roles)
    team_map, project_map = build_membership_maps(teams)

    processed: list[ProcessedUser] = []
    for user in users:
        processed.append(
            ProcessedUser(
                id=user.uid,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                full_name=f"{user.first_name} {user.last_name}",
                is_active=user.is_active,
                last_sign_in=user.last_sign_in,
                role_names=[role_map.get(rid) or rid for rid in user.role_ids],
                team_names=list(team_map.get(user.uid, [])),
                project_names=list(project_map.get(user.uid, {})),
                created_at=user.created_at,
            )
        )
    return processed
