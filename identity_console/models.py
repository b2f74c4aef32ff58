"""Raw Spectro Cloud records and the processed user view built from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

NEVER_SIGNED_IN = "Never"


def _section(data: dict, key: str) -> dict:
    return data.get(key) or {}


@dataclass(frozen=True)
class RawUser:
    uid: str
    first_name: str
    last_name: str
    email: str
    is_active: bool
    last_sign_in: Optional[str]
    role_ids: tuple[str, ...]
    created_at: str

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "RawUser":
        meta = _section(item, "metadata")
        spec = _section(item, "spec")
        status = _section(item, "status")
        return cls(
            uid=meta["uid"],
            first_name=spec.get("firstName") or "",
            last_name=spec.get("lastName") or "",
            email=spec.get("emailId") or "",
            is_active=bool(status.get("isActive", False)),
            # Upstream sends "" as well as omitting the field for never-signed-in users
            last_sign_in=status.get("lastSignIn") or None,
            role_ids=tuple(spec.get("roles") or ()),
            created_at=meta.get("creationTimestamp") or "",
        )


@dataclass(frozen=True)
class RawRole:
    uid: str
    name: str
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        """Human-readable name, falling back to the canonical one."""
        return self.display_name or self.name

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "RawRole":
        meta = _section(item, "metadata")
        spec = _section(item, "spec")
        return cls(
            uid=meta["uid"],
            name=meta.get("name") or "",
            display_name=spec.get("displayName"),
        )


@dataclass(frozen=True)
class TeamMember:
    uid: str
    name: Optional[str] = None


@dataclass(frozen=True)
class TeamProject:
    uid: str
    name: str


@dataclass(frozen=True)
class RawTeam:
    uid: str
    name: str
    members: tuple[TeamMember, ...] = ()
    projects: tuple[TeamProject, ...] = ()

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "RawTeam":
        meta = _section(item, "metadata")
        spec = _section(item, "spec")
        return cls(
            uid=meta["uid"],
            name=meta.get("name") or "",
            members=tuple(
                TeamMember(uid=m["uid"], name=m.get("name"))
                for m in spec.get("users") or ()
            ),
            projects=tuple(
                TeamProject(uid=p.get("uid", ""), name=p["name"])
                for p in spec.get("projects") or ()
            ),
        )


@dataclass
class ProcessedUser:
    """Denormalised, display-ready user record. ``id`` is the cache key."""

    id: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    is_active: bool
    last_sign_in: Optional[str] = None
    role_names: list[str] = field(default_factory=list)
    team_names: list[str] = field(default_factory=list)
    project_names: list[str] = field(default_factory=list)
    created_at: str = ""

    @property
    def display_last_sign_in(self) -> str:
        return self.last_sign_in or NEVER_SIGNED_IN

    @property
    def status_label(self) -> str:
        return "Active" if self.is_active else "Inactive"

    def to_dict(self) -> dict[str, Any]:
        """Presentation form, using the dashboard's camelCase field names."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
            "isActive": self.is_active,
            "lastSignIn": self.display_last_sign_in,
            "roleNames": list(self.role_names),
            "teamNames": list(self.team_names),
            "projectNames": list(self.project_names),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessedUser":
        last_sign_in = data.get("lastSignIn")
        if last_sign_in == NEVER_SIGNED_IN:
            last_sign_in = None
        return cls(
            id=data["id"],
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            full_name=data.get("fullName", ""),
            is_active=bool(data.get("isActive", False)),
            last_sign_in=last_sign_in or None,
            role_names=list(data.get("roleNames") or []),
            team_names=list(data.get("teamNames") or []),
            project_names=list(data.get("projectNames") or []),
            created_at=data.get("createdAt", ""),
        )
