"""Builders for upstream API payloads used across the test suite."""

from __future__ import annotations

from typing import Any, Optional


def user_item(
    uid: str,
    first: str = "Ann",
    last: str = "Lee",
    roles: Optional[list[str]] = None,
    last_sign_in: Optional[str] = None,
    active: bool = True,
    email: Optional[str] = None,
    created: str = "2024-01-01T00:00:00Z",
) -> dict[str, Any]:
    status: dict[str, Any] = {"isActive": active}
    if last_sign_in is not None:
        status["lastSignIn"] = last_sign_in
    return {
        "metadata": {"uid": uid, "creationTimestamp": created},
        "spec": {
            "firstName": first,
            "lastName": last,
            "emailId": email or f"{uid}@example.com",
            "roles": roles or [],
        },
        "status": status,
    }


def role_item(uid: str, name: str, display_name: Optional[str] = None) -> dict[str, Any]:
    spec = {"displayName": display_name} if display_name is not None else {}
    return {"metadata": {"uid": uid, "name": name}, "spec": spec}


def team_item(
    uid: str,
    name: str,
    members: list[str] = (),
    projects: list[str] = (),
) -> dict[str, Any]:
    spec: dict[str, Any] = {"users": [{"uid": m} for m in members]}
    if projects:
        spec["projects"] = [{"uid": f"p-{p}", "name": p} for p in projects]
    return {"metadata": {"uid": uid, "name": name}, "spec": spec}


def page(
    items: list[dict[str, Any]],
    cursor: Optional[str] = None,
    where: str = "listmeta",
) -> dict[str, Any]:
    body: dict[str, Any] = {"items": items}
    if cursor is not None:
        body[where] = {"continue": cursor}
    return body
