"""Caller identity dependencies.

Authentication happens upstream; the gateway forwards the authenticated
identity in ``X-Actor-Id`` / ``X-Actor-Role``. This module only parses it.
"""
from __future__ import annotations

from fastapi import Header, HTTPException, status

from orderflow.services.actors import Actor, ActorRole
from orderflow.utils.errors import error_response


def get_actor(
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> Actor:
    """Return the calling actor or reject the request with 401."""

    actor_id = (x_actor_id or "").strip()
    role_value = (x_actor_role or "").strip().lower()
    if not actor_id or not role_value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_ACTOR", "Actor identity headers are required."),
        )
    try:
        role = ActorRole(role_value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response(
                "UNKNOWN_ACTOR_ROLE",
                "Actor role is not recognised.",
                {"allowed": [r.value for r in ActorRole]},
            ),
        ) from None
    return Actor(id=actor_id[:64], role=role)


__all__ = ["get_actor"]
