"""
quotemaster/security.py

Access control for QuoteMaster.

The core understands exactly one capability: may this caller manage
quotations, suppliers and products. It is read from the logged-in user once,
at the HTTP boundary, and handed to the services as an Actor. Services call
require_manage(actor) before they change anything.

readonly_guard() is the request-level net on top of that: logged-in users
without the capability get 403 on any POST/PUT/PATCH/DELETE except login and
logout. create_app wires it as a before_request hook.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .errors import PermissionDeniedError

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Endpoints a read-only user may still POST to
SELF_SERVICE_ENDPOINTS = {"auth.login", "auth.logout"}


@dataclass(frozen=True)
class Actor:
    """The caller of a core operation, as seen by the services."""

    user_id: Optional[int]
    username: Optional[str]
    can_manage: bool = False


def _forbidden():
    return jsonify(PermissionDeniedError("Permission denied").to_dict()), 403


def current_actor() -> Actor:
    """Build the Actor for the logged-in user (anonymous callers get no capability)."""
    if not current_user.is_authenticated:
        return Actor(user_id=None, username=None, can_manage=False)
    return Actor(
        user_id=current_user.id,
        username=current_user.username,
        can_manage=bool(current_user.can_manage()),
    )


def require_manage(actor: Actor) -> None:
    """Raise PermissionDeniedError unless the actor may manage quotations."""
    if actor is None or not actor.can_manage:
        raise PermissionDeniedError(
            "Managing quotations, suppliers and products requires the manage capability",
            username=getattr(actor, "username", None),
        )


def readonly_guard() -> Optional[Tuple[Any, int]]:
    """Return a 403 response for mutating requests from read-only users, else None."""
    if request.method not in MUTATING_METHODS or not current_user.is_authenticated:
        return None
    if current_actor().can_manage:
        return None
    if (request.endpoint or "") in SELF_SERVICE_ENDPOINTS:
        return None
    return _forbidden()


def manage_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """View decorator: callers holding the manage capability (admins included)."""

    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_actor().can_manage:
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
