# Overview: Owner reference for cart and wishlist rows (user or guest session).

"""
Cart and wishlist rows belong to exactly one owner.

Owner is a tagged union of two frozen dataclasses. Services accept an Owner
and use owner_filter()/owner_columns() to reach the two nullable foreign
keys, so no caller ever fills in (or forgets) the pair by hand. The database
enforces the same rule with a CHECK constraint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class UserOwner:
    user_id: int

    @property
    def kind(self) -> str:
        return "user"


@dataclass(frozen=True)
class GuestOwner:
    # GuestSession primary key, resolved from the opaque token at the boundary
    session_id: int

    @property
    def kind(self) -> str:
        return "guest"


Owner = Union[UserOwner, GuestOwner]


def owner_columns(owner: Owner) -> dict:
    """Column values identifying the owner on a new row."""
    if isinstance(owner, UserOwner):
        return {"user_id": owner.user_id, "guest_session_id": None}
    if isinstance(owner, GuestOwner):
        return {"user_id": None, "guest_session_id": owner.session_id}
    raise TypeError(f"Unsupported owner: {owner!r}")


def owner_filter(model, owner: Owner):
    """SQLAlchemy criterion selecting rows of `model` owned by `owner`."""
    if isinstance(owner, UserOwner):
        return model.user_id == owner.user_id
    if isinstance(owner, GuestOwner):
        return model.guest_session_id == owner.session_id
    raise TypeError(f"Unsupported owner: {owner!r}")


def owns(row, owner: Owner) -> bool:
    """True if `row` (anything with user_id/guest_session_id) belongs to `owner`."""
    if isinstance(owner, UserOwner):
        return row.user_id is not None and row.user_id == owner.user_id
    if isinstance(owner, GuestOwner):
        return row.guest_session_id is not None and row.guest_session_id == owner.session_id
    return False
