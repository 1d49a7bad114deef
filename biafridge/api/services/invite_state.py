"""
Invite status as a tagged variant.

``Pending``, ``Accepted(fridge_id)`` and ``Expired`` replace the persisted
status string plus the nullable fridge id. Transitions are pure functions
returning the next variant; the manager persists the result.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from biafridge.shared.models import Invite, InviteStatus


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Accepted:
    fridge_id: str


@dataclass(frozen=True)
class Expired:
    pass


InviteState = Union[Pending, Accepted, Expired]


class InvalidTransition(Exception):
    """Raised for transitions out of a terminal state."""


def invite_state(invite: Invite) -> InviteState:
    """Variant for the persisted status, before lazy expiry is applied."""
    if invite.status == InviteStatus.ACCEPTED and invite.fridge_id:
        return Accepted(invite.fridge_id)
    if invite.status == InviteStatus.EXPIRED:
        return Expired()
    return Pending()


def expire(state: InviteState, expires_at: datetime, now: datetime) -> InviteState:
    """Pending becomes Expired once ``now`` is past ``expires_at``."""
    if isinstance(state, Pending) and now > expires_at:
        return Expired()
    return state


def accept(state: InviteState, fridge_id: str) -> InviteState:
    if isinstance(state, Accepted):
        return state
    if isinstance(state, Expired):
        raise InvalidTransition("Expired invites cannot be accepted")
    if not fridge_id:
        raise InvalidTransition("Accepting requires a fridge")
    return Accepted(fridge_id)


def status_of(state: InviteState) -> InviteStatus:
    if isinstance(state, Accepted):
        return InviteStatus.ACCEPTED
    if isinstance(state, Expired):
        return InviteStatus.EXPIRED
    return InviteStatus.PENDING


def current_state(invite: Invite, now: datetime) -> InviteState:
    """
    State of an invite at ``now``

    Accepted is terminal and wins over expiry. A pending invite past its
    expiry reads as Expired even before the status is written back.
    """
    return expire(invite_state(invite), invite.expires_at, now)
