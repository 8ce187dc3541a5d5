"""The authenticated identity threaded through authorization calls."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """Who is making the request, as resolved from a validated session.

    Returned by ``SessionManager.authenticate`` and passed explicitly to the
    resolver and handlers. Never looked up from ambient request state.
    """

    user_id: str
    session_id: str
