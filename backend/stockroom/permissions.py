# Overview: Access control gate; compares a required role with the caller's role.

from __future__ import annotations

from enum import Enum

# Higher rank includes every capability of lower ranks
ROLE_RANK = {
    "viewer": 1,
    "admin": 2,
}


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"


def check(required_role: str, supplied_role: str | None) -> Decision:
    """
    Pure role check with no state.

    Fails closed: unknown required or supplied roles deny.
    """
    required = ROLE_RANK.get(required_role)
    supplied = ROLE_RANK.get(supplied_role) if supplied_role else None
    if required is None or supplied is None:
        return Decision.DENY
    return Decision.ALLOW if supplied >= required else Decision.DENY
