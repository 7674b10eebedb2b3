"""
Identity / role source.

Answers "who is this user" for the access-control predicates: role,
organizational unit and the address used for notifications. The directory
behind it (LDAP, the users table, an IdP) is not this package's concern.

Usage:
    identity = identity_gateway.get_identity(user_id)
    if identity is None:
        ...  # unknown users are denied, never raised
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Resolved user identity."""
    user_id: str
    role: str = "user"
    unit_id: str | None = None
    email: str | None = None
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "unit_id": self.unit_id,
            "email": self.email,
            "name": self.name,
        }


class IdentityGateway:
    """Interface for the identity source."""

    def get_identity(self, user_id: str) -> Identity | None:
        raise NotImplementedError

    def users_in_unit(self, unit_id: str) -> list[Identity]:
        raise NotImplementedError

    def unit_exists(self, unit_id: str) -> bool:
        raise NotImplementedError


class InMemoryIdentityGateway(IdentityGateway):
    """Dict-backed identity source for tests and local development.

    Usage:
        gw = InMemoryIdentityGateway()
        gw.add_unit("u-fin")
        gw.add_user("alice", role="admin", unit_id="u-fin", email="a@x.local")
    """

    def __init__(self, identities=None, units=None) -> None:
        self._identities: dict[str, Identity] = {}
        self._units: set[str] = set(units or ())
        for identity in identities or ():
            self._store(identity)

    def _store(self, identity: Identity) -> None:
        self._identities[identity.user_id] = identity
        if identity.unit_id:
            self._units.add(identity.unit_id)

    def add_unit(self, unit_id: str) -> None:
        self._units.add(unit_id)

    def add_user(self, user_id: str, *, role: str = "user", unit_id: str | None = None,
                 email: str | None = None, name: str | None = None) -> Identity:
        identity = Identity(user_id=user_id, role=role, unit_id=unit_id,
                            email=email, name=name or user_id)
        self._store(identity)
        return identity

    def get_identity(self, user_id: str) -> Identity | None:
        if not user_id:
            return None
        return self._identities.get(user_id)

    def users_in_unit(self, unit_id: str) -> list[Identity]:
        return [i for i in self._identities.values() if unit_id and i.unit_id == unit_id]

    def unit_exists(self, unit_id: str) -> bool:
        return unit_id in self._units
