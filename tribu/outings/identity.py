"""Self-asserted client identity.

A parent is known only by the display name they typed and the groups they
joined. Both live on the client, behind a small key-value interface, and
are read at the start of every operation that needs them. Nothing here is
authenticated: the name is only ever compared to an event's ``organizer``
or a group's ``created_by``.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Protocol
from uuid import UUID

from fastapi import Depends, Request, Response

logger = logging.getLogger(__name__)

USERNAME_KEY = "tribu_username"
GROUPS_KEY = "tribu_groups"
COOKIE_MAX_AGE = 365 * 24 * 60 * 60
# Cookie-safe, so the value is never quoted
GROUP_SEPARATOR = "|"


@dataclass(frozen=True)
class ClientIdentity:
    """The acting party's remembered name and joined group ids."""

    username: str = ""
    group_ids: tuple[UUID, ...] = field(default_factory=tuple)

    def with_username(self, username: str) -> "ClientIdentity":
        return replace(self, username=(username or "").strip())

    def with_group(self, group_id: UUID) -> "ClientIdentity":
        if group_id in self.group_ids:
            return self
        return replace(self, group_ids=self.group_ids + (group_id,))

    def without_group(self, group_id: UUID) -> "ClientIdentity":
        return replace(self, group_ids=tuple(g for g in self.group_ids if g != group_id))


class IdentityStore(Protocol):
    """Where a client's identity is kept between requests."""

    def load(self, request: Request) -> ClientIdentity:
        ...

    def save(self, response: Response, identity: ClientIdentity) -> None:
        ...


def parse_group_ids(raw: str | None) -> tuple[UUID, ...]:
    """Parse a "|"-separated list of group ids, dropping anything malformed."""
    if not raw:
        return ()

    group_ids = []
    for value in raw.split(GROUP_SEPARATOR):
        try:
            group_id = UUID(str(value))
        except ValueError:
            continue
        if group_id not in group_ids:
            group_ids.append(group_id)
    return tuple(group_ids)


class CookieIdentityStore:
    """Keep the identity in two long-lived cookies."""

    def load(self, request: Request) -> ClientIdentity:
        return ClientIdentity(
            username=(request.cookies.get(USERNAME_KEY) or "").strip(),
            group_ids=parse_group_ids(request.cookies.get(GROUPS_KEY)),
        )

    def save(self, response: Response, identity: ClientIdentity) -> None:
        response.set_cookie(
            USERNAME_KEY, identity.username, max_age=COOKIE_MAX_AGE, samesite="lax"
        )
        response.set_cookie(
            GROUPS_KEY,
            GROUP_SEPARATOR.join(str(g) for g in identity.group_ids),
            max_age=COOKIE_MAX_AGE,
            samesite="lax",
        )


identity_store: IdentityStore = CookieIdentityStore()


def get_identity_store() -> IdentityStore:
    """Dependency returning the configured identity store."""
    return identity_store


def get_identity(
    request: Request, store: IdentityStore = Depends(get_identity_store)
) -> ClientIdentity:
    """Dependency loading the caller's identity."""
    return store.load(request)
