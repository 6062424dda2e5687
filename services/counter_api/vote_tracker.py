"""
Vote tracking strategies.

Each strategy answers "has this client already clicked?" and remembers a
successful click. Exactly one strategy is active per deployment, chosen by
the VOTE_TRACKER setting:

- local_flag: the client stores its own flag and reports it in a header.
  Only a UI-level guard, nothing is enforced server-side.
- cookie: the server sets a long-lived cookie after a click, tagged with the
  store generation. A reset starts a new generation, so older cookies stop
  counting. Deleting the cookie allows clicking again.
- address: the client network address is recorded in the store's voter set.
  Clients behind a shared address count once, and the forwarded-for header
  is only trustworthy behind a proxy that sets it.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Request, Response

from .config import Settings
from .store import StateStore

logger = logging.getLogger(__name__)


class VoteTracker(ABC):
    """Decides per request whether the client already clicked."""

    # Whether the store must record voter keys for this strategy
    tracks_voters: bool = False

    def voter_key(self, request: Request) -> Optional[str]:
        """Identity passed to StateStore.increment, if the strategy has one."""
        return None

    @abstractmethod
    async def has_voted(self, request: Request, store: StateStore) -> bool:
        """Whether the client behind request already clicked."""

    async def record_vote(self, request: Request, response: Response, store: StateStore) -> None:
        """Remember a successful click on the response, if needed."""


class ClientFlagVoteTracker(VoteTracker):
    """Trusts the client-declared flag header."""

    def __init__(self, header_name: str = "X-Be-There-Clicked"):
        self.header_name = header_name

    async def has_voted(self, request: Request, store: StateStore) -> bool:
        return request.headers.get(self.header_name, "").strip().lower() == "true"


def cookie_generation(value: Optional[str]) -> Optional[int]:
    """Generation a vote cookie was issued in, or None if it is not one of ours."""
    if not value:
        return None
    generation, sep, token = value.partition(".")
    if not sep or not token or not generation.isdigit():
        return None
    return int(generation)


class CookieVoteTracker(VoteTracker):
    """Marks voters with an unsigned, long-lived cookie."""

    def __init__(
        self,
        cookie_name: str = "be_there_voted",
        max_age: int = 60 * 60 * 24 * 365,
        secure: bool = False
    ):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure

    async def has_voted(self, request: Request, store: StateStore) -> bool:
        generation = cookie_generation(request.cookies.get(self.cookie_name))
        if generation is None:
            return False
        return generation == await store.generation()

    async def record_vote(self, request: Request, response: Response, store: StateStore) -> None:
        generation = await store.generation()
        response.set_cookie(
            key=self.cookie_name,
            value=f"{generation}.{uuid.uuid4().hex}",
            max_age=self.max_age,
            httponly=True,
            samesite="lax",
            secure=self.secure
        )


class AddressVoteTracker(VoteTracker):
    """Records client network addresses in the store's voter set."""

    tracks_voters = True

    def __init__(self, trust_forwarded_for: bool = True):
        self.trust_forwarded_for = trust_forwarded_for

    def voter_key(self, request: Request) -> Optional[str]:
        if self.trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For", "")
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        if request.client is not None:
            return request.client.host
        return None

    async def has_voted(self, request: Request, store: StateStore) -> bool:
        return await store.has_voter(self.voter_key(request))


def build_vote_tracker(settings: Settings) -> VoteTracker:
    """
    Create the configured vote tracker.

    Raises:
        ValueError: If VOTE_TRACKER names an unknown strategy
    """
    strategy = settings.VOTE_TRACKER
    if strategy == "local_flag":
        tracker = ClientFlagVoteTracker(settings.CLIENT_FLAG_HEADER)
    elif strategy == "cookie":
        tracker = CookieVoteTracker(
            cookie_name=settings.VOTE_COOKIE_NAME,
            max_age=settings.VOTE_COOKIE_MAX_AGE,
            secure=settings.VOTE_COOKIE_SECURE
        )
    elif strategy == "address":
        tracker = AddressVoteTracker(settings.TRUST_FORWARDED_FOR)
    else:
        raise ValueError(f"Unknown vote tracker: {strategy!r}")

    logger.info(f"Vote tracking strategy: {strategy}")
    return tracker
