"""
Adapter base — the contracts between the engine and its collaborators.

The engine never talks to GitHub, the content generator, the comment
queue or the rate limiter directly. Each stage receives a
``Collaborators`` bundle and calls through these interfaces; the
concrete implementations live next to this module (``github``,
``content``, ``ratelimit``) and ``mock`` provides in-memory doubles.

Adapters may raise. The stage wrapper isolates the failure, so an
adapter does not need to swallow its own errors.
"""

from __future__ import annotations

import gc
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from falconwatch.core.models.moderation import Comment
from falconwatch.core.observability import process
from falconwatch.core.persistence.store import AuditStore


class RepositoryClient(ABC):
    """Repository metadata source (GitHub)."""

    @abstractmethod
    def get_repository(self, name: str) -> dict[str, Any] | None:
        """Metadata for one repository, or None if it does not exist."""

    @abstractmethod
    def get_recent_commits(self, name: str, count: int = 5) -> list[dict[str, Any]]:
        """The ``count`` newest commits of a repository."""


class ContentGenerator(ABC):
    """Blog content generator."""

    @abstractmethod
    def generate_blogs_for_featured_repos(self, featured_repos: Sequence[str]) -> None:
        """Generate or refresh posts for ``featured_repos``.

        The list comes from the running cycle's config snapshot, so a
        config update reaches the generator on the next cycle.
        """

    @abstractmethod
    def count_published_posts(self) -> int | None:
        """Number of published posts, or None when unknown."""


class RateLimiter(ABC):
    """Login rate-limit switch used by the failed-login remediation."""

    @abstractmethod
    def enable_strict(self, reason: str) -> bool:
        """Turn strict limiting on.

        Returns:
            True if strict mode is active after the call.
        """

    @abstractmethod
    def is_strict(self) -> bool:
        """Whether strict limiting is currently on."""


class CommentStore(Protocol):
    """Comment moderation queue."""

    def list_unapproved(self, limit: int = 50) -> list[Comment]: ...

    def approve(self, comment_id: str) -> bool: ...


# A route probe returns the capability names it could NOT confirm.
RouteProbe = Callable[[], list[str]]


@dataclass
class Collaborators:
    """Everything a cycle talks to, injected at construction."""

    store: AuditStore
    comments: CommentStore
    repos: RepositoryClient
    content: ContentGenerator
    rate_limiter: RateLimiter
    memory_probe: Callable[[], int] = process.heap_bytes
    uptime_probe: Callable[[], float] = process.uptime_seconds
    gc_collect: Callable[[], Any] | None = gc.collect
    route_probe: RouteProbe | None = None
