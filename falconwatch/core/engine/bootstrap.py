"""
Engine bootstrap — wire settings and collaborators into an engine.

Shared by the CLI and the web server so both build the engine the
same way.
"""

from __future__ import annotations

import logging

from falconwatch.adapters.base import Collaborators
from falconwatch.adapters.content import CommandContentGenerator
from falconwatch.adapters.github import GhRepositoryClient
from falconwatch.adapters.mock import MockContentGenerator, MockRateLimiter, MockRepositoryClient
from falconwatch.adapters.ratelimit import RATE_LIMIT_FILE, FlagFileRateLimiter
from falconwatch.core.config.loader import EngineSettings
from falconwatch.core.engine.orchestrator import EnhancementEngine
from falconwatch.core.persistence.comments import DEFAULT_COMMENTS_FILE, JsonCommentStore
from falconwatch.core.persistence.store import NdjsonStore

logger = logging.getLogger(__name__)


def build_collaborators(settings: EngineSettings, mock: bool = False) -> Collaborators:
    """File-backed store and comments; real or mock external adapters."""
    state_dir = settings.state_dir
    state_dir.mkdir(parents=True, exist_ok=True)

    store = NdjsonStore(state_dir)
    comments = JsonCommentStore(state_dir / DEFAULT_COMMENTS_FILE)

    if mock:
        logger.info("Mock mode — external collaborators are in-memory doubles")
        return Collaborators(
            store=store,
            comments=comments,
            repos=MockRepositoryClient(),
            content=MockContentGenerator(),
            rate_limiter=MockRateLimiter(),
        )

    timeout = int(settings.stage_timeout_seconds)
    if not GhRepositoryClient.is_available():
        logger.warning("gh CLI not found — repository sync will fail until it is installed")

    return Collaborators(
        store=store,
        comments=comments,
        repos=GhRepositoryClient(settings.github_owner, timeout=timeout),
        content=CommandContentGenerator(settings.content_command),
        rate_limiter=FlagFileRateLimiter(state_dir / RATE_LIMIT_FILE),
    )


def build_engine(settings: EngineSettings, mock: bool = False) -> EnhancementEngine:
    reports_dir = settings.reports_dir or settings.state_dir / "reports"
    return EnhancementEngine(
        build_collaborators(settings, mock=mock),
        settings.cycle,
        reports_dir=reports_dir,
        stage_timeout=settings.stage_timeout_seconds,
    )
