"""
Tests for collaborator adapters — gh client, content command, rate-limit flag, bootstrap.
"""

import json
import shlex
import subprocess
import sys

import pytest

from falconwatch.adapters.content import CommandContentGenerator
from falconwatch.adapters.github import GhRepositoryClient
from falconwatch.adapters.mock import InMemoryCommentStore, MockRepositoryClient
from falconwatch.adapters.ratelimit import FlagFileRateLimiter
from falconwatch.core.config.loader import EngineSettings
from falconwatch.core.engine.bootstrap import build_collaborators, build_engine
from falconwatch.core.models import Comment
from falconwatch.core.persistence.comments import JsonCommentStore
from falconwatch.core.persistence.store import NdjsonStore

# ── GitHub ──────────────────────────────────────────────────────


@pytest.fixture
def gh_calls(monkeypatch):
    """Capture gh invocations; tests set ``responses`` by API path."""
    calls = []
    responses = {}

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        returncode, stdout, stderr = responses[cmd[2]]
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr("falconwatch.adapters.github.subprocess.run", fake_run)
    return calls, responses


class TestGhRepositoryClient:
    def test_get_repository(self, gh_calls):
        calls, responses = gh_calls
        responses["repos/falcon/bot"] = (0, json.dumps({"name": "bot", "stargazers_count": 4}), "")

        meta = GhRepositoryClient("falcon").get_repository("bot")

        assert meta["stargazers_count"] == 4
        assert calls == [["gh", "api", "repos/falcon/bot"]]

    def test_missing_repository(self, gh_calls):
        _, responses = gh_calls
        responses["repos/falcon/gone"] = (1, "", "gh: Not Found (HTTP 404)")
        assert GhRepositoryClient("falcon").get_repository("gone") is None

    def test_other_failures_raise(self, gh_calls):
        _, responses = gh_calls
        responses["repos/falcon/bot"] = (1, "", "gh: API rate limit exceeded")
        with pytest.raises(RuntimeError, match="rate limit"):
            GhRepositoryClient("falcon").get_repository("bot")

    def test_qualified_names_kept(self, gh_calls):
        calls, responses = gh_calls
        responses["repos/other/bot"] = (0, "{}", "")
        GhRepositoryClient("falcon").get_repository("other/bot")
        assert calls[0][2] == "repos/other/bot"

    def test_recent_commits(self, gh_calls):
        _, responses = gh_calls
        commits = [
            {
                "sha": "abcdef1234567890",
                "commit": {"message": "Fix thing\n\nlong body", "author": {"date": "2024-06-01T00:00:00Z"}},
            },
            {"sha": "1234567890abcdef", "commit": {"message": "Second", "author": {}}},
        ]
        responses["repos/falcon/bot/commits?per_page=1"] = (0, json.dumps(commits), "")

        got = GhRepositoryClient("falcon").get_recent_commits("bot", 1)

        assert got == [{"sha": "abcdef123456", "message": "Fix thing", "date": "2024-06-01T00:00:00Z"}]


# ── Content ─────────────────────────────────────────────────────


def _python_command(code: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


class TestCommandContentGenerator:
    def test_no_command_configured(self):
        with pytest.raises(RuntimeError, match="No content_command"):
            CommandContentGenerator("").generate_blogs_for_featured_repos(["a"])

    def test_featured_repos_passed_in_env(self, tmp_path):
        out = tmp_path / "repos.txt"
        code = f"import os; open({str(out)!r}, 'w').write(os.environ['FALCONWATCH_FEATURED_REPOS'])"
        CommandContentGenerator(_python_command(code)).generate_blogs_for_featured_repos(["a", "b"])
        assert out.read_text() == "a,b"

    def test_nonzero_exit_raises(self):
        code = "import sys; sys.stderr.write('template missing'); sys.exit(3)"
        with pytest.raises(RuntimeError, match="exited 3: template missing"):
            CommandContentGenerator(_python_command(code)).generate_blogs_for_featured_repos([])

    def test_post_count_unknown(self):
        assert CommandContentGenerator("true").count_published_posts() is None


# ── Rate limiting ───────────────────────────────────────────────


class TestFlagFileRateLimiter:
    def test_enable_strict(self, tmp_state_dir):
        limiter = FlagFileRateLimiter(tmp_state_dir / "rate_limit.json")
        assert not limiter.is_strict()

        assert limiter.enable_strict("11 failed logins") is True

        assert limiter.is_strict()
        data = json.loads(limiter.path.read_text())
        assert data["reason"] == "11 failed logins"
        assert data["strict"] is True
        assert not list(tmp_state_dir.glob(".rate_limit_*"))

    def test_idempotent(self, tmp_state_dir):
        limiter = FlagFileRateLimiter(tmp_state_dir / "rate_limit.json")
        limiter.enable_strict("first")
        limiter.enable_strict("second")
        assert json.loads(limiter.path.read_text())["reason"] == "first"

    def test_corrupt_flag_is_off(self, tmp_state_dir):
        path = tmp_state_dir / "rate_limit.json"
        path.write_text("{oops")
        assert FlagFileRateLimiter(path).is_strict() is False


# ── Mocks ───────────────────────────────────────────────────────


class TestMocks:
    def test_repository_client(self):
        repos = MockRepositoryClient(failing={"x"}, missing={"y"})
        assert repos.get_repository("ok")["full_name"] == "mock/ok"
        assert repos.get_repository("y") is None
        with pytest.raises(RuntimeError):
            repos.get_repository("x")
        assert repos.calls == ["ok", "y", "x"]

    def test_comment_store(self):
        comments = InMemoryCommentStore([Comment(id="c1", author_id="a")])
        assert comments.approve("c1") is True
        assert comments.list_unapproved() == []


# ── Bootstrap ───────────────────────────────────────────────────


class TestBootstrap:
    def test_mock_collaborators(self, tmp_path):
        settings = EngineSettings(state_dir=tmp_path / "state").resolved(tmp_path)
        collab = build_collaborators(settings, mock=True)

        assert isinstance(collab.store, NdjsonStore)
        assert isinstance(collab.comments, JsonCommentStore)
        assert isinstance(collab.repos, MockRepositoryClient)
        assert (tmp_path / "state").is_dir()

    def test_real_collaborators(self, tmp_path):
        settings = EngineSettings(state_dir=tmp_path / "state", github_owner="falcon").resolved(tmp_path)
        collab = build_collaborators(settings)

        assert isinstance(collab.repos, GhRepositoryClient)
        assert isinstance(collab.content, CommandContentGenerator)
        assert isinstance(collab.rate_limiter, FlagFileRateLimiter)
        assert collab.rate_limiter.path == tmp_path / "state" / "rate_limit.json"

    def test_build_engine(self, tmp_path):
        settings = EngineSettings(state_dir=tmp_path / "state").resolved(tmp_path)
        engine = build_engine(settings, mock=True)
        assert engine.config == settings.cycle
        assert not engine.is_running
