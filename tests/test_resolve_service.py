"""
Tests for git metadata resolution.

Tests cover:
- One lookup per (repository, commit), never per package
- Write-once cache suppressing duplicate queries
- Retry with backoff on transient failures, fatal on definitive ones
- Cooperative cancellation before and between attempts
- Bounded concurrency
- Subdirectory discovery from repository file listings
"""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from vendorlock.classify import classify
from vendorlock.domain import PackageRecord
from vendorlock.errors import GenerationCancelled, SourceResolutionError, TransientNetworkError
from vendorlock.services.resolve_service import (
    CrateLocator,
    ResolutionCache,
    ResolverOptions,
    ResolverService,
    build_requests,
    crate_name,
    manifest_candidates,
    match_crates,
)

COMMIT_A = "a" * 40
COMMIT_B = "b" * 40


def git_source(name, repo="https://github.com/example/multi", commit=COMMIT_A, query="?branch=main"):
    return classify(PackageRecord(name, "1.0.0", f"git+{repo}{query}#{commit}"))


class FakeLocator:
    """Locator double that answers from a table and records calls."""

    def __init__(self, answers=None, failures=None, delay=0.0):
        self.answers = answers or {}
        self.failures = list(failures or [])
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def locate(self, request):
        with self._lock:
            self.calls.append(request)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.failures:
                failure = self.failures.pop(0)
                if callable(failure):
                    failure = failure()
                if failure is not None:
                    raise failure
            return self.answers.get(request.key, {name: "." for name in request.names})
        finally:
            with self._lock:
                self.active -= 1


def fast_options(**overrides):
    options = dict(concurrency=4, max_retries=3, base_delay=0.0, max_delay=0.0, timeout=1)
    options.update(overrides)
    return ResolverOptions(**options)


class TestBuildRequests:

    def test_one_request_per_checkout(self):
        sources = [git_source("alpha"), git_source("beta"), git_source("gamma", commit=COMMIT_B)]
        requests = build_requests(sources)
        assert len(requests) == 2
        assert requests[0].names == frozenset({"alpha", "beta"})
        assert requests[1].names == frozenset({"gamma"})

    def test_sorted_by_key(self):
        sources = [git_source("z", repo="https://github.com/z/z"), git_source("a", repo="https://github.com/a/a")]
        assert [r.canonical_url for r in build_requests(sources)] == [
            "https://github.com/a/a",
            "https://github.com/z/z",
        ]


class TestResolutionCache:

    def test_first_claim_owns_key(self):
        cache = ResolutionCache()
        first, owner = cache.claim("k")
        second, second_owner = cache.claim("k")
        assert owner is True
        assert second_owner is False
        assert first is second
        assert "k" in cache
        assert len(cache) == 1

    def test_get_only_returns_completed_results(self):
        cache = ResolutionCache()
        future, _ = cache.claim("k")
        assert cache.get("k") is None
        future.set_result({"foo": "."})
        assert cache.get("k") == {"foo": "."}

    def test_get_ignores_failures(self):
        cache = ResolutionCache()
        future, _ = cache.claim("k")
        future.set_exception(SourceResolutionError("boom"))
        assert cache.get("k") is None


class TestResolverService:

    def test_resolves_shared_checkout_once(self):
        key = ("https://github.com/example/multi", COMMIT_A)
        locator = FakeLocator(answers={key: {"alpha": "crates/alpha", "beta": "crates/beta"}})
        service = ResolverService(fast_options(), locator=locator)

        result = service.resolve([git_source("alpha"), git_source("beta"), git_source("alpha")])

        assert result == {key: {"alpha": "crates/alpha", "beta": "crates/beta"}}
        assert len(locator.calls) == 1

    def test_no_git_sources(self):
        locator = FakeLocator()
        assert ResolverService(fast_options(), locator=locator).resolve([]) == {}
        assert locator.calls == []

    def test_each_run_queries_afresh(self):
        locator = FakeLocator()
        service = ResolverService(fast_options(), locator=locator)
        service.resolve([git_source("alpha")])
        service.resolve([git_source("alpha")])
        assert len(locator.calls) == 2

    def test_repeat_run_picks_up_new_member(self):
        service = ResolverService(fast_options(), locator=FakeLocator())
        service.resolve([git_source("alpha")])

        result = service.resolve([git_source("alpha"), git_source("beta")])

        assert list(result.values()) == [{"alpha": ".", "beta": "."}]

    def test_run_after_failure_succeeds(self):
        locator = FakeLocator(failures=[SourceResolutionError("repository not found")])
        service = ResolverService(fast_options(), locator=locator)
        with pytest.raises(SourceResolutionError):
            service.resolve([git_source("bad", repo="https://github.com/bad/repo")])

        result = service.resolve([git_source("ok", repo="https://github.com/other/repo")])

        assert list(result.values()) == [{"ok": "."}]
        assert not service.cancel_event.is_set()

    def test_retries_transient_failures(self):
        locator = FakeLocator(failures=[TransientNetworkError("reset"), TransientNetworkError("503")])
        service = ResolverService(fast_options(max_retries=3), locator=locator)
        result = service.resolve([git_source("alpha")])
        assert list(result.values()) == [{"alpha": "."}]
        assert len(locator.calls) == 3

    def test_gives_up_after_retries(self):
        locator = FakeLocator(failures=[TransientNetworkError("timeout")] * 10)
        service = ResolverService(fast_options(max_retries=2), locator=locator)
        with pytest.raises(SourceResolutionError, match="after 3 attempts") as exc_info:
            service.resolve([git_source("alpha")])
        assert len(locator.calls) == 3
        assert exc_info.value.package == "alpha"
        assert exc_info.value.source == "git+https://github.com/example/multi?branch=main"

    def test_definitive_failure_is_not_retried(self):
        locator = FakeLocator(failures=[SourceResolutionError("not found (HTTP 404)")])
        service = ResolverService(fast_options(), locator=locator)
        with pytest.raises(SourceResolutionError, match="HTTP 404"):
            service.resolve([git_source("alpha")])
        assert len(locator.calls) == 1

    def test_failure_aborts_whole_run(self):
        failing = ("https://github.com/bad/repo", COMMIT_A)

        class Locator(FakeLocator):
            def locate(self, request):
                if request.key == failing:
                    self.calls.append(request)
                    raise SourceResolutionError("repository not found")
                return super().locate(request)

        service = ResolverService(fast_options(concurrency=1), locator=Locator())
        sources = [git_source("ok", repo="https://github.com/good/repo"),
                   git_source("bad", repo="https://github.com/bad/repo")]
        with pytest.raises(SourceResolutionError, match="repository not found"):
            service.resolve(sources)
        assert not service.cancel_event.is_set()

    def test_unreadable_repository_data_names_package(self):
        bad_bytes = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        locator = FakeLocator(failures=[bad_bytes])
        service = ResolverService(fast_options(), locator=locator)

        with pytest.raises(SourceResolutionError, match="UnicodeDecodeError") as exc_info:
            service.resolve([git_source("alpha")])

        assert exc_info.value.package == "alpha"
        assert exc_info.value.source == "git+https://github.com/example/multi?branch=main"
        assert len(locator.calls) == 1

    def test_cancelled_before_start(self):
        locator = FakeLocator()
        cancel = threading.Event()
        cancel.set()
        service = ResolverService(fast_options(), locator=locator, cancel_event=cancel)
        with pytest.raises(GenerationCancelled):
            service.resolve([git_source("alpha")])
        assert locator.calls == []

    def test_cancellation_interrupts_backoff(self):
        cancel = threading.Event()

        def fail_and_cancel():
            cancel.set()
            return TransientNetworkError("reset")

        locator = FakeLocator(failures=[fail_and_cancel] * 5)
        service = ResolverService(
            fast_options(base_delay=30.0, max_delay=30.0),
            locator=locator,
            cancel_event=cancel,
        )

        started = time.monotonic()
        with pytest.raises(GenerationCancelled):
            service.resolve([git_source("alpha")])
        assert time.monotonic() - started < 5
        assert len(locator.calls) == 1

    def test_concurrency_is_bounded(self):
        locator = FakeLocator(delay=0.05)
        service = ResolverService(fast_options(concurrency=2), locator=locator)
        sources = [git_source(f"pkg{i}", repo=f"https://github.com/o/repo{i}") for i in range(6)]

        result = service.resolve(sources)

        assert len(result) == 6
        assert locator.max_active <= 2

    def test_progress_callback(self):
        seen = []
        service = ResolverService(fast_options(), locator=FakeLocator())
        service.resolve([git_source("a", commit=COMMIT_A), git_source("b", commit=COMMIT_B)],
                        progress=seen.append)
        assert sorted(r.commit for r in seen) == [COMMIT_A, COMMIT_B]

    def test_options_from_config(self):
        options = ResolverOptions.from_config({"resolver": {"concurrency": 8, "timeout_seconds": 5}})
        assert options.concurrency == 8
        assert options.timeout == 5.0
        assert options.max_retries == 3

    def test_backoff_is_capped(self):
        options = ResolverOptions(base_delay=1.0, max_delay=5.0)
        assert [options.backoff(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


WORKSPACE_ROOT = """
[workspace]
members = ["crates/*"]
"""


def crate_toml(name):
    return f'[package]\nname = "{name}"\nversion = "1.0.0"\n'


class TestMatchCrates:

    def test_crate_name(self):
        assert crate_name(crate_toml("alpha")) == "alpha"
        assert crate_name(WORKSPACE_ROOT) is None

    def test_candidate_order(self):
        paths = ["z/Cargo.toml", "crates/alpha/Cargo.toml", "Cargo.toml", "README.md", "alpha/Cargo.toml"]
        assert manifest_candidates(paths, ["alpha"]) == [
            "Cargo.toml",
            "alpha/Cargo.toml",
            "crates/alpha/Cargo.toml",
            "z/Cargo.toml",
        ]

    def test_finds_subdirectories(self):
        files = {
            "Cargo.toml": WORKSPACE_ROOT,
            "crates/alpha/Cargo.toml": crate_toml("alpha"),
            "crates/beta/Cargo.toml": crate_toml("beta"),
            "tools/gamma/Cargo.toml": crate_toml("gamma"),
        }
        result = match_crates(files, frozenset({"alpha", "gamma"}), files.__getitem__, "repo")
        assert result == {"alpha": "crates/alpha", "gamma": "tools/gamma"}

    def test_root_crate(self):
        files = {"Cargo.toml": crate_toml("solo")}
        assert match_crates(files, frozenset({"solo"}), files.__getitem__, "repo") == {"solo": "."}

    def test_stops_reading_once_all_found(self):
        files = {"Cargo.toml": crate_toml("solo"), "other/Cargo.toml": crate_toml("other")}
        read = MagicMock(side_effect=files.__getitem__)
        match_crates(files, frozenset({"solo"}), read, "repo")
        read.assert_called_once_with("Cargo.toml")

    def test_skips_unparsable_manifests(self):
        files = {"a/Cargo.toml": "[package\n", "b/Cargo.toml": crate_toml("ok")}
        assert match_crates(files, frozenset({"ok"}), files.__getitem__, "repo") == {"ok": "b"}

    def test_missing_package(self):
        files = {"Cargo.toml": crate_toml("solo")}
        with pytest.raises(SourceResolutionError, match="ghost not found in repo"):
            match_crates(files, frozenset({"solo", "ghost"}), files.__getitem__, "repo")


class TestCrateLocator:

    def test_github_repository_uses_api(self):
        github = MagicMock()
        github.list_files.return_value = ["Cargo.toml", "crates/alpha/Cargo.toml"]
        github.read_file.side_effect = lambda owner, repo, commit, path: {
            "Cargo.toml": WORKSPACE_ROOT,
            "crates/alpha/Cargo.toml": crate_toml("alpha"),
        }[path]
        git = MagicMock()

        locator = CrateLocator(github=github, git=git)
        request = build_requests([git_source("alpha")])[0]

        assert locator.locate(request) == {"alpha": "crates/alpha"}
        github.list_files.assert_called_once_with("example", "multi", COMMIT_A)
        git.fetch_commit.assert_not_called()

    def test_other_hosts_use_git(self):
        def fetch(url, commit, dest):
            (Path(dest) / "lib").mkdir()
            (Path(dest) / "lib" / "Cargo.toml").write_text(crate_toml("alpha"))

        git = MagicMock()
        git.fetch_commit.side_effect = fetch
        git.list_files.return_value = ["lib/Cargo.toml"]
        github = MagicMock()

        locator = CrateLocator(github=github, git=git)
        request = build_requests([git_source("alpha", repo="https://gitlab.com/o/r")])[0]

        assert locator.locate(request) == {"alpha": "lib"}
        github.list_files.assert_not_called()
        assert git.fetch_commit.call_args[0][:2] == ("https://gitlab.com/o/r", COMMIT_A)
