"""
Metadata resolution service for vendorlock.

The lock pins a git source's commit but not where each crate lives
inside that checkout. This service answers that once per distinct
(repository, commit) pair, in a bounded worker pool, with retry and
exponential backoff on transient failures.
"""

import logging
import tempfile
import threading
import time
import tomllib
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Hashable, Iterable, List, Optional, Tuple

from ..domain import VersionControl
from ..errors import GenerationCancelled, SourceResolutionError, TransientNetworkError
from ..infra.git_client import GitClient
from ..infra.github_client import GitHubClient, parse_github_url

logger = logging.getLogger(__name__)

MANIFEST_NAME = 'Cargo.toml'

# How often a backoff wait checks the caller's cancel signal
CANCEL_POLL_INTERVAL = 0.1

GroupKey = Tuple[str, str]
Subpaths = Dict[str, str]


@dataclass
class ResolverOptions:
    """Options for the resolution worker pool."""
    concurrency: int = 4
    max_retries: int = 3       # Retries after the first attempt
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30

    @classmethod
    def from_config(cls, config: dict) -> 'ResolverOptions':
        section = config.get('resolver', {})
        return cls(
            concurrency=int(section.get('concurrency', cls.concurrency)),
            max_retries=int(section.get('max_retries', cls.max_retries)),
            base_delay=float(section.get('base_delay', cls.base_delay)),
            max_delay=float(section.get('max_delay', cls.max_delay)),
            timeout=float(section.get('timeout_seconds', cls.timeout)),
        )

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


@dataclass(frozen=True)
class ResolveRequest:
    """One checkout to inspect, and the packages expected inside it."""
    url: str
    canonical_url: str
    commit: str
    source: str
    names: FrozenSet[str]

    @property
    def key(self) -> GroupKey:
        return (self.canonical_url, self.commit)

    @property
    def label(self) -> str:
        return f"{self.url}@{self.commit[:12]}"


def build_requests(sources: Iterable[VersionControl]) -> List[ResolveRequest]:
    """Collapse git sources to one request per (repository, commit), sorted by key."""
    by_key: Dict[GroupKey, List[VersionControl]] = {}
    for source in sources:
        by_key.setdefault(source.key, []).append(source)

    requests = []
    for key in sorted(by_key):
        members = sorted(by_key[key], key=lambda s: (s.url, s.source))
        first = members[0]
        requests.append(ResolveRequest(
            url=first.url,
            canonical_url=first.canonical_url,
            commit=first.commit,
            source=first.source,
            names=frozenset(m.name for m in members),
        ))
    return requests


class ResolutionCache:
    """
    Write-once results keyed by group identity.

    A key is claimed before its query is dispatched, so a second request
    for the same key gets the first one's future instead of a new query.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._futures: Dict[Hashable, Future] = {}

    def claim(self, key: Hashable) -> Tuple[Future, bool]:
        """
        Return (future, owner). owner is True only for the first caller,
        who is then responsible for completing the future.
        """
        with self._lock:
            existing = self._futures.get(key)
            if existing is not None:
                return existing, False
            future = Future()
            future.set_running_or_notify_cancel()
            self._futures[key] = future
            return future, True

    def get(self, key: Hashable) -> Optional[Subpaths]:
        """Completed result for key, or None if absent, pending or failed."""
        with self._lock:
            future = self._futures.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._futures

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)


def crate_name(manifest_text: str) -> Optional[str]:
    """Package name declared by a Cargo.toml, or None for virtual workspaces."""
    document = tomllib.loads(manifest_text)
    package = document.get('package')
    if isinstance(package, dict) and isinstance(package.get('name'), str):
        return package['name']
    return None


def manifest_candidates(paths: Iterable[str], names: Iterable[str]) -> List[str]:
    """
    Order crate manifests so the likely homes of the wanted names come first:
    the repository root, then ``<name>/``, then ``crates/<name>/``, then the rest.
    """
    manifests = sorted(p for p in paths if p == MANIFEST_NAME or p.endswith('/' + MANIFEST_NAME))
    preferred = [MANIFEST_NAME]
    for name in sorted(names):
        preferred.append(f"{name}/{MANIFEST_NAME}")
        preferred.append(f"crates/{name}/{MANIFEST_NAME}")

    ordered = [p for p in preferred if p in manifests]
    ordered += [p for p in manifests if p not in ordered]
    return ordered


def subpath_of(manifest_path: str) -> str:
    parent = manifest_path[:-len(MANIFEST_NAME)].rstrip('/')
    return parent or '.'


def match_crates(paths: Iterable[str], names: FrozenSet[str], read: Callable[[str], str],
                 label: str) -> Subpaths:
    """
    Find the subdirectory of each wanted crate by reading candidate manifests.

    Raises:
        SourceResolutionError: If any wanted name is not in the repository
    """
    found: Subpaths = {}
    for path in manifest_candidates(paths, names):
        if len(found) == len(names):
            break
        try:
            name = crate_name(read(path))
        except tomllib.TOMLDecodeError as e:
            logger.debug(f"Skipping unparsable {path} in {label}: {e}")
            continue
        if name in names and name not in found:
            found[name] = subpath_of(path)

    missing = sorted(names - found.keys())
    if missing:
        raise SourceResolutionError(f"Packages {', '.join(missing)} not found in {label}")
    return found


class CrateLocator:
    """
    Single-attempt lookup of crate subdirectories at a pinned commit.

    GitHub repositories are inspected over the HTTPS API; anything else
    is shallow-fetched with git into a scratch directory.
    """

    def __init__(self, github: Optional[GitHubClient] = None, git: Optional[GitClient] = None,
                 timeout: float = 30, token: Optional[str] = None):
        self.github = github or GitHubClient(token=token, timeout=timeout)
        self.git = git or GitClient(timeout=timeout)

    def locate(self, request: ResolveRequest) -> Subpaths:
        repo = parse_github_url(request.url)
        if repo:
            owner, name = repo
            paths = self.github.list_files(owner, name, request.commit)
            return match_crates(
                paths, request.names,
                lambda path: self.github.read_file(owner, name, request.commit, path),
                request.label,
            )

        with tempfile.TemporaryDirectory(prefix='vendorlock-') as scratch:
            root = Path(scratch)
            self.git.fetch_commit(request.url, request.commit, root)
            paths = self.git.list_files(root)
            return match_crates(
                paths, request.names,
                lambda path: (root / path).read_text(encoding='utf-8'),
                request.label,
            )


class ResolverService:
    """
    Resolves checkout subdirectories for git sources.

    Each resolve() call is one run with its own cache and cancel state;
    nothing learned in one run is reused by the next.

    Example:
        service = ResolverService(ResolverOptions(concurrency=2))
        subpaths = service.resolve(git_sources)
        subpaths[("https://github.com/o/r", "0123abc")]  # {"foo": "crates/foo"}
    """

    def __init__(
        self,
        options: Optional[ResolverOptions] = None,
        locator: Optional[CrateLocator] = None,
        cancel_event: Optional[threading.Event] = None,
        token: Optional[str] = None,
    ):
        """
        Initialize ResolverService.

        Args:
            options: Pool size, retry and timeout settings
            locator: Lookup backend (creates a CrateLocator if None)
            cancel_event: External cancellation signal; runs observe it
                but never set it
            token: GitHub token passed to the default locator
        """
        self.options = options or ResolverOptions()
        self.locator = locator or CrateLocator(timeout=self.options.timeout, token=token)
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

    def _cancelled(self, run_cancel: threading.Event) -> bool:
        return run_cancel.is_set() or self.cancel_event.is_set()

    def _wait(self, run_cancel: threading.Event, delay: float) -> bool:
        """Sleep for delay unless cancelled first. Returns True if cancelled."""
        deadline = time.monotonic() + delay
        while not self._cancelled(run_cancel):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            run_cancel.wait(min(remaining, CANCEL_POLL_INTERVAL))
        return True

    def _resolve_one(self, request: ResolveRequest, run_cancel: threading.Event) -> Subpaths:
        attempts = self.options.max_retries + 1
        packages = ', '.join(sorted(request.names))
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if self._cancelled(run_cancel):
                raise GenerationCancelled(source=request.source)

            try:
                return self.locator.locate(request)
            except TransientNetworkError as e:
                last_error = e
                if attempt + 1 >= attempts:
                    break
                delay = self.options.backoff(attempt)
                logger.info(f"Transient failure for {request.label}: {e}; retrying in {delay:.1f}s "
                            f"(attempt {attempt + 1}/{attempts})")
                if self._wait(run_cancel, delay):
                    raise GenerationCancelled(source=request.source)
            except SourceResolutionError as e:
                raise SourceResolutionError(
                    f"Cannot resolve {request.label}: {e}",
                    package=packages,
                    source=request.source,
                ) from e
            except (OSError, ValueError) as e:
                # Undecodable manifest or malformed API payload
                raise SourceResolutionError(
                    f"Cannot resolve {request.label}: {type(e).__name__}: {e}",
                    package=packages,
                    source=request.source,
                ) from e

        raise SourceResolutionError(
            f"Gave up on {request.label} after {attempts} attempts: {last_error}",
            package=packages,
            source=request.source,
        )

    def _run_claimed(self, request: ResolveRequest, future: Future, run_cancel: threading.Event) -> None:
        try:
            result = self._resolve_one(request, run_cancel)
        except BaseException as e:
            future.set_exception(e)
        else:
            logger.debug(f"Resolved {request.label}: {result}")
            future.set_result(result)

    def resolve(
        self,
        sources: Iterable[VersionControl],
        progress: Optional[Callable[[ResolveRequest], None]] = None,
    ) -> Dict[GroupKey, Subpaths]:
        """
        Resolve every distinct checkout referenced by sources.

        Args:
            sources: Classified git sources (duplicates allowed)
            progress: Called on the calling thread after each checkout resolves

        Returns:
            Mapping (canonical URL, commit) -> {package name: subpath}

        Raises:
            SourceResolutionError: First definitive or retry-exhausted failure
            GenerationCancelled: If the run was cancelled
        """
        requests = build_requests(sources)
        if not requests:
            return {}

        cache = ResolutionCache()
        run_cancel = threading.Event()
        workers = max(1, min(self.options.concurrency, len(requests)))
        logger.info(f"Resolving {len(requests)} git checkouts ({workers} workers)")

        pending: Dict[Future, ResolveRequest] = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for request in requests:
                future, owner = cache.claim(request.key)
                if owner:
                    executor.submit(self._run_claimed, request, future, run_cancel)
                pending[future] = request

            try:
                for future in as_completed(pending):
                    error = future.exception()
                    if error is not None:
                        raise error
                    if progress:
                        progress(pending[future])
            except BaseException as error:
                run_cancel.set()
                executor.shutdown(wait=True, cancel_futures=True)
                raise self._first_fatal(pending, error)

        return {request.key: future.result() for future, request in pending.items()}

    @staticmethod
    def _first_fatal(pending: Dict[Future, ResolveRequest], error: BaseException) -> BaseException:
        """Prefer a real failure over the cancellations it caused in sibling workers."""
        if not isinstance(error, GenerationCancelled):
            return error
        for future in pending:
            if future.done():
                other = future.exception()
                if other is not None and not isinstance(other, GenerationCancelled):
                    return other
        return error
