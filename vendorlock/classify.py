"""
Source classification for vendorlock.

Decides, per locked package, whether it comes from a registry archive,
a git checkout, or the local tree, and derives the kind-specific fields
(download URL, vendor destination, pinned commit).
"""

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from .domain import (
    GitReference,
    LocalPath,
    PackageRecord,
    RegistryArchive,
    SourceKind,
    VersionControl,
)
from .errors import MissingChecksumError, ParseError, UnsupportedSourceKindError

logger = logging.getLogger(__name__)

CRATES_IO_DOWNLOAD_BASE = "https://static.crates.io/crates"

# Index URLs that all mean crates.io
CRATES_IO_INDEXES = (
    "https://github.com/rust-lang/crates.io-index",
    "https://index.crates.io",
)

REGISTRY_PREFIXES = ('registry+', 'sparse+')
GIT_PREFIX = 'git+'
PATH_PREFIX = 'path+'

GIT_REFERENCE_KINDS = ('branch', 'tag', 'rev')


def is_crates_io(index_url: str) -> bool:
    return index_url.rstrip('/') in CRATES_IO_INDEXES


def registry_download_base(index_url: str, registries: Optional[Dict[str, str]] = None) -> str:
    """
    Work out where a registry serves its crate archives from.

    Lookup order: configured registries, crates.io, then the derived
    ``<scheme>://static.<host>/crates`` rule.

    Args:
        index_url: Registry index URL (without registry+/sparse+ prefix)
        registries: Optional mapping of index URL -> download base

    Returns:
        Download base URL without trailing slash
    """
    normalized = index_url.rstrip('/')
    for configured, base in (registries or {}).items():
        if configured.rstrip('/') == normalized:
            return base.rstrip('/')

    if is_crates_io(normalized):
        return CRATES_IO_DOWNLOAD_BASE

    parts = urlsplit(normalized)
    if not parts.scheme or not parts.hostname:
        raise UnsupportedSourceKindError(f"Cannot derive download URL for registry '{index_url}'")
    return f"{parts.scheme}://static.{parts.hostname}/crates"


def canonical_git_url(url: str) -> str:
    """
    Normalize a repository URL for identity comparisons.

    Handles:
        https://GitHub.com/owner/repo.git  → https://github.com/owner/repo
        https://github.com/owner/repo/     → https://github.com/owner/repo
    """
    parts = urlsplit(url)
    path = parts.path.rstrip('/')
    if path.endswith('.git'):
        path = path[:-len('.git')]
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, '', ''))


def repository_name(canonical_url: str) -> str:
    """Last path segment of a repository URL, e.g. ``repo`` for ``.../owner/repo``."""
    path = urlsplit(canonical_url).path.rstrip('/')
    return path.rsplit('/', 1)[-1] or urlsplit(canonical_url).netloc


def checkout_dest(canonical_url: str, commit: str, vendor_dir: str = "vendor") -> str:
    return f"{vendor_dir}/git/{repository_name(canonical_url)}-{commit[:7]}"


def _classify_registry(record: PackageRecord, index_url: str, vendor_dir: str,
                       registries: Optional[Dict[str, str]]) -> RegistryArchive:
    if not record.checksum:
        raise MissingChecksumError(
            "Registry package has no checksum; refusing to vendor an unverified archive",
            package=record.ident,
            source=record.source,
        )

    base = registry_download_base(index_url, registries)
    return RegistryArchive(
        name=record.name,
        version=record.version,
        registry=index_url,
        url=f"{base}/{record.name}/{record.name}-{record.version}.crate",
        sha256=record.checksum,
        dest=f"{vendor_dir}/{record.name}-{record.version}",
    )


def _classify_git(record: PackageRecord, descriptor: str, vendor_dir: str) -> VersionControl:
    parts = urlsplit(descriptor)
    if not parts.scheme or not parts.netloc:
        raise ParseError("Malformed git source URL", package=record.ident, source=record.source)
    commit = parts.fragment
    if not commit:
        raise ParseError("Git source is not pinned to a revision", package=record.ident, source=record.source)

    reference = None
    for key, value in parse_qsl(parts.query):
        if key in GIT_REFERENCE_KINDS:
            reference = GitReference(kind=key, value=value)
            break

    url = urlunsplit((parts.scheme, parts.netloc, parts.path, '', ''))
    canonical = canonical_git_url(url)
    source_key = GIT_PREFIX + urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ''))

    return VersionControl(
        name=record.name,
        version=record.version,
        source=source_key,
        url=url,
        canonical_url=canonical,
        commit=commit,
        dest=checkout_dest(canonical, commit, vendor_dir),
        reference=reference,
    )


def classify(record: PackageRecord, vendor_dir: str = "vendor",
             registries: Optional[Dict[str, str]] = None) -> SourceKind:
    """
    Classify a package record by its source descriptor.

    Args:
        record: Locked package
        vendor_dir: Root of the vendor tree used for destinations
        registries: Optional index URL -> download base overrides

    Returns:
        RegistryArchive, VersionControl or LocalPath

    Raises:
        MissingChecksumError: Registry package without checksum
        UnsupportedSourceKindError: Unknown source scheme
        ParseError: Git source that is malformed or not pinned
    """
    source = record.source
    if source is None:
        return LocalPath(name=record.name, version=record.version)

    if source.startswith(PATH_PREFIX):
        return LocalPath(name=record.name, version=record.version, path=source[len(PATH_PREFIX):])

    for prefix in REGISTRY_PREFIXES:
        if source.startswith(prefix):
            return _classify_registry(record, source[len(prefix):], vendor_dir, registries)

    if source.startswith(GIT_PREFIX):
        return _classify_git(record, source[len(GIT_PREFIX):], vendor_dir)

    raise UnsupportedSourceKindError(
        "Unsupported source kind",
        package=record.ident,
        source=source,
    )


def classify_all(records: Iterable[PackageRecord], vendor_dir: str = "vendor",
                 registries: Optional[Dict[str, str]] = None) -> List[SourceKind]:
    """Classify every record, preserving order. Local sources are kept."""
    classified = [classify(r, vendor_dir=vendor_dir, registries=registries) for r in records]
    local = sum(1 for c in classified if isinstance(c, LocalPath))
    logger.debug(f"Classified {len(classified)} packages ({local} local)")
    return classified
