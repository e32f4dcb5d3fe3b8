"""
Source kinds for vendorlock.

Every locked package classifies into exactly one of RegistryArchive,
VersionControl or LocalPath. Code that consumes a SourceKind handles all
three and raises TypeError for anything else.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class GitReference:
    """The branch/tag/rev query a git source was declared with."""
    kind: str   # branch, tag or rev
    value: str


@dataclass(frozen=True)
class RegistryArchive:
    """A versioned crate archive downloaded from a package registry."""
    name: str
    version: str
    registry: str       # index URL, without the registry+/sparse+ prefix
    url: str
    sha256: str
    dest: str

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.name, self.version, self.sha256)


@dataclass(frozen=True)
class VersionControl:
    """
    A package checked out from a git repository at a pinned commit.

    Attributes:
        source: Full source descriptor without the pinned fragment; this is
            the key the build toolchain uses to look the source up
        url: Clone URL as written in the lock
        canonical_url: Normalized repository identity used for grouping
        commit: Pinned revision
        reference: Declared branch/tag/rev, if any
        dest: Checkout directory inside the vendor tree
    """
    name: str
    version: str
    source: str
    url: str
    canonical_url: str
    commit: str
    dest: str
    reference: Optional[GitReference] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.canonical_url, self.commit)


@dataclass(frozen=True)
class LocalPath:
    """A package that is part of the local tree and is never fetched."""
    name: str
    version: str
    path: Optional[str] = None


SourceKind = Union[RegistryArchive, VersionControl, LocalPath]
