"""
Manifest domain objects for vendorlock.

Groups are the deduplicated unit of work handed to the sandboxed build:
one archive per (name, version, sha256) and one checkout per
(repository, commit). A Manifest holds them in sorted order.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .source import GitReference


@dataclass(frozen=True)
class PackageMapping:
    """Where a package lives inside a shared checkout."""
    name: str
    subpath: str
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'subpath': self.subpath}


@dataclass(frozen=True)
class ArchiveGroup:
    """One registry archive, shared by every record with the same key."""
    name: str
    version: str
    sha256: str
    url: str
    dest: str
    registry: str

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.name, self.version, self.sha256)

    @property
    def sort_key(self) -> Tuple[str, ...]:
        return ('archive',) + self.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'archive',
            'url': self.url,
            'sha256': self.sha256,
            'dest': self.dest,
        }


@dataclass(frozen=True)
class CheckoutGroup:
    """
    One git checkout serving one or more packages.

    Attributes:
        url: Clone URL
        canonical_url: Normalized repository identity
        commit: Pinned revision
        dest: Checkout directory inside the vendor tree
        packages: Package name -> subdirectory mappings, sorted by name
        references: Distinct (source descriptor, declared reference) pairs
            that point at this checkout, sorted by descriptor
    """
    url: str
    canonical_url: str
    commit: str
    dest: str
    packages: Tuple[PackageMapping, ...] = ()
    references: Tuple[Tuple[str, Optional[GitReference]], ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.canonical_url, self.commit)

    @property
    def sort_key(self) -> Tuple[str, ...]:
        return ('git',) + self.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'git',
            'url': self.url,
            'commit': self.commit,
            'dest': self.dest,
            'packages': [p.to_dict() for p in self.packages],
        }


SourceGroup = Union[ArchiveGroup, CheckoutGroup]


@dataclass(frozen=True)
class Manifest:
    """The ordered, deduplicated sources plus vendor configuration text."""
    groups: Tuple[SourceGroup, ...] = ()
    vendor_config: str = ""

    @property
    def archives(self) -> List[ArchiveGroup]:
        return [g for g in self.groups if isinstance(g, ArchiveGroup)]

    @property
    def checkouts(self) -> List[CheckoutGroup]:
        return [g for g in self.groups if isinstance(g, CheckoutGroup)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sources': [g.to_dict() for g in self.groups],
            'vendor_config': self.vendor_config,
        }
