"""
Domain layer for vendorlock.

Contains pure domain objects with no I/O or side effects:
- PackageRecord: One [[package]] entry from the lock
- RegistryArchive / VersionControl / LocalPath: Classified sources
- ArchiveGroup / CheckoutGroup: Deduplicated manifest entries
- Manifest: The ordered result plus vendor configuration text

These objects are immutable and provide serialization methods for
the JSON manifest.
"""

from .package import PackageRecord
from .source import (
    GitReference,
    LocalPath,
    RegistryArchive,
    SourceKind,
    VersionControl,
)
from .manifest import (
    ArchiveGroup,
    CheckoutGroup,
    Manifest,
    PackageMapping,
    SourceGroup,
)

__all__ = [
    'PackageRecord',
    'GitReference',
    'LocalPath',
    'RegistryArchive',
    'SourceKind',
    'VersionControl',
    'ArchiveGroup',
    'CheckoutGroup',
    'Manifest',
    'PackageMapping',
    'SourceGroup',
]
