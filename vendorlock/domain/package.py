"""
PackageRecord domain object for vendorlock.

A PackageRecord is one [[package]] table from the lock, exactly as
pinned by the resolver that produced it.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PackageRecord:
    """
    A single locked package.

    Attributes:
        name: Package name
        version: Exact pinned version
        source: Source descriptor (None for packages in the local tree)
        checksum: sha256 of the registry archive, if recorded
    """
    name: str
    version: str
    source: Optional[str] = None
    checksum: Optional[str] = None

    @property
    def ident(self) -> str:
        """Human-readable identity used in log and error messages."""
        return f"{self.name} {self.version}"
