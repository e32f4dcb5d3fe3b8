"""
vendorlock - Offline-source manifests from dependency lock files.

A sandboxed build cannot reach the network, so every archive, checksum
and git checkout it would fetch has to be listed up front. vendorlock
reads a Cargo.lock and writes that list, with deterministic vendor
destinations and a source-replacement config for the toolchain.

Quick Start:
    from vendorlock import ManifestService

    service = ManifestService()
    manifest = service.generate("Cargo.lock", "cargo-sources.json")
    for group in manifest.groups:
        print(group.to_dict())

Pipeline:
    parse_lock      - Lock text -> PackageRecord list
    classify        - PackageRecord -> RegistryArchive | VersionControl | LocalPath
    ResolverService - Checkout subdirectories, once per (repository, commit)
    group_sources   - Deduplicated, sorted ArchiveGroup / CheckoutGroup
    render_vendor_config - Cargo source-replacement TOML
    ManifestService - All of the above plus the atomic write
"""

__version__ = "0.1.0"

from .lockfile import parse_lock, read_lockfile
from .classify import classify, classify_all

from .domain import (
    PackageRecord,
    RegistryArchive,
    VersionControl,
    LocalPath,
    ArchiveGroup,
    CheckoutGroup,
    Manifest,
)

from .errors import (
    ManifestError,
    ParseError,
    UnsupportedSourceKindError,
    MissingChecksumError,
    SourceResolutionError,
    GenerationCancelled,
)

from .services import (
    ManifestService,
    GenerateOptions,
    ResolverService,
    ResolverOptions,
    group_sources,
    render_vendor_config,
)

from .config import load_config

__all__ = [
    "__version__",
    # Pipeline
    "parse_lock",
    "read_lockfile",
    "classify",
    "classify_all",
    "group_sources",
    "render_vendor_config",
    # Domain objects
    "PackageRecord",
    "RegistryArchive",
    "VersionControl",
    "LocalPath",
    "ArchiveGroup",
    "CheckoutGroup",
    "Manifest",
    # Errors
    "ManifestError",
    "ParseError",
    "UnsupportedSourceKindError",
    "MissingChecksumError",
    "SourceResolutionError",
    "GenerationCancelled",
    # Services
    "ManifestService",
    "GenerateOptions",
    "ResolverService",
    "ResolverOptions",
    # Configuration
    "load_config",
]
