"""
Service layer for vendorlock.

Contains the pipeline stages that sit on top of the domain and
infrastructure layers:
- ResolverService: Bounded-concurrency git metadata resolution
- group_sources: Deduplication and checkout grouping
- render_vendor_config: Cargo source-replacement config
- ManifestService: End-to-end generation and atomic write

Services are the primary API for commands to use.
"""

from .resolve_service import (
    CrateLocator,
    ResolutionCache,
    ResolveRequest,
    ResolverOptions,
    ResolverService,
)
from .group_service import group_sources
from .vendor_config_service import render_vendor_config, vendor_config_dict
from .manifest_service import (
    GenerateOptions,
    ManifestService,
    flatpak_sources,
    render_manifest,
)

__all__ = [
    'CrateLocator',
    'ResolutionCache',
    'ResolveRequest',
    'ResolverOptions',
    'ResolverService',
    'group_sources',
    'render_vendor_config',
    'vendor_config_dict',
    'GenerateOptions',
    'ManifestService',
    'flatpak_sources',
    'render_manifest',
]
