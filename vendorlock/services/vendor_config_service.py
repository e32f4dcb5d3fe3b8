"""
Vendor redirection config for vendorlock.

Emits the cargo source-replacement config that points every registry
and git source at the vendor tree, plus the per-checkout subdirectory
hints the sandboxed builder needs to lay git crates out.
"""

import logging
import re
from typing import Any, Dict, Iterable, List

import toml

from ..classify import is_crates_io
from ..domain import ArchiveGroup, CheckoutGroup, SourceGroup

logger = logging.getLogger(__name__)

VENDORED_SOURCES = 'vendored-sources'
CRATES_IO = 'crates-io'
CHECKOUT_HINTS = 'vendored-checkouts'


def registry_slug(index_url: str) -> str:
    """Stable source name for a non-crates.io registry, e.g. ``registry-example-index``."""
    bare = re.sub(r'^[a-z]+://', '', index_url.rstrip('/'), flags=re.IGNORECASE)
    slug = re.sub(r'[^A-Za-z0-9]+', '-', bare).strip('-').lower()
    return f"registry-{slug}"


def vendor_config_dict(groups: Iterable[SourceGroup], vendor_dir: str = "vendor") -> Dict[str, Any]:
    """
    Build the redirection config as a plain dict.

    Args:
        groups: Sorted manifest groups
        vendor_dir: Root of the vendor tree

    Returns:
        Mapping ready for TOML serialization
    """
    sources: Dict[str, Dict[str, Any]] = {
        VENDORED_SOURCES: {'directory': vendor_dir},
        CRATES_IO: {'replace-with': VENDORED_SOURCES},
    }
    hints: Dict[str, Dict[str, Any]] = {}

    for group in groups:
        if isinstance(group, ArchiveGroup):
            if is_crates_io(group.registry):
                continue
            slug = registry_slug(group.registry)
            if slug not in sources:
                sources[slug] = {
                    'registry': group.registry,
                    'replace-with': VENDORED_SOURCES,
                }
        elif isinstance(group, CheckoutGroup):
            for source_key, reference in group.references:
                directive = {'git': group.url}
                if reference is not None:
                    directive[reference.kind] = reference.value
                directive['replace-with'] = VENDORED_SOURCES
                sources.setdefault(source_key, directive)

            hints[f"{group.url}#{group.commit}"] = {
                'checkout': group.dest,
                'packages': {p.name: p.subpath for p in group.packages},
            }
        else:
            raise TypeError(f"Unhandled group kind: {type(group).__name__}")

    config: Dict[str, Any] = {'source': sources}
    if hints:
        config[CHECKOUT_HINTS] = hints
    return config


def render_vendor_config(groups: List[SourceGroup], vendor_dir: str = "vendor") -> str:
    """Serialize the redirection config as TOML text."""
    text = toml.dumps(vendor_config_dict(groups, vendor_dir))
    logger.debug(f"Rendered vendor config ({len(text)} bytes)")
    return text
