"""
Deduplication and grouping for vendorlock.

Collapses classified sources into manifest groups:
- identical (name, version, sha256) archives become one ArchiveGroup
- every package at the same (repository, commit) shares one CheckoutGroup
"""

import logging
from typing import Dict, Iterable, List, Tuple

from ..domain import (
    ArchiveGroup,
    CheckoutGroup,
    LocalPath,
    PackageMapping,
    RegistryArchive,
    SourceGroup,
    SourceKind,
    VersionControl,
)
from ..errors import SourceResolutionError

logger = logging.getLogger(__name__)


def _archive_group(source: RegistryArchive) -> ArchiveGroup:
    return ArchiveGroup(
        name=source.name,
        version=source.version,
        sha256=source.sha256,
        url=source.url,
        dest=source.dest,
        registry=source.registry,
    )


def _checkout_group(members: List[VersionControl], subpaths: Dict[str, str]) -> CheckoutGroup:
    first = min(members, key=lambda m: (m.url, m.source))

    packages: Dict[str, str] = {}
    versions: Dict[str, str] = {}
    for member in members:
        if member.name not in subpaths:
            raise SourceResolutionError(
                "No checkout subdirectory was resolved",
                package=f"{member.name} {member.version}",
                source=member.source,
            )
        packages[member.name] = subpaths[member.name]
        versions[member.name] = member.version

    references = sorted(
        {(m.source, m.reference) for m in members},
        key=lambda item: item[0],
    )

    return CheckoutGroup(
        url=first.url,
        canonical_url=first.canonical_url,
        commit=first.commit,
        dest=first.dest,
        packages=tuple(PackageMapping(name, packages[name], versions[name]) for name in sorted(packages)),
        references=tuple(references),
    )


def group_sources(
    sources: Iterable[SourceKind],
    subpaths: Dict[Tuple[str, str], Dict[str, str]],
) -> List[SourceGroup]:
    """
    Deduplicate and group classified sources.

    Args:
        sources: Output of the classifier (local sources are dropped)
        subpaths: Resolver output, (canonical URL, commit) -> {name: subpath}

    Returns:
        Disjoint groups sorted by group key, archives before checkouts

    Raises:
        SourceResolutionError: If a git package has no resolved subdirectory
    """
    archives: Dict[Tuple[str, str, str], ArchiveGroup] = {}
    checkouts: Dict[Tuple[str, str], List[VersionControl]] = {}
    seen = 0

    for source in sources:
        if isinstance(source, LocalPath):
            continue
        seen += 1
        if isinstance(source, RegistryArchive):
            archives.setdefault(source.key, _archive_group(source))
        elif isinstance(source, VersionControl):
            checkouts.setdefault(source.key, []).append(source)
        else:
            raise TypeError(f"Unhandled source kind: {type(source).__name__}")

    groups: List[SourceGroup] = list(archives.values())
    for key, members in checkouts.items():
        groups.append(_checkout_group(members, subpaths.get(key, {})))
    groups.sort(key=lambda g: g.sort_key)

    dests: Dict[str, SourceGroup] = {}
    for group in groups:
        if group.dest in dests:
            logger.warning(f"Vendor destination {group.dest} is shared by {dests[group.dest].key} and {group.key}")
        dests.setdefault(group.dest, group)

    logger.info(f"Grouped {seen} remote packages into {len(archives)} archives "
                f"and {len(checkouts)} checkouts")
    return groups
