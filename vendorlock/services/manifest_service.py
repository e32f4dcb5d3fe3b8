"""
Manifest generation service for vendorlock.

Orchestrates the whole run: parse the lock, classify sources, resolve
git checkouts, group, render the vendor config and write the manifest.
Everything happens in memory; the only side effect is the final atomic
write, so a failed run never leaves output behind.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..classify import classify_all
from ..config import get_github_token, load_config
from ..domain import (
    ArchiveGroup,
    CheckoutGroup,
    Manifest,
    PackageRecord,
    VersionControl,
)
from ..infra.file_store import dumps_json, write_atomic
from ..lockfile import read_lockfile
from .group_service import group_sources
from .resolve_service import ResolveRequest, ResolverOptions, ResolverService
from .vendor_config_service import render_vendor_config

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ('manifest', 'flatpak')

# Where the flatpak layout puts cargo's config file
FLATPAK_CARGO_HOME = 'cargo'


@dataclass
class GenerateOptions:
    """Options for a generation run."""
    vendor_dir: str = "vendor"
    output_format: str = "manifest"
    registries: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict) -> 'GenerateOptions':
        return cls(
            vendor_dir=config.get('vendor', {}).get('directory', cls.vendor_dir),
            output_format=config.get('output', {}).get('format', cls.output_format),
            registries=dict(config.get('registries', {})),
        )


def render_manifest(manifest: Manifest) -> str:
    """The ``manifest`` document: sources plus embedded vendor config."""
    return dumps_json(manifest.to_dict())


def _checksum_file(dest: str, package: Optional[str]) -> Dict[str, Any]:
    return {
        'type': 'inline',
        'contents': json.dumps({'package': package, 'files': {}}),
        'dest': dest,
        'dest-filename': '.cargo-checksum.json',
    }


def flatpak_sources(manifest: Manifest, vendor_dir: str = "vendor") -> List[Dict[str, Any]]:
    """
    Expand a manifest into flatpak-builder sources.

    Archives gain their .cargo-checksum.json; every git package is copied
    out of its shared checkout into its own vendor directory; the vendor
    config becomes an inline cargo config file.
    """
    sources: List[Dict[str, Any]] = []
    copied: Dict[str, str] = {}
    for group in manifest.groups:
        if isinstance(group, ArchiveGroup):
            sources.append({
                'type': 'archive',
                'archive-type': 'tar-gzip',
                'url': group.url,
                'sha256': group.sha256,
                'dest': group.dest,
            })
            sources.append(_checksum_file(group.dest, group.sha256))
        elif isinstance(group, CheckoutGroup):
            sources.append({
                'type': 'git',
                'url': group.url,
                'commit': group.commit,
                'dest': group.dest,
            })
            for package in group.packages:
                origin = group.dest if package.subpath == '.' else f"{group.dest}/{package.subpath}"
                dirname = f"{package.name}-{package.version}" if package.version else package.name
                target = f"{vendor_dir}/{dirname}"
                if target in copied:
                    logger.warning(f"Vendor destination {target} is shared by {copied[target]} and {origin}")
                copied.setdefault(target, origin)
                sources.append({
                    'type': 'shell',
                    'commands': [f'cp -r --reflink=auto "{origin}" "{target}"'],
                })
                sources.append(_checksum_file(target, None))
        else:
            raise TypeError(f"Unhandled group kind: {type(group).__name__}")

    sources.append({
        'type': 'inline',
        'contents': manifest.vendor_config,
        'dest': FLATPAK_CARGO_HOME,
        'dest-filename': 'config',
    })
    return sources


class ManifestService:
    """
    Turns a lock into a manifest.

    Example:
        service = ManifestService()
        manifest = service.generate("Cargo.lock", "cargo-sources.json")
        print(len(manifest.groups))
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        options: Optional[GenerateOptions] = None,
        resolver: Optional[ResolverService] = None,
    ):
        """
        Initialize ManifestService.

        Args:
            config: Configuration dict (loads default if None)
            options: Generation options (derived from config if None)
            resolver: Git metadata resolver (built from config if None)
        """
        self.config = config if config is not None else load_config()
        self.options = options or GenerateOptions.from_config(self.config)
        if self.options.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format '{self.options.output_format}'")
        if resolver is None:
            resolver = ResolverService(
                ResolverOptions.from_config(self.config),
                token=get_github_token(self.config),
            )
        self.resolver = resolver

    def build(
        self,
        records: Iterable[PackageRecord],
        progress: Optional[Callable[[ResolveRequest], None]] = None,
    ) -> Manifest:
        """
        Build the manifest for parsed lock records.

        Raises:
            MissingChecksumError, UnsupportedSourceKindError, ParseError,
            SourceResolutionError, GenerationCancelled
        """
        classified = classify_all(
            records,
            vendor_dir=self.options.vendor_dir,
            registries=self.options.registries,
        )
        git_sources = [s for s in classified if isinstance(s, VersionControl)]
        subpaths = self.resolver.resolve(git_sources, progress=progress)

        groups = group_sources(classified, subpaths)
        return Manifest(
            groups=tuple(groups),
            vendor_config=render_vendor_config(groups, self.options.vendor_dir),
        )

    def render(self, manifest: Manifest) -> str:
        """Serialize a manifest in the configured output format."""
        if self.options.output_format == 'flatpak':
            return dumps_json(flatpak_sources(manifest, self.options.vendor_dir))
        return render_manifest(manifest)

    def generate(
        self,
        lock_path: Union[str, Path],
        output_path: Union[str, Path],
        vendor_config_path: Optional[Union[str, Path]] = None,
        progress: Optional[Callable[[ResolveRequest], None]] = None,
    ) -> Manifest:
        """
        Read a lock, build its manifest and write it atomically.

        Args:
            lock_path: Lock file to read
            output_path: Manifest destination
            vendor_config_path: Also write the vendor config here; left as it
                was if the manifest cannot be written
            progress: Per-checkout resolution callback

        Returns:
            The manifest that was written
        """
        records = read_lockfile(lock_path)
        logger.info(f"Read {len(records)} packages from {lock_path}")

        manifest = self.build(records, progress=progress)
        document = self.render(manifest)

        if vendor_config_path is None:
            written = write_atomic(output_path, document)
        else:
            config_path = Path(vendor_config_path)
            previous = config_path.read_text(encoding='utf-8') if config_path.is_file() else None
            write_atomic(config_path, manifest.vendor_config)
            try:
                written = write_atomic(output_path, document)
            except BaseException:
                _restore(config_path, previous)
                raise

        logger.info(f"Wrote {len(manifest.groups)} sources to {written}")
        return manifest


def _restore(path: Path, previous: Optional[str]) -> None:
    """Put a file back the way it was before this run touched it."""
    if previous is None:
        path.unlink(missing_ok=True)
    else:
        write_atomic(path, previous)
    logger.debug(f"Restored {path} after failed manifest write")
