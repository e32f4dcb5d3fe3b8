"""
Lock parsing for vendorlock.

Turns Cargo.lock text into an ordered list of PackageRecord. Parsing is
a pure transform; nothing here touches the network or the filesystem
except read_lockfile().
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .domain import PackageRecord
from .errors import ParseError

logger = logging.getLogger(__name__)

# Lock format v1 stores checksums out of line:
#   [metadata]
#   "checksum foo 1.0.0 (registry+https://...)" = "<sha256>"
_METADATA_CHECKSUM = re.compile(r'^checksum (\S+) (\S+) \((.+)\)$')

# Placeholder v1 locks use for sources without a checksum
_NO_CHECKSUM = '<none>'


def _metadata_checksums(document: dict) -> Dict[Tuple[str, str, str], str]:
    """Collect v1-style checksums keyed by (name, version, source)."""
    metadata = document.get('metadata')
    if not isinstance(metadata, dict):
        return {}

    checksums = {}
    for key, value in metadata.items():
        match = _METADATA_CHECKSUM.match(key)
        if not match or not isinstance(value, str) or value == _NO_CHECKSUM:
            continue
        checksums[match.groups()] = value
    return checksums


def _string_field(table: dict, field: str, index: int, required: bool) -> Optional[str]:
    value = table.get(field)
    if value is None:
        if required:
            name = table.get('name') if isinstance(table.get('name'), str) else None
            raise ParseError(
                f"Package #{index} is missing required field '{field}'",
                package=name,
            )
        return None
    if not isinstance(value, str):
        raise ParseError(
            f"Package #{index} field '{field}' must be a string, got {type(value).__name__}",
            package=table.get('name') if isinstance(table.get('name'), str) else None,
        )
    return value


def parse_lock(text: Union[str, bytes]) -> List[PackageRecord]:
    """
    Parse lock text into package records, in document order.

    Args:
        text: Raw lock content

    Returns:
        List of PackageRecord

    Raises:
        ParseError: If the document is not valid TOML, has no [[package]]
            tables, or a package lacks name/version
    """
    if isinstance(text, bytes):
        try:
            text = text.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError(f"Lock file is not valid UTF-8: {e}") from e

    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ParseError(f"Lock file is not well-formed: {e}") from e

    packages = document.get('package')
    if not isinstance(packages, list):
        raise ParseError("Lock file has no [[package]] tables")

    lock_version = document.get('version', 1)
    logger.debug(f"Parsing lock format version {lock_version} with {len(packages)} packages")

    legacy_checksums = _metadata_checksums(document)

    records = []
    for index, table in enumerate(packages, start=1):
        if not isinstance(table, dict):
            raise ParseError(f"Package #{index} is not a table")

        name = _string_field(table, 'name', index, required=True)
        version = _string_field(table, 'version', index, required=True)
        source = _string_field(table, 'source', index, required=False)
        checksum = _string_field(table, 'checksum', index, required=False)

        if checksum is None and source is not None:
            checksum = legacy_checksums.get((name, version, source))

        records.append(PackageRecord(
            name=name,
            version=version,
            source=source,
            checksum=checksum,
        ))

    return records


def read_lockfile(path: Union[str, Path]) -> List[PackageRecord]:
    """
    Read and parse a lock file from disk.

    Raises:
        FileNotFoundError: If the lock file does not exist
        ParseError: If the content cannot be parsed
    """
    path = Path(path)
    logger.debug(f"Reading lock file {path}")
    return parse_lock(path.read_bytes())
