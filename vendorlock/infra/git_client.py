"""
Git client infrastructure for vendorlock.

Used for repositories not hosted on GitHub: fetches exactly one pinned
commit (shallow) into a scratch directory so its files can be inspected.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Sequence

from ..errors import SourceResolutionError, TransientNetworkError

logger = logging.getLogger(__name__)

# stderr fragments that mean the repository or commit does not exist
NOT_FOUND_MARKERS = (
    'repository not found',
    'not found',
    'does not appear to be a git repository',
    "couldn't find remote ref",
    'not our ref',
    'unadvertised object',
)

# Directories never searched for crate manifests
SKIP_DIRECTORIES = {'.git', 'target'}


class GitClient:
    """
    Abstraction over the git commands the resolver needs.

    Example:
        client = GitClient(timeout=60)
        client.fetch_commit("https://gitlab.com/o/r", "0123abc", Path(tmp))
        paths = client.list_files(Path(tmp))
    """

    def __init__(self, timeout: float = 30):
        """
        Initialize GitClient.

        Args:
            timeout: Command timeout in seconds
        """
        self.timeout = timeout

    def _run(self, args: Sequence[str], cwd: Path) -> str:
        cmd = ['git', *args]
        env = dict(os.environ, GIT_TERMINAL_PROMPT='0')
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise TransientNetworkError(f"git {args[0]} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise SourceResolutionError("git executable not found") from e

        if result.returncode != 0:
            stderr = (result.stderr or '').strip()
            if any(marker in stderr.lower() for marker in NOT_FOUND_MARKERS):
                raise SourceResolutionError(f"git {args[0]} failed: {stderr}")
            raise TransientNetworkError(f"git {args[0]} failed ({result.returncode}): {stderr}")

        return result.stdout

    def fetch_commit(self, url: str, commit: str, dest: Path) -> None:
        """
        Check out a single commit of a remote repository into dest.

        Args:
            url: Clone URL
            commit: Pinned revision
            dest: Empty scratch directory
        """
        dest = Path(dest)
        logger.debug(f"Fetching {url}@{commit} into {dest}")
        self._run(['init', '--quiet'], cwd=dest)
        self._run(['fetch', '--quiet', '--depth', '1', url, commit], cwd=dest)
        self._run(['checkout', '--quiet', 'FETCH_HEAD'], cwd=dest)

    def list_files(self, root: Path) -> List[str]:
        """List files under a checkout as sorted POSIX paths relative to root."""
        root = Path(root)
        paths = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in SKIP_DIRECTORIES]
            for filename in filenames:
                full = Path(dirpath) / filename
                paths.append(full.relative_to(root).as_posix())
        return sorted(paths)
