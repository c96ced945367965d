"""
EsbuildService: Centralized esbuild invocations.

All subprocess calls to the esbuild executable go through this class,
making it easy to swap in a fake for tests.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import BundleError

logger = logging.getLogger(__name__)

ESBUILD_ENV_VAR = 'ESBUILD_BINARY_PATH'


def find_esbuild(root: Optional[Path] = None, explicit: Optional[str] = None) -> List[str]:
    """
    Locate the esbuild executable.

    Lookup order: explicit path, $ESBUILD_BINARY_PATH, PATH, the project's
    node_modules/.bin, and finally `npx --yes esbuild`.

    Args:
        root: Project root (for node_modules/.bin)
        explicit: Path given on the command line

    Returns:
        Command prefix as an argument list
    """
    if explicit:
        return [explicit]

    from_env = os.environ.get(ESBUILD_ENV_VAR)
    if from_env:
        return [from_env]

    on_path = shutil.which('esbuild')
    if on_path:
        return [on_path]

    if root is not None:
        local = Path(root) / 'node_modules' / '.bin' / 'esbuild'
        if local.exists():
            return [str(local)]

    logger.warning(
        "esbuild not found locally; falling back to 'npx --yes esbuild', which may "
        "download it from the npm registry. Pass --esbuild or set $%s to avoid this.",
        ESBUILD_ENV_VAR,
    )
    return ['npx', '--yes', 'esbuild']


class EsbuildService:
    """Runs the esbuild executable."""

    def __init__(self, command: Optional[Sequence[str]] = None, root: Optional[Path] = None):
        """
        Args:
            command: Command prefix; looked up with find_esbuild() if omitted
            root: Project root used for the lookup
        """
        self.command = list(command) if command else find_esbuild(root)

    def run(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess:
        """
        Run esbuild with the given arguments.

        Raises:
            BundleError: If esbuild cannot be started or exits non-zero
        """
        cmd = self.command + list(args)
        logger.debug("Running esbuild in %s: %s", cwd, ' '.join(cmd[:4]) + ' ...')

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise BundleError(f"esbuild executable not found: {self.command[0]}") from e

        if result.returncode != 0:
            raise BundleError(
                f"esbuild failed with return code {result.returncode}:\n{result.stderr.strip()}"
            )

        for line in result.stderr.splitlines():
            if line.strip():
                logger.warning("esbuild: %s", line)

        return result
