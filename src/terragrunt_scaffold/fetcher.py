#!/usr/bin/env python3
"""
Source Fetcher

Materializes module and template locators on local disk. Git sources are
cloned with the git command line and checked out at the requested ref; local
sources are copied. When the locator names a "//" subdirectory only that
subdirectory ends up in the destination.
"""

import os
import shutil
import logging
import tempfile
import subprocess
from typing import Dict, List, Optional
from pathlib import Path

from .errors import FetchError, LocatorError
from .sources import REF_PARAM, SourceLocator, normalize_locator

logger = logging.getLogger(__name__)


class SourceFetcher:
    """Fetches locators into local directories"""

    def __init__(self, git_command: str = "git", timeout: int = 300,
                 working_dir: Optional[str] = None):
        """
        Initialize the fetcher

        Args:
            git_command: Git executable to run
            timeout: Timeout for each git command in seconds
            working_dir: Base directory for relative local paths
        """
        self.git_command = git_command
        self.timeout = timeout
        self.working_dir = working_dir

    def fetch(self, locator: str, destination: str) -> Path:
        """
        Fetch a locator into a destination directory

        Args:
            locator: Locator string in any supported form
            destination: Directory receiving the content

        Returns:
            Path of the populated destination directory

        Raises:
            FetchError: if the content cannot be retrieved
        """
        try:
            source = normalize_locator(locator, self.working_dir)
        except LocatorError as e:
            raise FetchError(f"Cannot fetch {locator}: {str(e)}") from e

        destination_path = Path(destination)
        destination_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Fetching {source} into {destination_path}")

        if source.is_local:
            self._copy_tree(self._subdir_of(Path(source.path), source), destination_path)
        elif source.is_git:
            self._fetch_git(source, destination_path)
        else:
            raise FetchError(f"Unsupported source scheme '{source.scheme}' for {locator}")

        return destination_path

    def _fetch_git(self, source: SourceLocator, destination: Path):
        clone_url = f"{source.scheme}://{source.host}{source.path}"
        params = [(key, value) for key, value in source.query_params() if key != REF_PARAM]
        if params:
            logger.debug(f"Ignoring unsupported git parameters {params}")

        staging = tempfile.mkdtemp(prefix="scaffold-git-")
        try:
            checkout = Path(staging) / "repo"
            self._run_git(['clone', '--quiet', clone_url, str(checkout)])
            if source.ref:
                self._run_git(['checkout', '--quiet', source.ref], cwd=checkout)
            self._copy_tree(self._subdir_of(checkout, source), destination)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _run_git(self, args: List[str], cwd: Optional[Path] = None) -> Dict[str, str]:
        command = [self.git_command] + args
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")

        try:
            process = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise FetchError(f"Command timed out after {self.timeout} seconds: {' '.join(command)}")
        except OSError as e:
            raise FetchError(f"Failed to execute '{' '.join(command)}': {str(e)}") from e

        if process.returncode != 0:
            raise FetchError(f"Command '{' '.join(command)}' failed: {process.stderr.strip()}")

        return {'stdout': process.stdout, 'stderr': process.stderr}

    @staticmethod
    def _subdir_of(root: Path, source: SourceLocator) -> Path:
        if not source.subdir:
            return root
        path = (root / source.subdir).resolve()
        if not path.is_dir():
            raise FetchError(f"Subdirectory {source.subdir} not found in {source.root()}")
        return path

    @staticmethod
    def _copy_tree(source: Path, destination: Path):
        if not source.is_dir():
            raise FetchError(f"Source directory does not exist: {source}")
        try:
            shutil.copytree(source, destination, dirs_exist_ok=True,
                            ignore=shutil.ignore_patterns('.git'))
        except (OSError, shutil.Error) as e:
            raise FetchError(f"Failed to copy {source} to {destination}: {str(e)}") from e
