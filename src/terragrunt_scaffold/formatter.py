#!/usr/bin/env python3
"""
HCL Formatter

Runs an external canonical formatter (terragrunt hclfmt by default) over the
rendered scaffold.
"""

import shutil
import logging
import subprocess
from typing import List, Optional

from .errors import FormatError

logger = logging.getLogger(__name__)

DEFAULT_FORMAT_COMMAND = ["terragrunt", "hclfmt"]


class HclFormatter:
    """Formats HCL files in a directory with an external command"""

    def __init__(self, command: Optional[List[str]] = None, timeout: int = 120):
        self.command = list(command or DEFAULT_FORMAT_COMMAND)
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def format(self, working_dir: str) -> bool:
        """
        Format all HCL files below a directory

        Args:
            working_dir: Directory to format

        Returns:
            True if the formatter ran, False if its executable is not installed

        Raises:
            FormatError: if the formatter fails or times out
        """
        if not self.is_available():
            logger.warning(f"Formatter '{self.command[0]}' not found on PATH, skipping formatting")
            return False

        logger.info(f"Formatting HCL files in {working_dir}")
        try:
            process = subprocess.run(
                self.command,
                cwd=working_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise FormatError(f"Formatter timed out after {self.timeout} seconds")
        except OSError as e:
            raise FormatError(f"Failed to execute '{' '.join(self.command)}': {str(e)}") from e

        if process.returncode != 0:
            raise FormatError(f"Formatter '{' '.join(self.command)}' failed: {process.stderr.strip()}")

        return True
