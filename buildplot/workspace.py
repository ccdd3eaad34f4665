"""Workspace file resolution."""
from pathlib import Path
from typing import List, Union
import logging

logger = logging.getLogger(__name__)


class Workspace:
    """A build workspace directory in which data files are located by glob."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def list_files(self, pattern: str) -> List[Path]:
        """
        Resolve a workspace-relative glob to matching files.

        Several patterns may be given separated by commas. Matches keep the
        order of the patterns; within a pattern they are sorted by path so
        that "first match" is stable between runs.

        Raises:
            FileNotFoundError: If the workspace directory does not exist
            ValueError: If the pattern is empty or absolute
        """
        if not self.root.is_dir():
            raise FileNotFoundError(f"Workspace not found: {self.root}")

        patterns = [p.strip() for p in pattern.split(",") if p.strip()]
        if not patterns:
            raise ValueError("Empty file pattern")

        matches: List[Path] = []
        seen = set()
        for glob in patterns:
            if Path(glob).is_absolute():
                raise ValueError(f"File pattern must be relative to the workspace: {glob}")
            for path in sorted(self.root.glob(glob)):
                if path.is_file() and path not in seen:
                    seen.add(path)
                    matches.append(path)

        logger.debug(f"Pattern '{pattern}' matched {len(matches)} file(s) in {self.root}")
        return matches

    def __str__(self) -> str:
        return str(self.root)
