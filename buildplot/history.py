"""Build metadata consulted by retention and chart labelling."""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging
import os
import tempfile
import time

import yaml

logger = logging.getLogger(__name__)


@dataclass
class BuildInfo:
    """One build of the job."""
    number: int
    timestamp_millis: int
    description: Optional[str] = None

    def truncated_description(self, limit: int = 100) -> Optional[str]:
        """Description cut to limit characters, or None if there is none."""
        if self.description is None:
            return None
        if len(self.description) <= limit:
            return self.description
        return self.description[:limit] + "..."


class BuildHistory:
    """
    The builds a job still has, and the number the next build will get.

    Builds can be removed to model deleted builds; the next build number
    never goes backwards.
    """

    def __init__(self, builds: Optional[List[BuildInfo]] = None, next_build_number: Optional[int] = None):
        self.builds: Dict[int, BuildInfo] = {}
        self._next_build_number = 1
        for build in builds or []:
            self.add(build)
        if next_build_number is not None:
            self._next_build_number = max(self._next_build_number, next_build_number)

    @property
    def next_build_number(self) -> int:
        return self._next_build_number

    def add(self, build: BuildInfo):
        self.builds[build.number] = build
        self._next_build_number = max(self._next_build_number, build.number + 1)

    def new_build(self, description: Optional[str] = None, timestamp_millis: Optional[int] = None) -> BuildInfo:
        """Register a build with the next free number."""
        if timestamp_millis is None:
            timestamp_millis = int(time.time() * 1000)
        build = BuildInfo(self._next_build_number, timestamp_millis, description)
        self.add(build)
        return build

    def remove(self, number: int):
        self.builds.pop(number, None)

    def exists(self, number: int) -> bool:
        return number in self.builds

    def get(self, number: int) -> Optional[BuildInfo]:
        return self.builds.get(number)

    def truncated_description(self, number: int) -> Optional[str]:
        build = self.builds.get(number)
        return build.truncated_description() if build else None

    @classmethod
    def load(cls, path: Union[str, Path]) -> "BuildHistory":
        """Load a history file, an absent file is an empty history."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}

        builds = [
            BuildInfo(
                number=int(entry["number"]),
                timestamp_millis=int(entry.get("timestamp_millis", 0)),
                description=entry.get("description"),
            )
            for entry in raw.get("builds", [])
        ]
        return cls(builds, raw.get("next_build_number"))

    def save(self, path: Union[str, Path]):
        """Write the history file atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        raw = {
            "next_build_number": self._next_build_number,
            "builds": [
                {
                    "number": b.number,
                    "timestamp_millis": b.timestamp_millis,
                    "description": b.description,
                }
                for b in sorted(self.builds.values(), key=lambda b: b.number)
            ],
        }

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, 'w') as f:
                yaml.safe_dump(raw, f, sort_keys=False)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Saved build history with {len(self.builds)} build(s) to {path}")
