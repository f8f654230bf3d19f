"""
Screenshot storage for unsubscribe attempts.

Each attempt gets its own directory under the artifact root; records store
paths relative to that root's parent, e.g.
unsubscribe-logs/<attempt_id>/before-1700000000000.png
"""

import time
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from ..config import Config


class ArtifactStore:
    """Allocate screenshot paths per attempt."""

    def __init__(self, root: Optional[Union[str, Path]] = None,
                 clock: Callable[[], float] = time.time):
        self.root = Path(root) if root else Config.get_artifact_dir()
        self._clock = clock

    def allocate(self, attempt_id: str, label: str) -> Tuple[Path, str]:
        """
        Reserve a file for a screenshot.

        Returns:
            (absolute path to write, relative path to record)
        """
        attempt_dir = self.root / str(attempt_id)
        attempt_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{label}-{int(self._clock() * 1000)}.png"
        return attempt_dir / filename, f"{self.root.name}/{attempt_id}/{filename}"

    def resolve(self, relative_path: str) -> Path:
        """Absolute location of a recorded relative path."""
        return self.root.parent / relative_path
