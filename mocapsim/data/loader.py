"""
#WHERE
    Used by pipeline.py and main.py to turn a MoCapSim dataset file into
    in-memory animations.

#WHAT
    Text-format animation loader.  The file is a sequence of blocks::

        #objectKey messif.objects.keys.AbstractObjectKey 3136_103_596_180
        1194;mcdr.objects.ObjectMocapPose            ← ignored
        x,y,z;x,y,z;...;x,y,z                        ← one line per frame
        ...

    (category of the block above = 103)

    Each header starts a new animation; its category is the second
    ``_``-separated field of the third whitespace-separated token.  Ids are
    assigned densely in file order (0, 1, 2, ...), which is what the
    pairwise engine expects.

#INPUT
    Path to the dataset file, optional max number of animations.

#OUTPUT
    list[MocapAnimation]; empty when the file cannot be read.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import numpy as np

from .models import MocapAnimation

log = logging.getLogger(__name__)


class MocapLoader:
    """Reads MoCapSim text files into MocapAnimation objects."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, max_number: int = -1) -> List[MocapAnimation]:
        try:
            fh = self.path.open("r", encoding="utf-8")
        except OSError as exc:
            log.warning("[loader] could not load animations: %s", exc)
            return []

        animations: List[MocapAnimation] = []
        frames: List[np.ndarray] = []
        category = -1
        with fh:
            for raw in fh:
                line = raw.strip()
                if not line:
                    continue
                if line.startswith("#"):
                    if category != -1 or frames:
                        animations.append(self._build(len(animations), category, frames))
                        frames = []
                    category = self.parse_category(line)
                    next(fh, None)  # metadata line
                else:
                    frames.append(self.parse_frame(line))

                if max_number != -1 and len(animations) >= max_number:
                    break
            else:
                if frames:
                    animations.append(self._build(len(animations), category, frames))

        log.info("[loader] %d animations loaded from %s", len(animations), self.path)
        return animations

    @staticmethod
    def parse_category(header: str) -> int:
        parts = header.split()
        if len(parts) < 3:
            raise ValueError(f"malformed animation header: {header!r}")
        info = [p for p in parts[2].split("_") if p]
        if len(info) < 2:
            raise ValueError(f"no category in animation header: {header!r}")
        return int(info[1])

    @staticmethod
    def parse_frame(line: str) -> np.ndarray:
        """``x,y,z;x,y,z;...`` → (J, 3) float32."""
        joints = [j for j in line.split(";") if j.strip()]
        coords = [[float(c) for c in j.split(",") if c.strip()][:3] for j in joints]
        return np.asarray(coords, dtype=np.float32).reshape(-1, 3)

    @staticmethod
    def _build(anim_id: int, category: int, frames: List[np.ndarray]) -> MocapAnimation:
        if frames:
            positions = np.stack(frames)
        else:
            positions = np.zeros((0, 0, 3), dtype=np.float32)
        return MocapAnimation(anim_id=anim_id, positions=positions, category=category)
