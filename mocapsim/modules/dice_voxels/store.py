"""
#WHERE
    Filled by engine.py at the end of stage 1, read by stage 2 and by
    visualization / selection collaborators.

#WHAT
    Per-run descriptor store (animation id → occupancy grid) and the
    selection set built on top of it.  Both are plain objects owned by one
    computation run, never module-level state.

#INPUT
    anim_id, read-only occupancy grid.

#OUTPUT
    Grids by id; read-only snapshots for downstream consumers.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

import numpy as np

from .errors import DescriptorNotFoundError


class DescriptorStore:
    """Thread-safe id → grid map.  Writes take a lock; reads do not."""

    def __init__(self) -> None:
        self._grids: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()

    def put(self, anim_id: int, grid: np.ndarray) -> None:
        if grid.flags.writeable:
            grid = grid.copy()
            grid.setflags(write=False)
        with self._lock:
            self._grids[anim_id] = grid

    def get(self, anim_id: int) -> np.ndarray:
        try:
            return self._grids[anim_id]
        except KeyError:
            raise DescriptorNotFoundError(anim_id) from None

    def try_get(self, anim_id: int) -> Optional[np.ndarray]:
        return self._grids.get(anim_id)

    def contains(self, anim_id: int) -> bool:
        return anim_id in self._grids

    def ids(self) -> List[int]:
        return sorted(self._grids)

    def snapshot(self) -> Mapping[int, np.ndarray]:
        with self._lock:
            return MappingProxyType(dict(self._grids))

    def __contains__(self, anim_id: object) -> bool:
        return anim_id in self._grids

    def __len__(self) -> int:
        return len(self._grids)

    def __iter__(self) -> Iterator[int]:
        return iter(self.ids())

    def __repr__(self) -> str:
        return f"DescriptorStore({len(self)} descriptors)"


class SelectionSet:
    """Animations currently selected for display.

    Selecting an id whose descriptor is not stored yet is ignored, so the
    set only ever holds ids with an available grid.
    """

    def __init__(self, store: DescriptorStore) -> None:
        self._store = store
        self._selected: Dict[int, np.ndarray] = {}

    def add(self, anim_id: int) -> bool:
        grid = self._store.try_get(anim_id)
        if grid is None:
            return False
        self._selected[anim_id] = grid
        return True

    def remove(self, anim_id: int) -> None:
        self._selected.pop(anim_id, None)

    def clear(self) -> None:
        self._selected.clear()

    def grids(self) -> Mapping[int, np.ndarray]:
        return MappingProxyType(dict(self._selected))

    def __contains__(self, anim_id: object) -> bool:
        return anim_id in self._selected

    def __len__(self) -> int:
        return len(self._selected)
