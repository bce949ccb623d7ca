from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, NamedTuple, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)

Entry = Tuple[int, float, float]


class Neighbor(NamedTuple):
    id: int
    x: float
    y: float
    distance: float


class SpatialIndex:
    """Immutable locality index over one snapshot of agent positions.

    Subclasses are built once from ``(id, x, y)`` entries and only read
    afterwards, so a single instance can be queried from many threads.
    """

    def __init__(self, built_tick: int) -> None:
        self._built_tick = built_tick

    @property
    def built_tick(self) -> int:
        return self._built_tick

    @classmethod
    def build(cls, entries: Iterable[Entry], tick: int = 0) -> "SpatialIndex":
        raise NotImplementedError

    def query_radius(self, center: Tuple[float, float], radius: float) -> List[Neighbor]:
        raise NotImplementedError

    def query_k_nearest(
        self, center: Tuple[float, float], k: int, max_distance: float = math.inf
    ) -> List[Neighbor]:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError


class KDTreeIndex(SpatialIndex):
    def __init__(self, ids: Sequence[int], coords: np.ndarray, built_tick: int = 0) -> None:
        super().__init__(built_tick)
        self._ids = list(ids)
        self._coords = coords
        self._tree = cKDTree(coords) if len(self._ids) else None

    @classmethod
    def build(cls, entries: Iterable[Entry], tick: int = 0) -> "KDTreeIndex":
        ids: List[int] = []
        points: List[Tuple[float, float]] = []
        for agent_id, x, y in entries:
            ids.append(agent_id)
            points.append((x, y))
        coords = np.asarray(points, dtype=float).reshape(-1, 2)
        return cls(ids, coords, built_tick=tick)

    def _neighbor(self, row: int, cx: float, cy: float) -> Neighbor:
        x = float(self._coords[row, 0])
        y = float(self._coords[row, 1])
        return Neighbor(self._ids[row], x, y, math.hypot(x - cx, y - cy))

    def query_radius(self, center: Tuple[float, float], radius: float) -> List[Neighbor]:
        if self._tree is None or radius < 0.0:
            return []
        cx, cy = center
        rows = self._tree.query_ball_point((cx, cy), radius)
        return [self._neighbor(row, cx, cy) for row in rows]

    def query_k_nearest(
        self, center: Tuple[float, float], k: int, max_distance: float = math.inf
    ) -> List[Neighbor]:
        if self._tree is None or k <= 0:
            return []
        cx, cy = center
        count = min(k, len(self._ids))
        # cKDTree treats the upper bound as exclusive.
        bound = np.nextafter(max_distance, math.inf) if math.isfinite(max_distance) else math.inf
        distances, rows = self._tree.query((cx, cy), k=count, distance_upper_bound=bound)
        found = []
        for distance, row in zip(np.atleast_1d(distances), np.atleast_1d(rows)):
            if not math.isfinite(distance):
                continue
            found.append(self._neighbor(int(row), cx, cy))
        found.sort(key=lambda neighbor: (neighbor.distance, neighbor.id))
        return found

    def __len__(self) -> int:
        return len(self._ids)


class GridIndex(SpatialIndex):
    def __init__(self, cell_size: float, built_tick: int = 0) -> None:
        super().__init__(built_tick)
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[Entry]] = {}
        self._count = 0

    @classmethod
    def build(cls, entries: Iterable[Entry], tick: int = 0, cell_size: float = 40.0) -> "GridIndex":
        index = cls(cell_size, built_tick=tick)
        for entry in entries:
            index._insert(entry)
        return index

    def _insert(self, entry: Entry) -> None:
        key = self._cell_key(entry[1], entry[2])
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
        bucket.append(entry)
        self._count += 1

    def query_radius(self, center: Tuple[float, float], radius: float) -> List[Neighbor]:
        if not self._count or radius < 0.0:
            return []
        pos_x, pos_y = center
        base_x, base_y = self._cell_key(pos_x, pos_y)
        cell_range = int(math.ceil(radius / self._cell_size))
        radius_sq = radius * radius
        cells = self._cells
        found: List[Neighbor] = []
        for dx in range(-cell_range, cell_range + 1):
            for dy in range(-cell_range, cell_range + 1):
                bucket = cells.get((base_x + dx, base_y + dy))
                if not bucket:
                    continue
                for agent_id, x, y in bucket:
                    offset_x = x - pos_x
                    offset_y = y - pos_y
                    dist_sq = offset_x * offset_x + offset_y * offset_y
                    if dist_sq <= radius_sq:
                        found.append(Neighbor(agent_id, x, y, math.sqrt(dist_sq)))
        return found

    def query_k_nearest(
        self, center: Tuple[float, float], k: int, max_distance: float = math.inf
    ) -> List[Neighbor]:
        if not self._count or k <= 0:
            return []
        pos_x, pos_y = center
        base_x, base_y = self._cell_key(pos_x, pos_y)
        cells = self._cells
        candidates: List[Neighbor] = []
        seen = 0
        ring = 0
        while True:
            for dx, dy in self._ring_offsets(ring):
                bucket = cells.get((base_x + dx, base_y + dy))
                if not bucket:
                    continue
                seen += len(bucket)
                for agent_id, x, y in bucket:
                    distance = math.hypot(x - pos_x, y - pos_y)
                    if distance <= max_distance:
                        candidates.append(Neighbor(agent_id, x, y, distance))
            # Everything outside the rings visited so far is at least this far away.
            reach = ring * self._cell_size
            if seen >= self._count or reach > max_distance:
                break
            if len(candidates) >= k:
                candidates.sort(key=lambda neighbor: (neighbor.distance, neighbor.id))
                if candidates[k - 1].distance <= reach:
                    break
            ring += 1
        candidates.sort(key=lambda neighbor: (neighbor.distance, neighbor.id))
        return candidates[:k]

    @staticmethod
    def _ring_offsets(ring: int) -> List[Tuple[int, int]]:
        if ring == 0:
            return [(0, 0)]
        offsets = [(dx, dy) for dx in range(-ring, ring + 1) for dy in (-ring, ring)]
        offsets.extend((dx, dy) for dx in (-ring, ring) for dy in range(-ring + 1, ring))
        return offsets

    def _cell_key(self, x: float, y: float) -> Tuple[int, int]:
        return (int(x // self._cell_size), int(y // self._cell_size))

    def __len__(self) -> int:
        return self._count


def build_index(backend: str, entries: Iterable[Entry], tick: int = 0, cell_size: float = 40.0) -> SpatialIndex:
    if backend == "kdtree":
        index: SpatialIndex = KDTreeIndex.build(entries, tick=tick)
    elif backend == "grid":
        index = GridIndex.build(entries, tick=tick, cell_size=cell_size)
    else:
        raise ValueError(f"Unknown index backend: {backend}")
    logger.debug("built %s index over %d agents at tick %d", backend, len(index), tick)
    return index
