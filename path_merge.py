"""
path_merge.py — Stitch disconnected polylines into maximal continuous chains.

Segments whose endpoints round to the same coordinate key are fused, reversing
a segment when its matching end is the far one. Chains grow from both the head
and the tail until no unused segment touches either end.

Importable usage (called by connect_paths.py):
    from path_merge import merge
    chains = merge([[(0, 0), (1, 0)], [(2, 0), (1, 0)]])
    # -> [[(0, 0), (1, 0), (2, 0)]]

The module does no I/O; reading and writing GeoJSON lives in connect_paths.py.
"""

import logging
import math
from collections import deque
from typing import NamedTuple

from config import KEY_PRECISION, SEQUENTIAL_TOLERANCE

logger = logging.getLogger(__name__)

START = "start"
END = "end"


class EndpointRef(NamedTuple):
    """One end of one input segment."""
    index: int
    role: str


# ── Endpoint index ───────────────────────────────────────────────────

def coordinate_key(coord, precision: int = KEY_PRECISION) -> tuple[int, int]:
    """Quantize (x, y) to an integer pair at `precision` decimal digits.

    Points on either side of a rounding boundary never match, however close.
    Exact halves round to even, and -0.0000001 shares a key with 0.0000001,
    so a handful of boundary values bucket differently from fixed-point
    string keys such as "%.6f".
    """
    scale = 10 ** precision
    return round(coord[0] * scale), round(coord[1] * scale)


def build_endpoint_index(segments, precision: int = KEY_PRECISION) -> dict[tuple[int, int], list[EndpointRef]]:
    """Map each endpoint key to the segment ends touching it, in input order.

    A closed loop lands twice under one key. A single-coordinate segment uses
    its lone point as both start and end.
    """
    if precision < 0:
        raise ValueError(f"precision must be >= 0, got {precision}")

    index: dict[tuple[int, int], list[EndpointRef]] = {}
    for i, coords in enumerate(segments):
        if not coords:
            raise ValueError(f"Segment {i} has no coordinates")
        start_key = coordinate_key(coords[0], precision)
        end_key = coordinate_key(coords[-1], precision)
        index.setdefault(start_key, []).append(EndpointRef(i, START))
        index.setdefault(end_key, []).append(EndpointRef(i, END))
    return index


# ── Chain builder ────────────────────────────────────────────────────

def _next_unused(refs, used: set[int]):
    for ref in refs:
        if ref.index not in used:
            return ref
    return None


def build_chain(start_index: int, segments, used: set[int],
                index: dict, precision: int = KEY_PRECISION) -> list:
    """Grow one maximal chain from segments[start_index].

    Every segment consumed, the starting one included, is added to `used`.
    At a junction the first unused end in index order wins.
    """
    chain = deque(segments[start_index])
    used.add(start_index)

    head = chain[-1]
    tail = chain[0]

    changed = True
    while changed:
        changed = False

        ref = _next_unused(index.get(coordinate_key(head, precision), ()), used)
        if ref is not None:
            coords = segments[ref.index]
            if ref.role == START:
                chain.extend(coords[1:])
                head = coords[-1]
            else:
                chain.extend(reversed(coords[:-1]))
                head = coords[0]
            used.add(ref.index)
            changed = True

        ref = _next_unused(index.get(coordinate_key(tail, precision), ()), used)
        if ref is not None:
            coords = segments[ref.index]
            # extendleft inserts one item at a time, so the order flips
            if ref.role == START:
                chain.extendleft(coords[1:])
                tail = coords[-1]
            else:
                chain.extendleft(reversed(coords[:-1]))
                tail = coords[0]
            used.add(ref.index)
            changed = True

    return list(chain)


# ── Merge drivers ────────────────────────────────────────────────────

def _copy_segments(segments) -> list[tuple]:
    return [tuple(tuple(c) for c in coords) for coords in segments]


def merge(segments, precision: int = KEY_PRECISION) -> list[list[tuple]]:
    """Fuse segments sharing endpoint keys into maximal chains.

    Chains come out in order of their lowest-indexed segment. Chains left
    with a single coordinate are dropped. The caller's data is not touched.
    """
    segs = _copy_segments(segments)
    index = build_endpoint_index(segs, precision)

    used: set[int] = set()
    chains = []
    next_index = 0
    while len(used) < len(segs):
        while next_index in used:
            next_index += 1
        chain = build_chain(next_index, segs, used, index, precision)
        if len(chain) > 1:
            chains.append(chain)

    logger.debug(f"Merged {len(segs)} segments into {len(chains)} chains "
                 f"({len(index)} endpoint keys)")
    return chains


def _is_close(a, b, tolerance: float) -> bool:
    return math.hypot(a[0] - b[0], a[1] - b[1]) < tolerance


def merge_sequential(segments, tolerance: float = SEQUENTIAL_TOLERANCE) -> list[list[tuple]]:
    """Tail-only greedy stitching by Euclidean distance.

    Each step scans unused segments in index order and appends the first one
    whose start, then end, lies within `tolerance` of the chain's last point.
    When nothing connects the chain is frozen and the next unused segment
    starts a new one. Chains never grow backwards from their first point.
    """
    if tolerance <= 0:
        raise ValueError(f"tolerance must be positive, got {tolerance}")

    segs = _copy_segments(segments)
    if not segs:
        return []
    for i, coords in enumerate(segs):
        if not coords:
            raise ValueError(f"Segment {i} has no coordinates")

    used = {0}
    chain = list(segs[0])
    chains = []

    while len(used) < len(segs):
        found = False
        last = chain[-1]
        for i, coords in enumerate(segs):
            if i in used:
                continue
            if _is_close(last, coords[0], tolerance):
                chain.extend(coords[1:])
            elif _is_close(last, coords[-1], tolerance):
                chain.extend(reversed(coords[:-1]))
            else:
                continue
            used.add(i)
            found = True
            break

        if not found:
            if len(chain) > 1:
                chains.append(chain)
            i = next(i for i in range(len(segs)) if i not in used)
            used.add(i)
            chain = list(segs[i])

    if len(chain) > 1:
        chains.append(chain)

    logger.debug(f"Sequentially merged {len(segs)} segments into {len(chains)} chains")
    return chains
