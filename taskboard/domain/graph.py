from __future__ import annotations

from collections import deque


def reaches(edges: dict[int, set[int]], start: int, target: int) -> bool:
    """True if ``target`` is reachable from ``start`` along ``task -> depends_on`` edges."""
    visited: set[int] = set()
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == target:
            return True
        if current in visited:
            continue
        visited.add(current)
        queue.extend(edges.get(current, ()))
    return False
