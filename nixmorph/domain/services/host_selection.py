"""
Host Selection

Architectural Intent:
- Pick the subset of a deployment's hosts a run operates on
- Apply the deployment's ordering tags to compute execution order
- Unknown names are reported all at once, before anything is built
"""

from __future__ import annotations
from fnmatch import fnmatchcase
from typing import Iterable, Optional, Sequence

from nixmorph.domain.entities.deployment import HostOrdering
from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import UnknownHostError

_GLOB_CHARS = frozenset("*?[")


def _is_glob(pattern: str) -> bool:
    return any(c in _GLOB_CHARS for c in pattern)


def select_hosts(
    hosts: Sequence[Host],
    patterns: Optional[Iterable[str]] = None,
    tags: Optional[Iterable[str]] = None,
) -> list[Host]:
    """Filter hosts by name (exact or glob) and by tag, keeping deployment order.

    Raises UnknownHostError if any name, or any glob, matches no host.
    """
    selected = list(hosts)

    patterns = [p for p in (patterns or []) if p]
    if patterns:
        wanted: set[str] = set()
        unknown: list[str] = []
        for pattern in patterns:
            if _is_glob(pattern):
                names = {h.name for h in hosts if fnmatchcase(h.name, pattern)}
            else:
                names = {h.name for h in hosts if h.name == pattern}
            if not names:
                unknown.append(pattern)
            wanted |= names
        if unknown:
            raise UnknownHostError(unknown)
        selected = [h for h in selected if h.name in wanted]

    tags = [t for t in (tags or []) if t]
    if tags:
        selected = [h for h in selected if any(h.has_tag(t) for t in tags)]

    return selected


def order_hosts(hosts: Sequence[Host], ordering: HostOrdering) -> list[Host]:
    """Group hosts by the first ordering tag they carry, in ordering-tag order.

    Hosts without any ordering tag keep their relative order and go last.
    """
    if not ordering.tags:
        return list(hosts)

    rank = {tag: i for i, tag in enumerate(ordering.tags)}
    last = len(ordering.tags)

    def key(indexed: tuple[int, Host]) -> tuple[int, int]:
        index, host = indexed
        ranks = [rank[t] for t in host.tags if t in rank]
        return (min(ranks) if ranks else last, index)

    return [h for _, h in sorted(enumerate(hosts), key=key)]


def window(hosts: Sequence[Host], skip: int = 0, every: int = 1, limit: int = 0) -> list[Host]:
    if skip < 0 or limit < 0:
        raise ValueError("skip and limit must not be negative")
    if every < 1:
        raise ValueError("every must be >= 1")
    selected = list(hosts)[skip::every]
    if limit:
        selected = selected[:limit]
    return selected
