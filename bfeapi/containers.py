"""Small helpers over mappings and sequences."""

from __future__ import annotations

from typing import Hashable, Iterable, Mapping, TypeVar

K = TypeVar("K", bound=Hashable)


def true_keys(mapping: Mapping[K, bool]) -> list[K]:
    """Keys whose value is true, in mapping order."""
    return [key for key, flag in mapping.items() if flag]


def sorted_keys(mapping: Mapping[K, object]) -> list[K]:
    """Keys of the mapping in ascending order."""
    return sorted(mapping)


def to_flag_map(items: Iterable[K]) -> dict[K, bool]:
    """Map every item to True."""
    return {item: True for item in items}


def subtract(a: Iterable[K], b: Iterable[K]) -> list[K]:
    """Items of a that are not in b, keeping a's order and repeats."""
    excluded = set(b)
    return [item for item in a if item not in excluded]