"""
Conversion of raw discovery payloads into target groups.
"""

from __future__ import annotations

from typing import Iterable

from ._types import ADDRESS_LABEL, RawTargetGroup, TargetGroup, label_set_from, merge_labels


def build_target_group(index: int, raw: RawTargetGroup) -> TargetGroup:
    """Convert the raw entry at position *index* into a TargetGroup.

    Addresses are passed through unchanged; rejecting malformed ones is
    left to whoever scrapes them.
    """
    group = TargetGroup(source=str(index), targets=[], labels={})

    for addr in raw.targets:
        group.targets.append(label_set_from(ADDRESS_LABEL, addr))

    for name, value in raw.labels.items():
        group.labels = merge_labels(group.labels, {name: value})

    return group


def build_target_groups(raw_groups: Iterable[RawTargetGroup]) -> list[TargetGroup]:
    """Convert a decoded poll response into an ordered list of groups."""
    return [build_target_group(i, raw) for i, raw in enumerate(raw_groups)]
