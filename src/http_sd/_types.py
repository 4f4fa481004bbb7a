"""
Type definitions for HTTP service discovery.

RawTargetGroup is the wire format returned by a polled discovery endpoint.
TargetGroup is the normalized unit handed to downstream consumers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Label name holding the scrape address of a target
ADDRESS_LABEL = "__address__"

LabelSet = dict[str, str]


def merge_labels(base: LabelSet, other: LabelSet) -> LabelSet:
    """Return a new label set with *other* merged over *base*.

    Names present in both take the value from *other*.
    """
    merged = dict(base)
    merged.update(other)
    return merged


class RawTargetGroup(BaseModel):
    """One entry of the JSON array served by a discovery endpoint."""

    targets: list[str] = Field(
        default_factory=list,
        description="Target addresses, usually host:port"
    )
    labels: dict[str, str] = Field(
        default_factory=dict,
        description="Labels shared by every target of the group"
    )

    model_config = ConfigDict(extra='ignore')

    @model_validator(mode='before')
    @classmethod
    def fold_key_case(cls, data: Any):
        """Match ``targets``/``labels`` keys regardless of case."""
        if not isinstance(data, dict):
            return data
        folded = {}
        for key, value in data.items():
            lowered = key.lower() if isinstance(key, str) else key
            folded[lowered if lowered in ('targets', 'labels') else key] = value
        return folded

    @field_validator('targets', 'labels', mode='before')
    @classmethod
    def null_as_empty(cls, v: Any, info):
        if v is None:
            return [] if info.field_name == 'targets' else {}
        # null entries decode to the empty string
        if isinstance(v, list):
            return ["" if item is None else item for item in v]
        if isinstance(v, dict):
            return {k: "" if item is None else item for k, item in v.items()}
        return v


@dataclass
class TargetGroup:
    """
    A set of targets sharing a common label set.

    ``source`` identifies the group within one poll response. It carries
    no identity across polls; every delivery replaces the previous one.
    """
    source: str
    targets: list[LabelSet] = field(default_factory=list)
    labels: LabelSet = field(default_factory=dict)

    @property
    def addresses(self) -> list[str]:
        """Address label of every target that has one."""
        return [t[ADDRESS_LABEL] for t in self.targets if ADDRESS_LABEL in t]

    def to_file_sd(self) -> dict[str, Any]:
        """Render as a file_sd entry."""
        return {
            "targets": sorted(self.addresses),
            "labels": dict(self.labels),
        }


def label_set_from(name: str, value: str) -> LabelSet:
    """Build a label set holding a single label."""
    return {name: value}
