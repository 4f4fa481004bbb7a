"""Tests for target group building."""

from http_sd._types import ADDRESS_LABEL, RawTargetGroup, TargetGroup, merge_labels
from http_sd.targetgroup import build_target_group, build_target_groups


class TestMergeLabels:
    """Tests for label set merging."""

    def test_later_value_wins(self):
        """Should keep the value of the label set merged last."""
        merged = merge_labels({"env": "staging"}, {"env": "prod"})
        assert merged == {"env": "prod"}

    def test_keeps_disjoint_labels(self):
        merged = merge_labels({"env": "prod"}, {"team": "infra"})
        assert merged == {"env": "prod", "team": "infra"}

    def test_does_not_mutate_inputs(self):
        base = {"env": "staging"}
        other = {"env": "prod"}

        merge_labels(base, other)

        assert base == {"env": "staging"}
        assert other == {"env": "prod"}


class TestBuildTargetGroups:
    """Tests for raw payload conversion."""

    def test_sources_follow_position(self):
        """Should produce one group per entry with sources 0..N-1."""
        raw = [RawTargetGroup(targets=[f"host{i}:9100"]) for i in range(5)]

        groups = build_target_groups(raw)

        assert len(groups) == 5
        assert [g.source for g in groups] == ["0", "1", "2", "3", "4"]

    def test_each_target_gets_address_label(self):
        """Should map every raw target to a label set holding only its address."""
        group = build_target_group(0, RawTargetGroup(targets=["a:1", "b:2"]))

        assert group.targets == [
            {ADDRESS_LABEL: "a:1"},
            {ADDRESS_LABEL: "b:2"},
        ]

    def test_group_labels_copied(self):
        raw = RawTargetGroup(targets=["a:1"], labels={"env": "prod", "job": "node"})

        group = build_target_group(3, raw)

        assert group.source == "3"
        assert group.labels == {"env": "prod", "job": "node"}

    def test_empty_targets_keep_group(self):
        """Should keep a group with no targets rather than omitting it."""
        raw = [
            RawTargetGroup(targets=[], labels={"env": "prod"}),
            RawTargetGroup(targets=["a:1"]),
        ]

        groups = build_target_groups(raw)

        assert len(groups) == 2
        assert groups[0].targets == []
        assert groups[0].targets is not None
        assert groups[0].labels == {"env": "prod"}

    def test_malformed_addresses_pass_through(self):
        """Should not validate address syntax."""
        group = build_target_group(0, RawTargetGroup(targets=["not an address", ""]))

        assert group.addresses == ["not an address", ""]

    def test_empty_payload(self):
        assert build_target_groups([]) == []


class TestRawTargetGroup:
    """Tests for the wire model."""

    def test_null_fields_become_empty(self):
        raw = RawTargetGroup.model_validate({"targets": None, "labels": None})

        assert raw.targets == []
        assert raw.labels == {}

    def test_missing_fields_become_empty(self):
        raw = RawTargetGroup.model_validate({})

        assert raw.targets == []
        assert raw.labels == {}

    def test_unknown_fields_ignored(self):
        raw = RawTargetGroup.model_validate({"targets": ["a:1"], "weight": 3})

        assert raw.targets == ["a:1"]


class TestTargetGroup:
    """Tests for TargetGroup rendering."""

    def test_to_file_sd_sorts_addresses(self):
        group = TargetGroup(
            source="0",
            targets=[{ADDRESS_LABEL: "b:2"}, {ADDRESS_LABEL: "a:1"}],
            labels={"env": "prod"},
        )

        assert group.to_file_sd() == {
            "targets": ["a:1", "b:2"],
            "labels": {"env": "prod"},
        }
