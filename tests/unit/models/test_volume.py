"""Unit tests for volume and process models."""

import pytest
from ejectctl.models.rule import normalize_identifier
from ejectctl.models.safety import ProcessDescriptor, ProcessSafety
from ejectctl.models.volume import ProcessInfo, Volume, VolumeEjectResult


class TestVolume:
    """Tests for Volume dataclass."""

    def test_equality_by_name_and_path(self) -> None:
        """Volumes with the same name and path are equal and hash alike."""
        a = Volume(name="USB", path="/Volumes/USB")
        b = Volume(name="USB", path="/Volumes/USB")

        assert a == b
        assert len({a, b}) == 1

    def test_different_path_is_different_volume(self) -> None:
        """Same name on another path is a different volume."""
        assert Volume(name="USB", path="/Volumes/USB") != Volume(name="USB", path="/Volumes/USB 1")

    def test_empty_path_rejected(self) -> None:
        """Volume requires a path."""
        with pytest.raises(ValueError, match="path cannot be empty"):
            Volume(name="USB", path="")


class TestProcessInfo:
    """Tests for ProcessInfo identity."""

    def test_identity_by_pid(self) -> None:
        """Two observations of a pid are equal regardless of name."""
        assert ProcessInfo(name="mdworker", pid=10) == ProcessInfo(name="mdworker_shared", pid=10)

    def test_different_pid_not_equal(self) -> None:
        """Same name with different pids are distinct processes."""
        assert ProcessInfo(name="Finder", pid=1) != ProcessInfo(name="Finder", pid=2)


class TestVolumeEjectResult:
    """Tests for VolumeEjectResult."""

    def test_empty_result_is_success(self) -> None:
        """An empty batch counts as success."""
        assert VolumeEjectResult().is_success

    def test_volumes_covers_all_partitions(self) -> None:
        """volumes is the union of the three partitions."""
        a = Volume(name="A", path="/Volumes/A")
        b = Volume(name="B", path="/Volumes/B")
        c = Volume(name="C", path="/Volumes/C")
        result = VolumeEjectResult(
            successful=frozenset({a}),
            blocking={b: [ProcessInfo(name="Finder", pid=1)]},
            failed_without_processes=frozenset({c}),
        )

        assert result.volumes == {a, b, c}
        assert not result.is_success

    def test_rejects_volume_in_two_outcomes(self) -> None:
        """A volume cannot be both ejected and blocked."""
        a = Volume(name="A", path="/Volumes/A")

        with pytest.raises(ValueError, match="more than one outcome: A"):
            VolumeEjectResult(
                successful=frozenset({a}),
                blocking={a: [ProcessInfo(name="Finder", pid=1)]},
            )

    def test_rejects_blocked_and_failed(self) -> None:
        """A volume cannot be both blocked and failed."""
        b = Volume(name="B", path="/Volumes/B")

        with pytest.raises(ValueError, match="more than one outcome: B"):
            VolumeEjectResult(
                blocking={b: [ProcessInfo(name="Finder", pid=1)]},
                failed_without_processes=frozenset({b}),
            )


class TestProcessDescriptor:
    """Tests for ProcessDescriptor validation."""

    def test_rejects_empty_aliases(self) -> None:
        """A descriptor needs at least one alias."""
        with pytest.raises(ValueError, match="at least one alias"):
            ProcessDescriptor(
                names=frozenset(), category="x", safety=ProcessSafety.SAFE, notes="x"
            )

    def test_rejects_uppercase_aliases(self) -> None:
        """Aliases are stored lowercase."""
        with pytest.raises(ValueError, match="lowercase"):
            ProcessDescriptor(
                names=frozenset({"Finder"}), category="x", safety=ProcessSafety.SAFE, notes="x"
            )

    def test_safety_label(self) -> None:
        """Badge labels are upper-case tier names."""
        assert ProcessSafety.SAFE.label == "SAFE"
        assert ProcessSafety.UNKNOWN.label == "UNKNOWN"


class TestNormalizeIdentifier:
    """Tests for normalize_identifier."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Finder", "finder"), ("  Preview ", "preview"), ("MDS_STORES", "mds_stores"), ("  ", "")],
    )
    def test_trims_and_lowercases(self, raw: str, expected: str) -> None:
        """Identifiers are trimmed and lowercased."""
        assert normalize_identifier(raw) == expected
