"""Tests for builds/artifacts.py module.

Tests bitstream resolution, canonical naming, and manifest generation.
"""

import json
import os

import pytest

from bitstream_builder.builds.artifacts import (
    BITSTREAM_CANDIDATES,
    canonicalize,
    candidates_for,
    compute_file_hash,
    describe_artifact,
    generate_manifest,
    resolve_artifact,
    resolve_bitstream,
    verify_outputs,
    write_manifest,
)
from bitstream_builder.errors import ArtifactError, VerificationError
from bitstream_builder.types import ArtifactFormat, Board, BuildArtifact, Variant


@pytest.fixture
def impl_dir(tmp_path):
    path = tmp_path / "impl_1"
    path.mkdir()
    return path


class TestCandidates:
    """Tests for candidate ordering."""

    def test_order(self):
        """Toolchain names come first, the canonical name last."""
        assert candidates_for(Variant.PHASEMETER) == [
            "system_wrapper.bit",
            "red_pitaya_top.bit",
            "rpll.bit",
            "phasemeter.bit",
        ]


class TestResolveBitstream:
    """Tests for resolve_bitstream function."""

    @pytest.mark.parametrize("name", BITSTREAM_CANDIDATES)
    def test_single_candidate(self, impl_dir, name):
        """Whichever single candidate exists should be returned."""
        (impl_dir / name).write_bytes(b"bits")
        assert resolve_bitstream(impl_dir, BITSTREAM_CANDIDATES) == impl_dir / name

    def test_priority_beats_recency(self, impl_dir):
        """A newer lower-priority file should not win."""
        high = impl_dir / "system_wrapper.bit"
        low = impl_dir / "rpll.bit"
        high.write_bytes(b"old")
        low.write_bytes(b"new")
        os.utime(high, (1_000_000, 1_000_000))
        assert resolve_bitstream(impl_dir, BITSTREAM_CANDIDATES) == high

    def test_none_found(self, impl_dir):
        """No candidate should raise ArtifactError."""
        with pytest.raises(ArtifactError) as exc_info:
            resolve_bitstream(impl_dir, BITSTREAM_CANDIDATES)
        assert exc_info.value.code == "artifact_not_found"

    def test_directories_ignored(self, impl_dir):
        """A directory named like a candidate is not a bitstream."""
        (impl_dir / "system_wrapper.bit").mkdir()
        (impl_dir / "rpll.bit").write_bytes(b"bits")
        assert resolve_bitstream(impl_dir, BITSTREAM_CANDIDATES).name == "rpll.bit"


class TestCanonicalize:
    """Tests for canonicalize function."""

    def test_copies_not_moves(self, impl_dir):
        """The source should remain after canonicalization."""
        source = impl_dir / "system_wrapper.bit"
        source.write_bytes(b"bitstream")
        target = canonicalize(source, Variant.LASER_LOCK)
        assert target == impl_dir / "laser_lock.bit"
        assert source.read_bytes() == b"bitstream"
        assert target.read_bytes() == b"bitstream"

    def test_idempotent(self, impl_dir):
        """A second canonicalization should leave the copy untouched."""
        source = impl_dir / "rpll.bit"
        source.write_bytes(b"bitstream")
        target = canonicalize(source, Variant.LASER_LOCK)
        os.utime(target, (1_000_000, 1_000_000))
        canonicalize(source, Variant.LASER_LOCK)
        assert target.stat().st_mtime == 1_000_000
        assert sorted(p.name for p in impl_dir.iterdir()) == ["laser_lock.bit", "rpll.bit"]

    def test_replaces_stale_copy(self, impl_dir):
        """A canonical file with different content should be refreshed."""
        source = impl_dir / "rpll.bit"
        source.write_bytes(b"new")
        (impl_dir / "phasemeter.bit").write_bytes(b"old")
        assert canonicalize(source, Variant.PHASEMETER).read_bytes() == b"new"

    def test_carries_packaged_sibling(self, impl_dir):
        """A sibling .bit.bin should be copied to <variant>.bit.bin."""
        source = impl_dir / "system_wrapper.bit"
        source.write_bytes(b"bits")
        (impl_dir / "system_wrapper.bit.bin").write_bytes(b"packaged")
        canonicalize(source, Variant.PHASEMETER)
        assert (impl_dir / "phasemeter.bit.bin").read_bytes() == b"packaged"

    def test_canonical_source_is_noop(self, impl_dir):
        """Resolving to the canonical name itself should not copy."""
        source = impl_dir / "laser_lock.bit"
        source.write_bytes(b"bits")
        assert canonicalize(source, Variant.LASER_LOCK) == source
        assert [p.name for p in impl_dir.iterdir()] == ["laser_lock.bit"]

    def test_other_variant_untouched(self, impl_dir):
        """Canonicalizing one variant should not modify another's files."""
        v1 = impl_dir / "laser_lock.bit"
        v1.write_bytes(b"v1")
        before = compute_file_hash(v1)
        source = impl_dir / "system_wrapper.bit"
        source.write_bytes(b"v2")
        canonicalize(source, Variant.PHASEMETER)
        assert compute_file_hash(v1) == before


class TestResolveArtifact:
    """Tests for resolve_artifact function."""

    def test_artifact(self, impl_dir):
        (impl_dir / "red_pitaya_top.bit").write_bytes(b"bits")
        artifact = resolve_artifact(impl_dir, Board.RP250_12, Variant.PHASEMETER)
        assert artifact.path == impl_dir / "phasemeter.bit"
        assert artifact.source == impl_dir / "red_pitaya_top.bit"
        assert artifact.format == ArtifactFormat.RAW_BITSTREAM
        assert artifact.board == Board.RP250_12


class TestManifest:
    """Tests for manifest generation."""

    def test_describe_and_write(self, impl_dir, tmp_path):
        """Manifest entries should carry hash, size and relative path."""
        bit = impl_dir / "laser_lock.bit"
        bit.write_bytes(b"x" * 100)
        artifact = BuildArtifact(
            path=bit,
            board=Board.RP125_14,
            variant=Variant.LASER_LOCK,
            format=ArtifactFormat.RAW_BITSTREAM,
        )
        info = describe_artifact(artifact, tmp_path)
        assert info.relative_path == "impl_1/laser_lock.bit"
        assert info.size_bytes == 100
        assert info.sha256 == compute_file_hash(bit)

        manifest = generate_manifest(
            [info], board=Board.RP125_14, variant=Variant.LASER_LOCK, backend="local"
        )
        path = write_manifest(manifest, impl_dir / "laser_lock.manifest.json")
        data = json.loads(path.read_text())
        assert data["board"] == "rp125_14"
        assert data["summary"]["total_artifacts"] == 1
        assert data["summary"]["total_size_bytes"] == 100
        assert data["artifacts"][0]["kind"] == "raw-bitstream"


class TestVerifyOutputs:
    """Tests for verify_outputs function."""

    def _artifact(self, path):
        return BuildArtifact(
            path=path,
            board=Board.RP125_14,
            variant=Variant.LASER_LOCK,
            format=ArtifactFormat.RAW_BITSTREAM,
        )

    def test_ok(self, impl_dir):
        bit = impl_dir / "laser_lock.bit"
        bit.write_bytes(b"bits")
        verify_outputs([self._artifact(bit)])

    def test_empty_and_missing(self, impl_dir):
        """Every problem should be listed in one error."""
        empty = impl_dir / "laser_lock.bit"
        empty.write_bytes(b"")
        missing = impl_dir / "laser_lock.bit.bin"
        with pytest.raises(VerificationError) as exc_info:
            verify_outputs([self._artifact(empty), self._artifact(missing)])
        assert "is empty" in exc_info.value.message
        assert "is missing" in exc_info.value.message
