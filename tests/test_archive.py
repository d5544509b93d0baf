"""Tests for the archive codec."""

import base64
import gzip
import io
import os
import tarfile

import pytest

from ephemera.archive import list_members, pack, read_members, unpack
from ephemera.errors import DestinationConflict, MalformedDocument, UnsafeArchiveMember


def _raw_payload(entries):
    """Build a payload by hand: entries are (TarInfo, data-or-None)."""
    tar_buf = io.BytesIO()
    with tarfile.open(fileobj=tar_buf, mode="w", format=tarfile.PAX_FORMAT) as tf:
        for info, data in entries:
            if data is None:
                tf.addfile(info)
            else:
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
    return base64.b64encode(gzip.compress(tar_buf.getvalue())).decode("ascii")


def _file(name, data=b"x"):
    return tarfile.TarInfo(name=name), data


@pytest.fixture
def src(tmp_path):
    root = tmp_path / "src"
    (root / "docs").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"hello\n")
    (root / "docs" / "b.md").write_text("# B\n")
    (root / "binary.bin").write_bytes(bytes(range(256)) + b"\xff\xfe\x00\x01")
    (root / "control.txt").write_bytes(b"tab\there\r\nbell\x07 esc\x1b[0m\n")
    (root / "empty.txt").write_bytes(b"")
    return root


ALL = ["a.txt", "binary.bin", "control.txt", "docs/b.md", "empty.txt"]


class TestPack:
    def test_payload_is_single_line_base64(self, src):
        payload = pack(src, ALL)
        assert "\n" not in payload
        base64.b64decode(payload, validate=True)

    def test_deterministic(self, src):
        assert pack(src, ALL) == pack(src, list(reversed(ALL)))

    def test_members_sorted(self, src):
        assert list_members(pack(src, ALL)) == ALL

    def test_ownership_zeroed(self, src):
        raw = base64.b64decode(pack(src, ["a.txt"]))
        with tarfile.open(fileobj=io.BytesIO(raw), mode="r:gz") as tf:
            info = tf.getmember("a.txt")
        assert info.uid == 0 and info.gid == 0
        assert info.uname == "" and info.gname == ""


class TestRoundTrip:
    def test_bytes_preserved(self, src, tmp_path):
        out = tmp_path / "out"
        restored = unpack(pack(src, ALL), out)
        assert restored == ALL
        for name in ALL:
            assert (out / name).read_bytes() == (src / name).read_bytes()

    def test_file_mode_preserved(self, src, tmp_path):
        os.chmod(src / "a.txt", 0o755)
        out = tmp_path / "out"
        unpack(pack(src, ["a.txt"]), out)
        assert (out / "a.txt").stat().st_mode & 0o777 == 0o755

    def test_mtime_preserved(self, src, tmp_path):
        os.utime(src / "a.txt", (1_700_000_000, 1_700_000_000))
        out = tmp_path / "out"
        unpack(pack(src, ["a.txt"]), out)
        assert int((out / "a.txt").stat().st_mtime) == 1_700_000_000

    def test_wrapped_payload_accepted(self, src, tmp_path):
        payload = pack(src, ["a.txt"])
        wrapped = "\n".join(payload[i:i + 76] for i in range(0, len(payload), 76))
        unpack(wrapped, tmp_path / "out")
        assert (tmp_path / "out" / "a.txt").read_bytes() == b"hello\n"

    def test_unicode_names(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "naïve résumé.md").write_text("ok")
        out = tmp_path / "out"
        assert unpack(pack(src, ["naïve résumé.md"]), out) == ["naïve résumé.md"]
        assert (out / "naïve résumé.md").read_text() == "ok"

    @pytest.mark.skipif(os.name == "nt", reason="names not representable on Windows")
    @pytest.mark.parametrize("name", ["a:b.txt", "a\\b.txt"])
    def test_colon_and_backslash_are_ordinary(self, tmp_path, name):
        src = tmp_path / "src"
        src.mkdir()
        (src / name).write_text("ok")
        out = tmp_path / "out"
        assert unpack(pack(src, [name]), out) == [name]
        assert (out / name).read_text() == "ok"
        assert not (out / "a").exists()


class TestUnsafeMembers:
    def test_parent_traversal(self, tmp_path):
        payload = _raw_payload([_file("../evil.txt")])
        with pytest.raises(UnsafeArchiveMember):
            unpack(payload, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()

    def test_nested_traversal(self, tmp_path):
        payload = _raw_payload([_file("docs/../../evil.txt")])
        with pytest.raises(UnsafeArchiveMember):
            list_members(payload)

    def test_absolute_name(self, tmp_path):
        payload = _raw_payload([_file("/tmp/evil.txt")])
        with pytest.raises(UnsafeArchiveMember):
            unpack(payload, tmp_path / "out")

    def test_symlink_member(self, tmp_path):
        link = tarfile.TarInfo(name="link")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        payload = _raw_payload([(link, None)])
        with pytest.raises(UnsafeArchiveMember):
            unpack(payload, tmp_path / "out")

    def test_one_bad_member_writes_nothing(self, tmp_path):
        payload = _raw_payload([_file("good.txt"), _file("../evil.txt")])
        out = tmp_path / "out"
        with pytest.raises(UnsafeArchiveMember):
            unpack(payload, out)
        assert not (out / "good.txt").exists()

    def test_unsafe_member_carries_name(self):
        payload = _raw_payload([_file("../evil.txt")])
        with pytest.raises(UnsafeArchiveMember) as exc:
            read_members(payload)
        assert exc.value.member == "../evil.txt"

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinked_destination_dir_rejected(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        out = tmp_path / "out"
        out.mkdir()
        os.symlink(outside, out / "docs")
        payload = _raw_payload([_file("docs/x.txt")])
        with pytest.raises(UnsafeArchiveMember):
            unpack(payload, out)
        assert not (outside / "x.txt").exists()


class TestMalformedPayload:
    def test_not_base64(self, tmp_path):
        with pytest.raises(MalformedDocument):
            unpack("not*base64!", tmp_path)

    def test_not_gzip(self, tmp_path):
        payload = base64.b64encode(b"plain bytes, not an archive").decode()
        with pytest.raises(MalformedDocument):
            unpack(payload, tmp_path)

    def test_empty(self, tmp_path):
        with pytest.raises(MalformedDocument):
            unpack("", tmp_path)


class TestConflicts:
    def test_existing_file_conflicts(self, src, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / "docs").mkdir()
        (out / "docs" / "b.md").write_text("mine")
        with pytest.raises(DestinationConflict) as exc:
            unpack(pack(src, ALL), out)
        assert exc.value.path == "docs/b.md"
        assert (out / "docs" / "b.md").read_text() == "mine"
        # Nothing else was written either
        assert not (out / "a.txt").exists()

    def test_overwrite_replaces(self, src, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / "a.txt").write_text("mine")
        unpack(pack(src, ["a.txt"]), out, overwrite=True)
        assert (out / "a.txt").read_bytes() == b"hello\n"

    def test_directory_in_the_way(self, src, tmp_path):
        out = tmp_path / "out"
        (out / "a.txt").mkdir(parents=True)
        with pytest.raises(DestinationConflict):
            unpack(pack(src, ["a.txt"]), out, overwrite=True)

    def test_file_where_directory_needed(self, src, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / "docs").write_text("a file")
        with pytest.raises(DestinationConflict):
            unpack(pack(src, ["docs/b.md"]), out, overwrite=True)

    def test_dry_run_writes_nothing(self, src, tmp_path):
        out = tmp_path / "out"
        assert unpack(pack(src, ALL), out, dry_run=True) == ALL
        assert not out.exists()

    def test_dry_run_ignores_conflicts(self, src, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / "a.txt").write_text("mine")
        assert unpack(pack(src, ["a.txt"]), out, dry_run=True) == ["a.txt"]
        assert (out / "a.txt").read_text() == "mine"


class TestDuplicates:
    def test_last_occurrence_wins(self, tmp_path):
        payload = _raw_payload([_file("a.txt", b"first"), _file("a.txt", b"second")])
        out = tmp_path / "out"
        assert unpack(payload, out) == ["a.txt"]
        assert (out / "a.txt").read_bytes() == b"second"
