"""
Archive codec — selected files ↔ text-safe payload.

A payload is a tar archive, gzip-compressed, then base64-encoded so it can
live inside a printable note. Packing is deterministic: members are sorted,
ownership is zeroed and the gzip header carries no timestamp, so the same
files always produce the same payload.

Unpacking validates every member before the first byte is written, and
refuses to touch existing files unless overwrite is requested.
"""

import base64
import binascii
import gzip
import io
import logging
import os
import stat
import tarfile
import tempfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Iterable, Union

from .errors import DestinationConflict, MalformedDocument, UnsafeArchiveMember

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


@dataclass
class ArchiveMember:
    """One regular file read back from a payload."""
    name: str
    mode: int
    mtime: int
    data: bytes


# ---------------------------------------------------------------------------
# Pack
# ---------------------------------------------------------------------------

def pack(base_dir: Union[str, Path], paths: Iterable[str]) -> str:
    """
    Archive files under base_dir into a base64 payload.

    Args:
        base_dir: Directory the relative paths are read from
        paths: Base-relative POSIX paths (as returned by select_paths)

    Returns:
        Base64 text (no line breaks) of the gzip-compressed tar archive
    """
    names = sorted(set(paths))
    buf = io.BytesIO()
    with io.BytesIO() as tar_buf:
        with tarfile.open(fileobj=tar_buf, mode="w", format=tarfile.PAX_FORMAT) as tf:
            for name in names:
                full = os.path.join(base_dir, *PurePosixPath(name).parts)
                with open(full, "rb") as f:
                    st = os.fstat(f.fileno())
                    data = f.read()
                info = tarfile.TarInfo(name=name)
                info.size = len(data)
                info.mode = stat.S_IMODE(st.st_mode)
                info.mtime = int(st.st_mtime)
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                tf.addfile(info, io.BytesIO(data))
        with gzip.GzipFile(filename="", mode="wb", fileobj=buf, mtime=0) as gz:
            gz.write(tar_buf.getvalue())

    logger.debug("Packed %d file(s), %d compressed bytes", len(names), buf.tell())
    return base64.b64encode(buf.getvalue()).decode("ascii")


# ---------------------------------------------------------------------------
# Read + validate
# ---------------------------------------------------------------------------

def _decode_payload(payload: str) -> bytes:
    compact = "".join(payload.split())
    if not compact:
        raise MalformedDocument("Note has an empty payload")
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedDocument(f"Payload is not valid base64: {e}") from e


def _safe_name(member: tarfile.TarInfo) -> str:
    """Normalized member name, or UnsafeArchiveMember.

    Names are POSIX paths: a backslash or colon is an ordinary character.
    On Windows, where those characters separate paths, drive and rooted
    names and backslash traversal are rejected as well.
    """
    name = member.name
    if not name or "\x00" in name:
        raise UnsafeArchiveMember(name, "empty name")
    path = PurePosixPath(name)
    if path.is_absolute():
        raise UnsafeArchiveMember(name, "absolute path")
    if os.name == "nt":
        native = PureWindowsPath(name)
        if native.drive or native.root:
            raise UnsafeArchiveMember(name, "absolute path")
        if ".." in native.parts:
            raise UnsafeArchiveMember(name, "parent directory traversal")
    if ".." in path.parts:
        raise UnsafeArchiveMember(name, "parent directory traversal")
    if not (member.isfile() or member.isdir()):
        raise UnsafeArchiveMember(name, "not a regular file or directory")
    return path.as_posix()


def read_members(payload: str) -> list[ArchiveMember]:
    """
    Decode a payload and return its file members.

    Every member is validated before anything is returned; one unsafe
    member rejects the whole archive. When a name occurs more than once
    the last occurrence wins.

    Raises:
        MalformedDocument: The payload cannot be decoded
        UnsafeArchiveMember: A member is absolute, traverses upward,
            or is not a regular file or directory
    """
    raw = _decode_payload(payload)
    members: dict[str, ArchiveMember] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(raw), mode="r:gz") as tf:
            infos = tf.getmembers()
            names = [_safe_name(info) for info in infos]
            for info, name in zip(infos, names):
                if not info.isfile():
                    continue
                f = tf.extractfile(info)
                data = f.read() if f is not None else b""
                members.pop(name, None)
                members[name] = ArchiveMember(
                    name=name,
                    mode=(info.mode & 0o777) or DEFAULT_FILE_MODE,
                    mtime=int(info.mtime),
                    data=data,
                )
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        raise MalformedDocument(f"Payload is not a valid tar+gzip archive: {e}") from e
    return list(members.values())


def list_members(payload: str) -> list[str]:
    """Names of the files in a payload, validated, without writing anything."""
    return [m.name for m in read_members(payload)]


# ---------------------------------------------------------------------------
# Unpack
# ---------------------------------------------------------------------------

def _is_within(path: str, root: str) -> bool:
    return path == root or os.path.commonpath([path, root]) == root


def _check_target(dest_real: str, member: ArchiveMember, overwrite: bool) -> str:
    """Absolute target path for a member, or raise before anything is written."""
    target = os.path.join(dest_real, *PurePosixPath(member.name).parts)
    if not _is_within(os.path.realpath(target), dest_real):
        raise UnsafeArchiveMember(member.name, "destination resolves outside target directory")

    # A parent that exists as a file blocks the whole restore
    parent = os.path.dirname(target)
    while parent != dest_real and _is_within(parent, dest_real):
        if os.path.lexists(parent) and not os.path.isdir(parent):
            raise DestinationConflict(os.path.relpath(parent, dest_real))
        parent = os.path.dirname(parent)

    if os.path.lexists(target):
        if not overwrite or (os.path.isdir(target) and not os.path.islink(target)):
            raise DestinationConflict(member.name)
    return target


def _write_file(target: str, member: ArchiveMember) -> None:
    """Write via a temporary sibling so a reader never sees a partial file."""
    parent = os.path.dirname(target)
    os.makedirs(parent, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".ephemera-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(member.data)
        os.chmod(tmp_path, member.mode)
        os.utime(tmp_path, (member.mtime, member.mtime))
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def unpack(
    payload: str,
    dest_dir: Union[str, Path],
    overwrite: bool = False,
    dry_run: bool = False,
) -> list[str]:
    """
    Extract a payload into dest_dir.

    All members are validated and every target is checked for collisions
    before the first file is written.

    Args:
        payload: Base64 payload text (line breaks allowed)
        dest_dir: Destination directory (created if missing)
        overwrite: Replace existing files instead of failing
        dry_run: Only report the member list, write nothing

    Returns:
        Relative paths of the extracted (or, for dry_run, contained) files

    Raises:
        MalformedDocument: The payload cannot be decoded
        UnsafeArchiveMember: A member would land outside dest_dir
        DestinationConflict: A target exists and overwrite is False
    """
    members = read_members(payload)
    if dry_run:
        return [m.name for m in members]

    dest_real = os.path.realpath(dest_dir)
    targets = [(_check_target(dest_real, m, overwrite), m) for m in members]

    for target, member in targets:
        _write_file(target, member)
        logger.debug("Restored %s", member.name)

    logger.info("Restored %d file(s) into %s", len(targets), dest_real)
    return [m.name for m in members]
