"""Tar archive assembly.

Files are written as regular-file entries with relative names. Binary entries
can be routed through a stripping step first; the header size always matches
the bytes actually emitted.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import io
import logging
import os
import pathlib
import posixpath
import stat
import subprocess
import tarfile
import tempfile
import time
from typing import BinaryIO

from docktar.config import DEFAULT_STRIP_PROGRAM

Stripper = Callable[[pathlib.Path], bytes]


class ArchiveError(RuntimeError):
    """Raised when an archive entry cannot be produced or written."""


@dataclass(frozen=True, slots=True)
class FileEntry:
    """A file to place in the archive.

    :ivar source: File the content and metadata are read from.
    :ivar arcname: Path inside the archive (leading ``/`` is dropped).
    :ivar is_binary: Whether stripping applies to this file.
    """

    source: pathlib.Path
    arcname: str
    is_binary: bool


def normalize_archive_path(path: str) -> str:
    """Make an archive path relative by dropping every leading separator.

    ``.`` and ``..`` segments are collapsed; a path that would climb above
    the archive root is rejected.

    :param path: In-archive path, possibly absolute.
    :returns: Relative path (``/usr/bin/awk`` -> ``usr/bin/awk``).
    :raises ArchiveError: If nothing is left or the path leaves the archive root.
    """

    rel: str = path.lstrip("/")
    if len(rel) == 0:
        raise ArchiveError(f"Invalid archive path {path!r}")

    clean: str = posixpath.normpath(rel)
    if clean == "." or clean == ".." or clean.startswith("../") is True:
        raise ArchiveError(f"Archive path {path!r} leaves the archive root")
    return clean


def strip_binary(path: pathlib.Path, *, strip_program: str = DEFAULT_STRIP_PROGRAM) -> bytes:
    """Return the content of ``path`` with all symbols stripped.

    The stripped copy lives in a temporary directory that is removed before
    this function returns, on success and on error.

    :param path: Binary to strip.
    :param strip_program: ``strip`` compatible program.
    :returns: Stripped bytes.
    :raises ArchiveError: If the program cannot be run or fails.
    """

    with tempfile.TemporaryDirectory(prefix="docktar_strip_") as td:
        out_path: pathlib.Path = pathlib.Path(td) / pathlib.Path(path).name
        cmd: list[str] = [strip_program, "--strip-all", "-o", str(out_path), str(path)]
        try:
            proc = subprocess.run(cmd, check=False, capture_output=True)
        except OSError as exc:
            raise ArchiveError(f"Cannot strip file {path}: {exc}") from exc
        if proc.returncode != 0:
            detail: str = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ArchiveError(f"Cannot strip file {path} (exit={proc.returncode}): {detail}")
        try:
            return out_path.read_bytes()
        except OSError as exc:
            raise ArchiveError(f"Cannot read stripped copy of {path}: {exc}") from exc


class ArchiveAssembler:
    """Write :class:`FileEntry` items into a tar stream.

    :param strip: Strip binary entries before writing them.
    :param stripper: Callable producing stripped bytes for a path; defaults
        to :func:`strip_binary`.
    :param logger: Optional logger for progress output.
    """

    def __init__(
        self,
        *,
        strip: bool = False,
        stripper: Stripper | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.strip: bool = strip
        self.stripper: Stripper = strip_binary if stripper is None else stripper
        self.logger: logging.Logger = logging.getLogger("docktar") if logger is None else logger

    def assemble(self, entries: Iterable[FileEntry]) -> bytes:
        """Build the complete archive in memory.

        :param entries: Files in archive order.
        :returns: Tar archive bytes.
        :raises ArchiveError: If any entry fails.
        """

        buf: io.BytesIO = io.BytesIO()
        self.write(entries, buf)
        return buf.getvalue()

    def write(self, entries: Iterable[FileEntry], fileobj: BinaryIO) -> int:
        """Stream the archive to ``fileobj`` without seeking.

        :param entries: Files in archive order.
        :param fileobj: Writable binary stream.
        :returns: Number of entries written.
        :raises ArchiveError: If any entry fails.
        """

        t0: float = time.perf_counter()
        count: int = 0
        content_bytes: int = 0
        try:
            with tarfile.open(fileobj=fileobj, mode="w|") as tar:
                for entry in entries:
                    content_bytes += self._add(tar, entry)
                    count += 1
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveError(f"Cannot finish archive: {exc}") from exc
        t1: float = time.perf_counter()

        self.logger.info(
            f"docktar: archived {count} files ({content_bytes / (1024 * 1024):.1f} MiB) in {t1 - t0:.2f}s"
        )
        return count

    def _add(self, tar: tarfile.TarFile, entry: FileEntry) -> int:
        """Write one entry.

        :param tar: Open tar writer.
        :param entry: Entry to add.
        :returns: Content size written.
        :raises ArchiveError: If the entry cannot be read or written.
        """

        arcname: str = normalize_archive_path(entry.arcname)

        try:
            st: os.stat_result = os.stat(entry.source)
        except OSError as exc:
            raise ArchiveError(f"Cannot stat file {entry.source}: {exc}") from exc
        if stat.S_ISREG(st.st_mode) is False:
            raise ArchiveError(f"File {entry.source} is not a regular file")

        data: bytes = self._read_content(entry)

        info: tarfile.TarInfo = tarfile.TarInfo(name=arcname)
        info.type = tarfile.REGTYPE
        info.mode = stat.S_IMODE(st.st_mode)
        info.uid = st.st_uid
        info.gid = st.st_gid
        info.mtime = int(st.st_mtime)
        info.size = len(data)

        try:
            tar.addfile(info, io.BytesIO(data))
        except (OSError, ValueError, tarfile.TarError) as exc:
            raise ArchiveError(f"Cannot write archive entry {arcname}: {exc}") from exc

        if self.logger.isEnabledFor(logging.DEBUG) is True:
            self.logger.debug(f"docktar: + {arcname} ({info.size} bytes, mode={info.mode:o}) <- {entry.source}")
        return info.size

    def _read_content(self, entry: FileEntry) -> bytes:
        """Read the bytes to emit for ``entry``, stripped when applicable."""

        if self.strip is True and entry.is_binary is True:
            try:
                return self.stripper(entry.source)
            except OSError as exc:
                raise ArchiveError(f"Cannot strip file {entry.source}: {exc}") from exc

        try:
            return pathlib.Path(entry.source).read_bytes()
        except OSError as exc:
            raise ArchiveError(f"Cannot read file {entry.source}: {exc}") from exc
