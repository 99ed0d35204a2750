"""Archive builder.

Glues the pieces together:

- resolves the shared-library closure of every dynamically linked input,
- merges the inputs and the resolved libraries into one list of files,
- assembles the tar archive in memory,
- writes it to a file (atomically) or to standard output,
- optionally writes a ``FROM scratch`` Dockerfile next to the archive.

Nothing is written to the destination unless resolution and assembly both
succeeded.
"""

from collections.abc import Iterable
import functools
import logging
import os
import pathlib
import sys
import time
from typing import BinaryIO

from docktar.archive import ArchiveAssembler, FileEntry, Stripper, strip_binary
from docktar.config import BuildConfig
from docktar.inputs import InputSpec
from docktar.resolver import DependencyClosure, LibraryLocator, resolve_dependencies

DOCKERFILE_NAME: str = "Dockerfile"

_DOCKERFILE_TEMPLATE: str = """FROM scratch

ADD {archive} /
"""


class BuildError(RuntimeError):
    """Raised when the finished archive cannot be delivered."""


def collect_entries(specs: Iterable[InputSpec], closure: DependencyClosure) -> list[FileEntry]:
    """Merge inputs and resolved libraries into archive order.

    Inputs come first, in the given order, then libraries in discovery order.
    Libraries are archived under the path they were found at and read from
    their canonical location.

    :param specs: Resolved inputs.
    :param closure: Library closure.
    :returns: Entries to archive.
    """

    entries: list[FileEntry] = [
        FileEntry(source=s.source, arcname=s.target, is_binary=s.is_binary) for s in specs
    ]
    for lib in closure:
        entries.append(FileEntry(source=lib.real_path, arcname=str(lib.path), is_binary=True))
    return entries


def build_archive(
    *,
    specs: list[InputSpec],
    config: BuildConfig,
    logger: logging.Logger | None = None,
    stdout: BinaryIO | None = None,
    locator: LibraryLocator | None = None,
    stripper: Stripper | None = None,
) -> int:
    """Build the archive described by ``specs`` and ``config``.

    :param specs: Resolved inputs.
    :param config: Build configuration.
    :param logger: Optional logger for progress output.
    :param stdout: Stream used when ``config.output`` is ``-``; defaults to
        ``sys.stdout.buffer``.
    :param locator: Optional library locator override.
    :param stripper: Optional stripping callable override.
    :returns: Number of archive bytes written.
    :raises ResolutionError: If the library closure cannot be computed.
    :raises ArchiveError: If an entry cannot be archived.
    :raises BuildError: If the archive cannot be written to its destination.
    """

    if logger is None:
        logger = logging.getLogger("docktar")

    t_total0: float = time.perf_counter()
    logger.info(f"docktar: inputs={len(specs)} output={config.output} strip={config.strip}")
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"docktar: library_paths={[str(p) for p in config.library_paths]}")

    binaries: list[pathlib.Path] = [s.source for s in specs if s.is_binary is True]
    closure: DependencyClosure = resolve_dependencies(
        binaries,
        library_paths=config.library_paths,
        logger=logger,
        locator=locator,
    )

    if stripper is None:
        stripper = functools.partial(strip_binary, strip_program=config.strip_program)

    entries: list[FileEntry] = collect_entries(specs, closure)
    assembler: ArchiveAssembler = ArchiveAssembler(strip=config.strip, stripper=stripper, logger=logger)
    data: bytes = assembler.assemble(entries)

    if config.to_stdout is True:
        if stdout is None:
            stdout = sys.stdout.buffer
        _write_stream(data, stdout)
        if config.write_dockerfile is True:
            logger.warning("docktar: not writing a Dockerfile when the archive goes to stdout")
    else:
        out_path: pathlib.Path = pathlib.Path(config.output)
        _write_file(data, out_path)
        logger.info(f"docktar: wrote {out_path} ({len(data) / (1024 * 1024):.1f} MiB)")
        if config.write_dockerfile is True:
            dockerfile: pathlib.Path = write_dockerfile(out_path)
            logger.info(f"docktar: wrote {dockerfile}")

    t_total1: float = time.perf_counter()
    logger.info(f"docktar: done in {t_total1 - t_total0:.2f}s")
    return len(data)


def _write_stream(data: bytes, stream: BinaryIO) -> None:
    """Write the archive to an unseekable stream.

    :param data: Archive bytes.
    :param stream: Destination stream.
    :raises BuildError: If writing fails.
    """

    try:
        stream.write(data)
        stream.flush()
    except OSError as exc:
        raise BuildError(f"Cannot write to stdout: {exc}") from exc


def _write_file(data: bytes, out_path: pathlib.Path) -> None:
    """Write the archive next to ``out_path`` and move it into place.

    A symlinked destination is followed, so the link itself is kept.

    :param data: Archive bytes.
    :param out_path: Destination file.
    :raises BuildError: If the file cannot be written.
    """

    target: pathlib.Path = pathlib.Path(os.path.realpath(out_path))
    if len(target.name) == 0:
        raise BuildError(f"Cannot write archive {out_path}: not a file path")
    tmp_path: pathlib.Path = target.with_name(target.name + ".tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
        tmp_path.replace(target)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise BuildError(f"Cannot write archive {out_path}: {exc}") from exc


def render_dockerfile(archive_name: str) -> str:
    """Render a ``FROM scratch`` Dockerfile that adds ``archive_name``."""

    return _DOCKERFILE_TEMPLATE.format(archive=archive_name)


def write_dockerfile(archive_path: pathlib.Path) -> pathlib.Path:
    """Write a Dockerfile next to the archive.

    :param archive_path: Archive file the Dockerfile refers to.
    :returns: Path of the written Dockerfile.
    :raises BuildError: If the file cannot be written.
    """

    archive_abs: pathlib.Path = pathlib.Path(archive_path).absolute()
    dockerfile: pathlib.Path = archive_abs.parent / DOCKERFILE_NAME
    try:
        dockerfile.write_text(render_dockerfile(archive_abs.name), encoding="utf-8")
    except OSError as exc:
        raise BuildError(f"Cannot write {dockerfile}: {exc}") from exc
    return dockerfile
