"""Top-level input normalization.

Each command line argument has the form ``SRC[:TARGET]``. ``SRC`` may be a
path, a glob pattern or a program name looked up on ``PATH``; ``TARGET`` is
the path inside the archive and defaults to ``SRC``. The result is a list of
:class:`InputSpec` with canonical source paths.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import glob
import logging
import os
import pathlib
import shutil

from docktar.elf import is_dynamic_binary


class InputResolutionError(ValueError):
    """Raised when an input argument cannot be resolved to a file."""


@dataclass(frozen=True, slots=True)
class InputSpec:
    """A file to archive.

    :ivar source: Canonical absolute source path.
    :ivar target: Path inside the archive.
    :ivar is_binary: Whether the file is a dynamically linked ELF binary.
    """

    source: pathlib.Path
    target: str
    is_binary: bool


def parse_input_arg(arg: str) -> tuple[str, str]:
    """Split ``SRC[:TARGET]`` into source and target.

    :param arg: Command line argument.
    :returns: ``(source, target)``.
    :raises InputResolutionError: If the argument has more than one ``:``.
    """

    parts: list[str] = arg.split(":")
    if len(parts) == 1:
        return (parts[0], parts[0])
    if len(parts) == 2:
        return (parts[0], parts[1])
    raise InputResolutionError(f"Invalid argument: {arg}")


def _expand_globs(pairs: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Expand sources containing ``*`` in place.

    A match keeps its own path as target unless the argument had an explicit
    target, in which case the match goes under that target directory.

    :param pairs: ``(source, target)`` pairs.
    :returns: Expanded pairs.
    :raises InputResolutionError: If a pattern matches nothing.
    """

    out: list[tuple[str, str]] = []
    for source, target in pairs:
        if "*" not in source:
            out.append((source, target))
            continue

        matches: list[str] = sorted(glob.glob(source))
        if len(matches) == 0:
            raise InputResolutionError(f"{source} did not match any file")

        base_dir: str = "" if source == target else target
        for match in matches:
            if base_dir != "":
                out.append((match, os.path.join(base_dir, os.path.basename(match))))
            else:
                out.append((match, match))
    return out


def _is_file(path: str) -> bool:
    return os.path.exists(path) is True and os.path.isdir(path) is False


def _resolve_one(
    source: str,
    target: str,
    *,
    which: Callable[[str], str | None],
    cwd: pathlib.Path,
) -> InputSpec:
    """Resolve a single ``(source, target)`` pair.

    :param source: Source path or program name.
    :param target: Archive path.
    :param which: ``PATH`` lookup function.
    :param cwd: Directory for relative names.
    :returns: Resolved input.
    :raises InputResolutionError: If the source cannot be resolved.
    """

    if _is_file(source) is False:
        found: str | None = which(source)
        if found is None:
            raise InputResolutionError(f"Cannot find file {source}")
        found = os.path.abspath(found)
        if target == source:
            target = found
        source = found

    if "/" not in source:
        source = str(cwd / source)
        if "/" not in target:
            target = source

    try:
        real: pathlib.Path = pathlib.Path(os.path.realpath(source, strict=True))
    except OSError as exc:
        raise InputResolutionError(f"File {source} does not exist") from exc

    if real.is_file() is False:
        raise InputResolutionError(f"File {source} is not a regular file")

    return InputSpec(source=real, target=target, is_binary=is_dynamic_binary(real))


def resolve_input_specs(
    args: Iterable[str],
    *,
    logger: logging.Logger | None = None,
    which: Callable[[str], str | None] | None = None,
    cwd: pathlib.Path | None = None,
) -> list[InputSpec]:
    """Resolve command line file arguments into :class:`InputSpec` items.

    :param args: ``SRC[:TARGET]`` arguments.
    :param logger: Optional logger for progress output.
    :param which: Optional ``PATH`` lookup override (defaults to :func:`shutil.which`).
    :param cwd: Optional working directory override.
    :returns: Resolved inputs in argument order.
    :raises InputResolutionError: If any argument cannot be resolved.
    """

    if logger is None:
        logger = logging.getLogger("docktar")
    if which is None:
        which = shutil.which
    if cwd is None:
        cwd = pathlib.Path.cwd()

    pairs: list[tuple[str, str]] = _expand_globs([parse_input_arg(a) for a in args])

    specs: list[InputSpec] = []
    for source, target in pairs:
        spec: InputSpec = _resolve_one(source, target, which=which, cwd=cwd)
        if logger.isEnabledFor(logging.DEBUG) is True:
            kind: str = "binary" if spec.is_binary is True else "file"
            logger.debug(f"docktar: input {spec.source} -> {spec.target} ({kind})")
        specs.append(spec)

    if len(specs) == 0:
        raise InputResolutionError("Not enough arguments")
    return specs
