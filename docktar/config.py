"""Build configuration.

Turns user-supplied options into a frozen :class:`BuildConfig`. The default
library search list mirrors the usual dynamic-linker order: core system
directories first, then ``/usr/local`` and the Debian multiarch directories.
"""

from dataclasses import dataclass
import pathlib

DEFAULT_LIBRARY_PATHS: tuple[pathlib.Path, ...] = (
    pathlib.Path("/lib"),
    pathlib.Path("/lib64"),
    pathlib.Path("/usr/lib"),
    pathlib.Path("/usr/lib64"),
    pathlib.Path("/usr/local/lib"),
    pathlib.Path("/usr/local/lib64"),
    pathlib.Path("/lib/x86_64-linux-gnu"),
    pathlib.Path("/usr/lib/x86_64-linux-gnu"),
    pathlib.Path("/usr/local/lib/x86_64-linux-gnu"),
)

DEFAULT_OUTPUT: str = "docker.tar"

STDOUT_OUTPUT: str = "-"

DEFAULT_STRIP_PROGRAM: str = "strip"


class ConfigError(ValueError):
    """Raised when build options cannot be turned into a valid config."""


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Options for one archive build.

    :ivar library_paths: Ordered library search directories (earlier wins).
    :ivar strip: Strip debug symbols from binaries before archiving.
    :ivar strip_program: Program used for stripping.
    :ivar output: Archive path, or ``-`` for standard output.
    :ivar write_dockerfile: Write a ``Dockerfile`` next to the archive.
    """

    library_paths: tuple[pathlib.Path, ...]
    strip: bool
    strip_program: str
    output: str
    write_dockerfile: bool

    @property
    def to_stdout(self) -> bool:
        """Whether the archive goes to standard output."""

        return self.output == STDOUT_OUTPUT


def resolve_build_config(
    *,
    library_paths: list[pathlib.Path] | None = None,
    strip: bool = False,
    strip_program: str | None = None,
    output: str = DEFAULT_OUTPUT,
    write_dockerfile: bool = False,
) -> BuildConfig:
    """Resolve build options into a :class:`~BuildConfig`.

    :param library_paths: Optional search list override; defaults to
        :data:`DEFAULT_LIBRARY_PATHS`.
    :param strip: Strip binaries before archiving.
    :param strip_program: Optional stripping program override.
    :param output: Archive path or ``-``.
    :param write_dockerfile: Emit a companion ``Dockerfile``.
    :returns: Resolved config.
    :raises ConfigError: If an option is invalid.
    """

    paths: tuple[pathlib.Path, ...]
    if library_paths is None:
        paths = DEFAULT_LIBRARY_PATHS
    else:
        paths = _resolve_library_paths(library_paths)

    if len(output) == 0:
        raise ConfigError("Output path must not be empty; use '-' for stdout.")
    if output != STDOUT_OUTPUT and pathlib.Path(output).name in ("", ".."):
        raise ConfigError(f"Output path {output!r} does not name a file.")

    program: str = DEFAULT_STRIP_PROGRAM if strip_program is None else strip_program
    if len(program) == 0:
        raise ConfigError("Strip program must not be empty.")

    return BuildConfig(
        library_paths=paths,
        strip=strip,
        strip_program=program,
        output=output,
        write_dockerfile=write_dockerfile,
    )


def _resolve_library_paths(library_paths: list[pathlib.Path]) -> tuple[pathlib.Path, ...]:
    """Validate a user-supplied library search list.

    Duplicates are dropped, keeping the first occurrence so precedence is
    unchanged.

    :param library_paths: Directories in search order.
    :returns: Validated search list.
    :raises ConfigError: If the list is empty or contains relative paths.
    """

    if len(library_paths) == 0:
        raise ConfigError("Library search list must not be empty.")

    seen: set[pathlib.Path] = set()
    out: list[pathlib.Path] = []
    for p in library_paths:
        path: pathlib.Path = pathlib.Path(p)
        if path.is_absolute() is False:
            raise ConfigError(f"Library search path must be absolute: {path}")
        if path in seen:
            continue
        seen.add(path)
        out.append(path)
    return tuple(out)
