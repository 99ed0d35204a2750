"""Shared-library dependency resolution.

:class:`LibraryLocator` finds a declared library name on an ordered list of
directories. :class:`DependencyResolver` walks ``DT_NEEDED`` entries
breadth-first, starting from a set of binaries, and collects every library
into a :class:`DependencyClosure` keyed by declared name.
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
import logging
import os
import pathlib
import time

from docktar.elf import ElfError, read_needed_libraries

ImportReader = Callable[[pathlib.Path], Sequence[str]]


class ResolutionError(RuntimeError):
    """Raised when the dependency closure cannot be computed."""


class LibraryNotFoundError(ResolutionError):
    """Raised when a declared library is not found on the search list.

    :ivar name: Declared library name.
    :ivar importer: Binary that imported the library, when known.
    """

    def __init__(self, name: str, importer: pathlib.Path | None = None) -> None:
        self.name: str = name
        self.importer: pathlib.Path | None = importer
        message: str = f"Did not find library {name}"
        if importer is not None:
            message = f"{message} (needed by {importer})"
        super().__init__(message)


class ImportListError(ResolutionError):
    """Raised when a binary's import list cannot be read.

    :ivar path: Binary whose dynamic section could not be read.
    """

    def __init__(self, path: pathlib.Path, reason: str) -> None:
        self.path: pathlib.Path = path
        super().__init__(f"Cannot read ELF imports of {path}: {reason}")


class InvalidLibraryNameError(ResolutionError):
    """Raised when a declared library name points outside its search directory.

    :ivar name: Declared library name.
    """

    def __init__(self, name: str, directory: pathlib.Path) -> None:
        self.name: str = name
        super().__init__(f"Library name {name!r} escapes search directory {directory}")


@dataclass(frozen=True, slots=True)
class ResolvedLibrary:
    """One shared library found during closure computation.

    :ivar name: Declared name as imported (e.g. ``libc.so.6``).
    :ivar path: Search directory joined with ``name``; used as archive path.
    :ivar real_path: Canonical path of the library file; used as content source.
    """

    name: str
    path: pathlib.Path
    real_path: pathlib.Path


class DependencyClosure:
    """Insertion-ordered, add-only mapping of declared name to library."""

    def __init__(self) -> None:
        self._libraries: dict[str, ResolvedLibrary] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._libraries

    def __len__(self) -> int:
        return len(self._libraries)

    def __iter__(self) -> Iterator[ResolvedLibrary]:
        return iter(self._libraries.values())

    def __getitem__(self, name: str) -> ResolvedLibrary:
        return self._libraries[name]

    def add(self, library: ResolvedLibrary) -> None:
        """Insert a library.

        :param library: Newly resolved library.
        :raises ValueError: If the name is already present.
        """

        if library.name in self._libraries:
            raise ValueError(f"Library {library.name} is already in the closure")
        self._libraries[library.name] = library

    def names(self) -> list[str]:
        return list(self._libraries.keys())


class LibraryLocator:
    """Find libraries by probing search directories in order.

    :param library_paths: Directories to search; earlier entries take precedence.
    """

    def __init__(self, library_paths: Iterable[pathlib.Path]) -> None:
        self.library_paths: tuple[pathlib.Path, ...] = tuple(pathlib.Path(p) for p in library_paths)

    def locate(self, name: str) -> ResolvedLibrary:
        """Locate a declared library name.

        :param name: Declared library name.
        :returns: The library found in the first matching directory.
        :raises LibraryNotFoundError: If no directory holds the library.
        :raises InvalidLibraryNameError: If ``name`` climbs out of a search directory.
        """

        rel: str = name.lstrip("/")
        for directory in self.library_paths:
            base: str = os.path.normpath(directory)
            candidate: pathlib.Path = pathlib.Path(os.path.normpath(os.path.join(base, rel)))
            if candidate == pathlib.Path(base) or candidate.is_relative_to(base) is False:
                raise InvalidLibraryNameError(name, directory)
            actual: pathlib.Path = pathlib.Path(os.path.realpath(candidate))
            if actual.is_file() is True:
                return ResolvedLibrary(name=name, path=candidate, real_path=actual)

        raise LibraryNotFoundError(name)


class DependencyResolver:
    """Compute the transitive closure of shared libraries for binaries.

    :param locator: Library locator.
    :param read_imports: Callable returning the declared imports of a file;
        defaults to the ELF ``DT_NEEDED`` reader.
    :param logger: Optional logger for progress output.
    """

    def __init__(
        self,
        locator: LibraryLocator,
        *,
        read_imports: ImportReader | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.locator: LibraryLocator = locator
        self.read_imports: ImportReader = read_needed_libraries if read_imports is None else read_imports
        self.logger: logging.Logger = logging.getLogger("docktar") if logger is None else logger

    def resolve(self, binaries: Iterable[pathlib.Path]) -> DependencyClosure:
        """Resolve every library needed by ``binaries``.

        :param binaries: Canonical paths of dynamically linked binaries.
        :returns: The complete closure.
        :raises ResolutionError: If any import list is unreadable or any
            library cannot be located.
        """

        closure: DependencyClosure = DependencyClosure()

        batch: list[pathlib.Path] = []
        seen_binaries: set[pathlib.Path] = set()
        for b in binaries:
            path: pathlib.Path = pathlib.Path(b)
            if path in seen_binaries:
                continue
            seen_binaries.add(path)
            batch.append(path)

        depth: int = 0
        while len(batch) > 0:
            next_batch: list[pathlib.Path] = []
            for binary in batch:
                next_batch.extend(self._resolve_imports(binary, closure))

            if self.logger.isEnabledFor(logging.DEBUG) is True:
                self.logger.debug(
                    f"docktar: resolve depth={depth} parsed={len(batch)} new={len(next_batch)}"
                )
            batch = next_batch
            depth += 1

        return closure

    def _resolve_imports(self, binary: pathlib.Path, closure: DependencyClosure) -> list[pathlib.Path]:
        """Resolve the not-yet-seen imports of one binary.

        :param binary: Binary or library whose imports are read.
        :param closure: Closure to extend.
        :returns: Canonical paths of newly added libraries.
        """

        try:
            names: Sequence[str] = self.read_imports(binary)
        except (ElfError, OSError) as exc:
            raise ImportListError(binary, str(exc)) from exc

        discovered: list[pathlib.Path] = []
        for name in names:
            if name in closure:
                continue
            try:
                lib: ResolvedLibrary = self.locator.locate(name)
            except LibraryNotFoundError as exc:
                raise LibraryNotFoundError(name, importer=binary) from exc

            closure.add(lib)
            discovered.append(lib.real_path)
            if self.logger.isEnabledFor(logging.DEBUG) is True:
                self.logger.debug(f"docktar: {binary.name} -> {name} ({lib.path} => {lib.real_path})")

        return discovered


def resolve_dependencies(
    binaries: Iterable[pathlib.Path],
    *,
    library_paths: Iterable[pathlib.Path],
    logger: logging.Logger | None = None,
    locator: LibraryLocator | None = None,
) -> DependencyClosure:
    """Resolve the library closure of ``binaries`` on ``library_paths``.

    :param binaries: Canonical binary paths.
    :param library_paths: Ordered library search directories.
    :param logger: Optional logger for progress output.
    :param locator: Optional locator override (``library_paths`` is then unused).
    :returns: The complete closure.
    :raises ResolutionError: If resolution fails.
    """

    if logger is None:
        logger = logging.getLogger("docktar")
    if locator is None:
        locator = LibraryLocator(library_paths)

    bins: list[pathlib.Path] = [pathlib.Path(b) for b in binaries]
    logger.info(f"docktar: resolving libraries for {len(bins)} binaries")

    t0: float = time.perf_counter()
    closure: DependencyClosure = DependencyResolver(locator, logger=logger).resolve(bins)
    t1: float = time.perf_counter()

    logger.info(f"docktar: resolved {len(closure)} libraries in {t1 - t0:.2f}s")
    return closure
