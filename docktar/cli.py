"""Command line interface for docktar."""

import argparse
import logging
import pathlib
import sys

from docktar import __version__
from docktar.archive import ArchiveError
from docktar.builder import BuildError, build_archive
from docktar.config import DEFAULT_OUTPUT, BuildConfig, ConfigError, resolve_build_config
from docktar.inputs import InputResolutionError, InputSpec, resolve_input_specs
from docktar.resolver import ResolutionError


_LEVELS: tuple[int, ...] = (logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG)


def _log_level(*, verbose: int, quiet: int) -> int:
    """Map ``-v``/``-q`` counts to a logging level, INFO when neither is given."""

    idx: int = 2 + verbose - quiet
    return _LEVELS[max(0, min(idx, len(_LEVELS) - 1))]


def _configure_logging(level: int) -> logging.Logger:
    """Send docktar progress messages to stderr at ``level``."""

    logger: logging.Logger = logging.getLogger("docktar")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="docktar",
        description=(
            "Create a tar archive of binaries with all their dynamic libraries, "
            "ready to ADD into a FROM scratch image."
        ),
    )
    parser.add_argument(
        "files",
        nargs="*",
        metavar="SRC[:TARGET]",
        help=(
            "File, glob pattern or program name on PATH, optionally followed by "
            "':' and the path to use inside the archive."
        ),
    )
    parser.add_argument(
        "-s",
        "--strip",
        action="store_true",
        help="Strip binaries of debug symbols. Requires strip to be installed.",
    )
    parser.add_argument(
        "-d",
        "--dockerfile",
        action="store_true",
        help="Write Dockerfile next to tar. Ignored when using stdout.",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=DEFAULT_OUTPUT,
        help="Write archive to given file. Use value '-' for stdout.",
    )
    parser.add_argument(
        "-L",
        "--lib-path",
        dest="lib_paths",
        type=pathlib.Path,
        action="append",
        default=None,
        help=(
            "Library search directory. Pass multiple times; earlier directories win. "
            "Replaces the default search list."
        ),
    )
    parser.add_argument(
        "--strip-program",
        type=str,
        default=None,
        help="Program used to strip binaries (default: strip).",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging.",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass twice to only show errors.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the docktar CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)
    logger: logging.Logger = _configure_logging(_log_level(verbose=ns.verbose, quiet=ns.quiet))

    try:
        config: BuildConfig = resolve_build_config(
            library_paths=ns.lib_paths,
            strip=ns.strip,
            strip_program=ns.strip_program,
            output=ns.output,
            write_dockerfile=ns.dockerfile,
        )
        specs: list[InputSpec] = resolve_input_specs(ns.files, logger=logger)
        build_archive(specs=specs, config=config, logger=logger)
    except (ConfigError, InputResolutionError) as exc:
        logger.error(f"docktar: error: {exc}")
        parser.print_usage(sys.stderr)
        return 1
    except (ResolutionError, ArchiveError, BuildError, OSError) as exc:
        logger.error(f"docktar: error: {exc}")
        return 1

    return 0
