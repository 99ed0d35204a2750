import pathlib

import pytest

from docktar.config import DEFAULT_LIBRARY_PATHS, ConfigError, resolve_build_config


def test_defaults() -> None:
    cfg = resolve_build_config()
    assert cfg.library_paths == DEFAULT_LIBRARY_PATHS
    assert len(cfg.library_paths) == 9
    assert cfg.library_paths[0] == pathlib.Path("/lib")
    assert cfg.library_paths[-1] == pathlib.Path("/usr/local/lib/x86_64-linux-gnu")
    assert cfg.output == "docker.tar"
    assert cfg.strip is False
    assert cfg.strip_program == "strip"
    assert cfg.to_stdout is False


def test_library_paths_keep_order_and_drop_duplicates() -> None:
    cfg = resolve_build_config(
        library_paths=[pathlib.Path("/opt/lib"), pathlib.Path("/lib"), pathlib.Path("/opt/lib")],
    )
    assert cfg.library_paths == (pathlib.Path("/opt/lib"), pathlib.Path("/lib"))


def test_relative_library_path_rejected() -> None:
    with pytest.raises(ConfigError, match="absolute"):
        resolve_build_config(library_paths=[pathlib.Path("lib")])


def test_empty_library_paths_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_build_config(library_paths=[])


def test_stdout_output() -> None:
    assert resolve_build_config(output="-").to_stdout is True


def test_empty_output_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_build_config(output="")


@pytest.mark.parametrize("output", [".", "/", "..", "dist/.."])
def test_output_without_file_name_rejected(output: str) -> None:
    with pytest.raises(ConfigError, match="does not name a file"):
        resolve_build_config(output=output)
