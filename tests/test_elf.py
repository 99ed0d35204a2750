import pathlib

import pytest

from docktar import elf


def test_parse_dynamic_info_64_little_endian(elf_bytes) -> None:
    info = elf.parse_dynamic_info(elf_bytes(["libc.so.6", "libm.so.6"], soname="libfoo.so.1"))
    assert info.needed == ("libc.so.6", "libm.so.6")
    assert info.soname == "libfoo.so.1"


def test_parse_dynamic_info_32_big_endian(elf_bytes) -> None:
    info = elf.parse_dynamic_info(elf_bytes(["libz.so.1"], bits=32, little=False))
    assert info.needed == ("libz.so.1",)
    assert info.soname is None


def test_static_object_has_no_imports(elf_bytes) -> None:
    info = elf.parse_dynamic_info(elf_bytes(dynamic=False))
    assert info.needed == ()
    assert info.soname is None


def test_non_elf_raises() -> None:
    with pytest.raises(elf.ElfError):
        elf.parse_dynamic_info(b"#!/bin/sh\necho hello\n")


def test_truncated_program_headers_raise(elf_bytes) -> None:
    data = elf_bytes(["libc.so.6"])
    with pytest.raises(elf.ElfError):
        elf.parse_dynamic_info(data[:80])


def test_unsupported_class_raises(elf_bytes) -> None:
    data = bytearray(elf_bytes(["libc.so.6"]))
    data[4] = 7
    with pytest.raises(elf.ElfError, match="class"):
        elf.parse_dynamic_info(bytes(data))


def test_read_dynamic_info_error_names_the_file(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "broken"
    path.write_bytes(b"\x7fELF\x02\x01\x01")
    with pytest.raises(elf.ElfError, match="broken"):
        elf.read_dynamic_info(path)


def test_is_dynamic_binary(tmp_path: pathlib.Path, write_elf) -> None:
    dynamic = write_elf("bin/tool", ["libc.so.6"])
    static = write_elf("bin/static", dynamic=False)
    no_imports = write_elf("lib/libempty.so", soname="libempty.so")
    text = tmp_path / "notes.txt"
    text.write_text("hello\n", encoding="utf-8")

    assert elf.is_dynamic_binary(dynamic) is True
    assert elf.is_dynamic_binary(static) is False
    assert elf.is_dynamic_binary(no_imports) is False
    assert elf.is_dynamic_binary(text) is False
    assert elf.is_dynamic_binary(tmp_path / "missing") is False
