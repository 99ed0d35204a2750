"""Shared fixtures: synthetic ELF objects and library trees."""

from collections.abc import Callable, Sequence
import pathlib
import struct

import pytest


def make_elf(
    needed: Sequence[str] = (),
    *,
    soname: str | None = None,
    bits: int = 64,
    little: bool = True,
    dynamic: bool = True,
) -> bytes:
    """Build a minimal ELF shared object with the given dynamic entries.

    The file has one ``PT_LOAD`` segment mapping the whole file at vaddr 0
    and, when ``dynamic`` is set, a ``PT_DYNAMIC`` segment.
    """

    e: str = "<" if little is True else ">"
    if bits == 64:
        ehsize, phentsize = 64, 56
        ehdr_fmt: str = e + "16sHHIQQQIHHHHHH"
        dyn_fmt: str = e + "qQ"
    else:
        ehsize, phentsize = 52, 32
        ehdr_fmt = e + "16sHHIIIIIHHHHHH"
        dyn_fmt = e + "iI"

    phnum: int = 2 if dynamic is True else 1

    strtab: bytes = b"\x00"
    offsets: list[int] = []
    for name in needed:
        offsets.append(len(strtab))
        strtab += name.encode("utf-8") + b"\x00"
    soname_off: int | None = None
    if soname is not None:
        soname_off = len(strtab)
        strtab += soname.encode("utf-8") + b"\x00"

    strtab_off: int = ehsize + phnum * phentsize
    dyn_off: int = strtab_off + len(strtab)
    dyn_off += (-dyn_off) % 8

    entries: list[tuple[int, int]] = [(1, off) for off in offsets]
    if soname_off is not None:
        entries.append((14, soname_off))
    entries.extend([(5, strtab_off), (10, len(strtab)), (0, 0)])
    dyn: bytes = b"".join(struct.pack(dyn_fmt, tag, val) for tag, val in entries)

    total: int = dyn_off + len(dyn) if dynamic is True else strtab_off

    def phdr(p_type: int, offset: int, vaddr: int, filesz: int) -> bytes:
        if bits == 64:
            return struct.pack(e + "IIQQQQQQ", p_type, 4, offset, vaddr, vaddr, filesz, filesz, 8)
        return struct.pack(e + "IIIIIIII", p_type, offset, vaddr, vaddr, filesz, filesz, 4, 4)

    ident: bytes = b"\x7fELF" + bytes([2 if bits == 64 else 1, 1 if little is True else 2, 1]) + bytes(9)
    out: bytes = struct.pack(ehdr_fmt, ident, 3, 62, 1, 0, ehsize, 0, 0, ehsize, phentsize, phnum, 0, 0, 0)
    out += phdr(1, 0, 0, total)
    if dynamic is True:
        out += phdr(2, dyn_off, dyn_off, len(dyn))
        out += strtab
        out += bytes(dyn_off - len(out))
        out += dyn
    return out


@pytest.fixture
def elf_bytes() -> Callable[..., bytes]:
    return make_elf


@pytest.fixture
def write_elf(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Write a synthetic ELF file under ``tmp_path`` and return its path."""

    def _write(relpath: str, needed: Sequence[str] = (), **kwargs: object) -> pathlib.Path:
        path: pathlib.Path = tmp_path / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(make_elf(needed, **kwargs))  # type: ignore[arg-type]
        path.chmod(0o755)
        return path

    return _write
