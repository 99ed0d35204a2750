"""Minimal ELF dynamic-section reader.

Only what dependency resolution needs is parsed: the program headers (to find
``PT_DYNAMIC`` and map virtual addresses through ``PT_LOAD``) and the dynamic
table entries ``DT_NEEDED``, ``DT_SONAME``, ``DT_STRTAB`` and ``DT_STRSZ``.

Both ELF classes (32/64-bit) and both byte orders are supported.
"""

from dataclasses import dataclass
import pathlib
import struct

ELF_MAGIC: bytes = b"\x7fELF"

_ELFCLASS32: int = 1
_ELFCLASS64: int = 2
_ELFDATA2LSB: int = 1
_ELFDATA2MSB: int = 2

_PT_LOAD: int = 1
_PT_DYNAMIC: int = 2

_DT_NULL: int = 0
_DT_NEEDED: int = 1
_DT_STRTAB: int = 5
_DT_STRSZ: int = 10
_DT_SONAME: int = 14


class ElfError(ValueError):
    """Raised when a file is not a well-formed ELF object."""


@dataclass(frozen=True, slots=True)
class DynamicInfo:
    """Dynamic-linking metadata of an ELF object.

    :ivar soname: ``DT_SONAME`` value, if present.
    :ivar needed: ``DT_NEEDED`` entries in file order.
    """

    soname: str | None
    needed: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class _Layout:
    """Struct formats for one ELF class/byte-order combination."""

    endian: str
    phoff_fmt: str
    phoff_at: int
    phentsize_at: int
    phnum_at: int
    ph_offset_fmt: str
    ph_offset_at: int
    ph_vaddr_at: int
    ph_filesz_at: int
    dyn_tag_fmt: str
    dyn_val_fmt: str
    dyn_entsize: int
    header_size: int


_LAYOUT_64: dict[str, object] = {
    "phoff_fmt": "Q",
    "phoff_at": 32,
    "phentsize_at": 54,
    "phnum_at": 56,
    "ph_offset_fmt": "Q",
    "ph_offset_at": 8,
    "ph_vaddr_at": 16,
    "ph_filesz_at": 32,
    "dyn_tag_fmt": "q",
    "dyn_val_fmt": "Q",
    "dyn_entsize": 16,
    "header_size": 64,
}

_LAYOUT_32: dict[str, object] = {
    "phoff_fmt": "I",
    "phoff_at": 28,
    "phentsize_at": 42,
    "phnum_at": 44,
    "ph_offset_fmt": "I",
    "ph_offset_at": 4,
    "ph_vaddr_at": 8,
    "ph_filesz_at": 16,
    "dyn_tag_fmt": "i",
    "dyn_val_fmt": "I",
    "dyn_entsize": 8,
    "header_size": 52,
}


def _layout_for(data: bytes) -> _Layout:
    """Pick the struct layout from ``e_ident``.

    :param data: ELF file bytes.
    :returns: Layout for the file's class and byte order.
    :raises ElfError: If the identification bytes are not supported.
    """

    if len(data) < 16 or data[0:4] != ELF_MAGIC:
        raise ElfError("bad ELF magic")

    ei_class: int = data[4]
    ei_data: int = data[5]

    fields: dict[str, object]
    if ei_class == _ELFCLASS64:
        fields = _LAYOUT_64
    elif ei_class == _ELFCLASS32:
        fields = _LAYOUT_32
    else:
        raise ElfError(f"unsupported ELF class {ei_class}")

    endian: str
    if ei_data == _ELFDATA2LSB:
        endian = "<"
    elif ei_data == _ELFDATA2MSB:
        endian = ">"
    else:
        raise ElfError(f"unsupported ELF data encoding {ei_data}")

    layout: _Layout = _Layout(endian=endian, **fields)  # type: ignore[arg-type]
    if len(data) < layout.header_size:
        raise ElfError("truncated ELF header")
    return layout


def parse_dynamic_info(data: bytes) -> DynamicInfo:
    """Extract ``DT_SONAME`` and ``DT_NEEDED`` entries from ELF bytes.

    Objects without a ``PT_DYNAMIC`` segment (static executables, relocatable
    objects) yield an empty ``needed`` tuple.

    :param data: ELF file bytes.
    :returns: Parsed dynamic info.
    :raises ElfError: If the file is not ELF or its dynamic section is corrupt.
    """

    layout: _Layout = _layout_for(data)
    e: str = layout.endian

    try:
        e_phoff: int = struct.unpack_from(e + layout.phoff_fmt, data, layout.phoff_at)[0]
        e_phentsize: int = struct.unpack_from(e + "H", data, layout.phentsize_at)[0]
        e_phnum: int = struct.unpack_from(e + "H", data, layout.phnum_at)[0]
    except struct.error as exc:
        raise ElfError("truncated ELF header") from exc

    load_segs: list[tuple[int, int, int]] = []
    dyn_off: int | None = None
    dyn_size: int | None = None

    i: int = 0
    while i < e_phnum:
        ph_base: int = e_phoff + i * e_phentsize
        try:
            p_type: int = struct.unpack_from(e + "I", data, ph_base)[0]
            p_offset: int = struct.unpack_from(e + layout.ph_offset_fmt, data, ph_base + layout.ph_offset_at)[0]
            p_vaddr: int = struct.unpack_from(e + layout.ph_offset_fmt, data, ph_base + layout.ph_vaddr_at)[0]
            p_filesz: int = struct.unpack_from(e + layout.ph_offset_fmt, data, ph_base + layout.ph_filesz_at)[0]
        except struct.error as exc:
            raise ElfError(f"truncated program header {i}") from exc

        if p_type == _PT_LOAD:
            load_segs.append((p_vaddr, p_filesz, p_offset))
        elif p_type == _PT_DYNAMIC:
            dyn_off = p_offset
            dyn_size = p_filesz

        i += 1

    if dyn_off is None or dyn_size is None:
        return DynamicInfo(soname=None, needed=())

    dt_strtab: int | None = None
    dt_strsz: int | None = None
    dt_soname_off: int | None = None
    needed_offs: list[int] = []

    dyn_end: int = dyn_off + dyn_size
    pos: int = dyn_off
    while pos + layout.dyn_entsize <= dyn_end:
        try:
            d_tag: int = struct.unpack_from(e + layout.dyn_tag_fmt, data, pos)[0]
            d_val: int = struct.unpack_from(e + layout.dyn_val_fmt, data, pos + layout.dyn_entsize // 2)[0]
        except struct.error as exc:
            raise ElfError("truncated dynamic section") from exc

        if d_tag == _DT_NULL:
            break
        if d_tag == _DT_NEEDED:
            needed_offs.append(int(d_val))
        elif d_tag == _DT_STRTAB:
            dt_strtab = int(d_val)
        elif d_tag == _DT_STRSZ:
            dt_strsz = int(d_val)
        elif d_tag == _DT_SONAME:
            dt_soname_off = int(d_val)

        pos += layout.dyn_entsize

    if len(needed_offs) == 0 and dt_soname_off is None:
        return DynamicInfo(soname=None, needed=())
    if dt_strtab is None or dt_strsz is None:
        raise ElfError("dynamic section has no string table")

    strtab_off: int | None = None
    for vaddr, filesz, off0 in load_segs:
        if dt_strtab >= vaddr and dt_strtab < vaddr + filesz:
            strtab_off = off0 + (dt_strtab - vaddr)
            break

    if strtab_off is None or strtab_off >= len(data):
        raise ElfError("dynamic string table is outside of any loadable segment")

    strtab_end: int = min(strtab_off + dt_strsz, len(data))
    strtab: bytes = data[strtab_off:strtab_end]

    def read_cstr(off: int) -> str:
        if off < 0 or off >= len(strtab):
            raise ElfError(f"string offset {off} outside of dynamic string table")
        end: int = strtab.find(b"\x00", off)
        if end < 0:
            end = len(strtab)
        return strtab[off:end].decode("utf-8", errors="replace")

    soname: str | None = None
    if dt_soname_off is not None:
        s: str = read_cstr(dt_soname_off)
        if len(s) > 0:
            soname = s

    needed: list[str] = []
    for off_needed in needed_offs:
        s2: str = read_cstr(off_needed)
        if len(s2) > 0:
            needed.append(s2)

    return DynamicInfo(soname=soname, needed=tuple(needed))


def read_dynamic_info(path: pathlib.Path) -> DynamicInfo:
    """Read and parse the dynamic info of an ELF file on disk.

    :param path: File to inspect.
    :returns: Parsed dynamic info.
    :raises ElfError: If the file is not a well-formed ELF object.
    :raises OSError: If the file cannot be read.
    """

    data: bytes = pathlib.Path(path).read_bytes()
    try:
        return parse_dynamic_info(data)
    except ElfError as exc:
        raise ElfError(f"{path}: {exc}") from exc


def read_needed_libraries(path: pathlib.Path) -> tuple[str, ...]:
    """Return the ``DT_NEEDED`` names of an ELF file."""

    return read_dynamic_info(path).needed


def is_elf(path: pathlib.Path) -> bool:
    """Check the ELF magic bytes of a file.

    :param path: File to check.
    :returns: ``True`` if the file starts with the ELF magic.
    """

    try:
        with open(path, "rb") as f:
            return f.read(4) == ELF_MAGIC
    except OSError:
        return False


def is_dynamic_binary(path: pathlib.Path) -> bool:
    """Return ``True`` for ELF files that import at least one shared library.

    Files that are not ELF, or whose dynamic section cannot be parsed, are
    treated as plain data files.
    """

    if is_elf(path) is False:
        return False
    try:
        return len(read_needed_libraries(path)) > 0
    except ElfError:
        return False
