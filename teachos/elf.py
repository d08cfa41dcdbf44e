"""ELF executable file and program headers."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import ClassVar

ELF_MAGIC = 0x464C457F  # "\x7FELF" read little-endian

ELF_PROG_LOAD = 1

ELF_PROG_FLAG_EXEC = 1
ELF_PROG_FLAG_WRITE = 2
ELF_PROG_FLAG_READ = 4


class ElfFormatError(ValueError):
    """Raised for data that is not a well-formed ELF image."""


@dataclass
class ProgramHeader:
    """One program section header."""

    type: int = 0
    off: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: int = 0
    align: int = 0

    FORMAT: ClassVar[str] = "<8I"
    SIZE: ClassVar[int] = struct.calcsize("<8I")

    @property
    def is_load(self) -> bool:
        """True for a loadable segment."""
        return self.type == ELF_PROG_LOAD

    @classmethod
    def unpack(cls, data: bytes) -> ProgramHeader:
        """Decode a program header from the start of data."""
        if len(data) < cls.SIZE:
            raise ElfFormatError("truncated program header")
        return cls(*struct.unpack_from(cls.FORMAT, data))

    def pack(self) -> bytes:
        """Encode the program header."""
        return struct.pack(
            self.FORMAT,
            self.type,
            self.off,
            self.vaddr,
            self.paddr,
            self.filesz,
            self.memsz,
            self.flags,
            self.align,
        )


@dataclass
class ElfHeader:
    """The ELF file header."""

    magic: int = ELF_MAGIC
    elf: bytes = bytes(12)
    type: int = 0
    machine: int = 0
    version: int = 0
    entry: int = 0
    phoff: int = 0
    shoff: int = 0
    flags: int = 0
    ehsize: int = 0
    phentsize: int = 0
    phnum: int = 0
    shentsize: int = 0
    shnum: int = 0
    shstrndx: int = 0

    FORMAT: ClassVar[str] = "<I12sHHIIIIIHHHHHH"
    SIZE: ClassVar[int] = struct.calcsize("<I12sHHIIIIIHHHHHH")

    @classmethod
    def unpack(cls, data: bytes) -> ElfHeader:
        """Decode and check the file header at the start of data."""
        if len(data) < cls.SIZE:
            raise ElfFormatError("truncated ELF header")
        header = cls(*struct.unpack_from(cls.FORMAT, data))
        if header.magic != ELF_MAGIC:
            raise ElfFormatError("bad ELF magic")
        return header

    def pack(self) -> bytes:
        """Encode the file header."""
        if len(self.elf) > 12:
            raise ElfFormatError("ident field longer than 12 bytes")
        return struct.pack(
            self.FORMAT,
            self.magic,
            bytes(self.elf),
            self.type,
            self.machine,
            self.version,
            self.entry,
            self.phoff,
            self.shoff,
            self.flags,
            self.ehsize,
            self.phentsize,
            self.phnum,
            self.shentsize,
            self.shnum,
            self.shstrndx,
        )

    def program_headers(self, data: bytes) -> Iterator[ProgramHeader]:
        """Yield the program headers found in the whole file image."""
        for index in range(self.phnum):
            start = self.phoff + index * ProgramHeader.SIZE
            chunk = data[start:start + ProgramHeader.SIZE]
            if len(chunk) < ProgramHeader.SIZE:
                raise ElfFormatError(f"program header {index} lies outside the file")
            yield ProgramHeader.unpack(chunk)