"""x86 memory-management constants, address arithmetic and descriptors."""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields

_MASK32 = 0xFFFFFFFF

# Memory layout
EXTMEM = 0x100000
PHYSTOP = 0xE000000
DEVSPACE = 0xFE000000
KERNBASE = 0x80000000
KERNLINK = KERNBASE + EXTMEM

# Eflags register
FL_CF = 0x00000001
FL_PF = 0x00000004
FL_AF = 0x00000010
FL_ZF = 0x00000040
FL_SF = 0x00000080
FL_TF = 0x00000100
FL_IF = 0x00000200
FL_DF = 0x00000400
FL_OF = 0x00000800
FL_IOPL_MASK = 0x00003000
FL_IOPL_0 = 0x00000000
FL_IOPL_1 = 0x00001000
FL_IOPL_2 = 0x00002000
FL_IOPL_3 = 0x00003000
FL_NT = 0x00004000
FL_RF = 0x00010000
FL_VM = 0x00020000
FL_AC = 0x00040000
FL_VIF = 0x00080000
FL_VIP = 0x00100000
FL_ID = 0x00200000

# Control register flags
CR0_PE = 0x00000001
CR0_MP = 0x00000002
CR0_EM = 0x00000004
CR0_TS = 0x00000008
CR0_ET = 0x00000010
CR0_NE = 0x00000020
CR0_WP = 0x00010000
CR0_AM = 0x00040000
CR0_NW = 0x20000000
CR0_CD = 0x40000000
CR0_PG = 0x80000000
CR4_PSE = 0x00000010

# Segment selectors
SEG_KCODE = 1
SEG_KDATA = 2
SEG_KCPU = 3
SEG_UCODE = 4
SEG_UDATA = 5
SEG_TSS = 6
NSEGS = 7

DPL_USER = 0x3

# Application segment type bits
STA_X = 0x8
STA_E = 0x4
STA_C = 0x4
STA_W = 0x2
STA_R = 0x2
STA_A = 0x1

# System segment type bits
STS_T16A = 0x1
STS_LDT = 0x2
STS_T16B = 0x3
STS_CG16 = 0x4
STS_TG = 0x5
STS_IG16 = 0x6
STS_TG16 = 0x7
STS_T32A = 0x9
STS_T32B = 0xB
STS_CG32 = 0xC
STS_IG32 = 0xE
STS_TG32 = 0xF

# Paging
NPDENTRIES = 1024
NPTENTRIES = 1024
PGSIZE = 4096
PGSHIFT = 12
PTXSHIFT = 12
PDXSHIFT = 22

PTE_P = 0x001
PTE_W = 0x002
PTE_U = 0x004
PTE_PWT = 0x008
PTE_PCD = 0x010
PTE_A = 0x020
PTE_D = 0x040
PTE_PS = 0x080
PTE_MBZ = 0x180


class KernelPanic(RuntimeError):
    """Raised where the kernel would stop with a panic."""


def pdx(va: int) -> int:
    """Page-directory index of a virtual address."""
    return ((va & _MASK32) >> PDXSHIFT) & 0x3FF


def ptx(va: int) -> int:
    """Page-table index of a virtual address."""
    return ((va & _MASK32) >> PTXSHIFT) & 0x3FF


def pgaddr(d: int, t: int, o: int) -> int:
    """Build a virtual address from directory index, table index and offset."""
    return ((d << PDXSHIFT) | (t << PTXSHIFT) | o) & _MASK32


def pg_round_up(sz: int) -> int:
    """Round up to a page boundary, wrapping at 32 bits."""
    return ((sz + PGSIZE - 1) & ~(PGSIZE - 1)) & _MASK32


def pg_round_down(a: int) -> int:
    """Round down to a page boundary."""
    return (a & ~(PGSIZE - 1)) & _MASK32


def pte_addr(pte: int) -> int:
    """Physical address held in a page-table entry."""
    return pte & _MASK32 & ~0xFFF


def pte_flags(pte: int) -> int:
    """Flag bits of a page-table entry."""
    return pte & 0xFFF


def v2p(a: int) -> int:
    """Kernel virtual address to physical address."""
    return (a - KERNBASE) & _MASK32


def p2v(a: int) -> int:
    """Physical address to kernel virtual address."""
    return (a + KERNBASE) & _MASK32


def asm_segment(type_: int, base: int, lim: int) -> bytes:
    """Eight descriptor bytes as the boot assembler lays them out."""
    return struct.pack(
        "<HHBBBB",
        (lim >> 12) & 0xFFFF,
        base & 0xFFFF,
        (base >> 16) & 0xFF,
        0x90 | type_,
        0xC0 | ((lim >> 28) & 0xF),
        (base >> 24) & 0xFF,
    )


def _widths(obj_or_cls) -> list[tuple[str, int]]:
    return [(f.name, f.metadata["bits"]) for f in fields(obj_or_cls)]


def _field(bits: int):
    from dataclasses import field

    return field(default=0, metadata={"bits": bits})


def _mask_fields(obj) -> None:
    for name, bits in _widths(obj):
        setattr(obj, name, getattr(obj, name) & ((1 << bits) - 1))


def _pack_bits(obj) -> bytes:
    value = 0
    shift = 0
    for name, bits in _widths(obj):
        value |= (getattr(obj, name) & ((1 << bits) - 1)) << shift
        shift += bits
    return struct.pack("<Q", value)


def _unpack_bits(cls, data: bytes) -> dict[str, int]:
    if len(data) != 8:
        raise ValueError(f"descriptor must be 8 bytes, got {len(data)}")
    (value,) = struct.unpack("<Q", data)
    result = {}
    for name, bits in _widths(cls):
        result[name] = value & ((1 << bits) - 1)
        value >>= bits
    return result


@dataclass
class SegmentDescriptor:
    """A GDT segment descriptor with its bit fields."""

    lim_15_0: int = _field(16)
    base_15_0: int = _field(16)
    base_23_16: int = _field(8)
    type: int = _field(4)
    s: int = _field(1)
    dpl: int = _field(2)
    p: int = _field(1)
    lim_19_16: int = _field(4)
    avl: int = _field(1)
    rsv1: int = _field(1)
    db: int = _field(1)
    g: int = _field(1)
    base_31_24: int = _field(8)

    def __post_init__(self) -> None:
        _mask_fields(self)

    @classmethod
    def normal(cls, type_: int, base: int, lim: int, dpl: int) -> SegmentDescriptor:
        """A 32-bit segment with 4 KiB granularity."""
        base &= _MASK32
        lim &= _MASK32
        return cls(
            lim_15_0=(lim >> 12) & 0xFFFF,
            base_15_0=base & 0xFFFF,
            base_23_16=(base >> 16) & 0xFF,
            type=type_,
            s=1,
            dpl=dpl,
            p=1,
            lim_19_16=lim >> 28,
            avl=0,
            rsv1=0,
            db=1,
            g=1,
            base_31_24=base >> 24,
        )

    @classmethod
    def sixteen_bit(cls, type_: int, base: int, lim: int, dpl: int) -> SegmentDescriptor:
        """A segment with byte granularity, as used for the task state."""
        base &= _MASK32
        lim &= _MASK32
        return cls(
            lim_15_0=lim & 0xFFFF,
            base_15_0=base & 0xFFFF,
            base_23_16=(base >> 16) & 0xFF,
            type=type_,
            s=1,
            dpl=dpl,
            p=1,
            lim_19_16=lim >> 16,
            avl=0,
            rsv1=0,
            db=1,
            g=0,
            base_31_24=base >> 24,
        )

    @property
    def base(self) -> int:
        """The full 32-bit base address."""
        return self.base_15_0 | (self.base_23_16 << 16) | (self.base_31_24 << 24)

    def pack(self) -> bytes:
        """The eight bytes of the descriptor."""
        return _pack_bits(self)

    @classmethod
    def unpack(cls, data: bytes) -> SegmentDescriptor:
        """Decode eight descriptor bytes."""
        return cls(**_unpack_bits(cls, data))


@dataclass
class GateDescriptor:
    """An interrupt or trap gate in the IDT."""

    off_15_0: int = _field(16)
    cs: int = _field(16)
    args: int = _field(5)
    rsv1: int = _field(3)
    type: int = _field(4)
    s: int = _field(1)
    dpl: int = _field(2)
    p: int = _field(1)
    off_31_16: int = _field(16)

    def __post_init__(self) -> None:
        _mask_fields(self)

    @classmethod
    def make(cls, istrap: bool, sel: int, off: int, dpl: int) -> GateDescriptor:
        """A present gate; trap gates leave interrupts enabled."""
        off &= _MASK32
        return cls(
            off_15_0=off & 0xFFFF,
            cs=sel,
            args=0,
            rsv1=0,
            type=STS_TG32 if istrap else STS_IG32,
            s=0,
            dpl=dpl,
            p=1,
            off_31_16=off >> 16,
        )

    @property
    def offset(self) -> int:
        """The full 32-bit handler offset."""
        return self.off_15_0 | (self.off_31_16 << 16)

    def pack(self) -> bytes:
        """The eight bytes of the gate."""
        return _pack_bits(self)

    @classmethod
    def unpack(cls, data: bytes) -> GateDescriptor:
        """Decode eight gate bytes."""
        return cls(**_unpack_bits(cls, data))