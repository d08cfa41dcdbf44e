"""Simulated components of a small teaching operating system kernel.

Covers page tables, descriptors, ELF headers, locks, system-call tracing,
a heap allocator, a shell parser and a word counter.
"""

__version__ = "0.1.0"