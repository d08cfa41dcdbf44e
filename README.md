# teachos

A Python model of the core pieces of a small x86 teaching kernel. The hardware
is simulated, so you can look at how the kernel's data structures behave and
test them without running a machine.

## What is included

- `teachos.layout`: memory-layout, paging and descriptor constants and the
  address helpers `pdx`, `ptx`, `pgaddr`, `pg_round_up`, `pg_round_down`,
  `pte_addr`, `pte_flags`, `v2p` and `p2v`. It packs and unpacks segment
  descriptors (`SegmentDescriptor.normal`, `SegmentDescriptor.sixteen_bit`)
  and interrupt/trap gates (`GateDescriptor.make`), builds the boot-time
  descriptor bytes with `asm_segment`, and defines `KernelPanic`, the
  exception raised wherever the kernel would panic.
- `teachos.elf`: reads and writes ELF file headers and program headers
  (`ElfHeader`, `ProgramHeader`). `ElfHeader.program_headers` yields the
  program headers of a whole file image. Malformed data raises
  `ElfFormatError`.
- `teachos.strings`: string and memory routines with their C meaning, over
  `bytes` or `str`: `memcmp`, `strncmp`, `strcmp`, `strncpy`, `safestrcpy`,
  `strlen`, `strchr` (returns an index or `None`), `atoi` and `gets` (reads
  one line from a binary stream).
- `teachos.umalloc`: `Allocator`, a first-fit `malloc`/`free` heap over a
  circular free list. The heap grows in steps of at least 4096 header units,
  up to a byte limit. `malloc` returns an address, or `None` when the heap is
  full. `free_blocks` lists the free blocks.
- `teachos.vm`: `PhysicalMemory`, a pool of simulated page frames, and
  `AddressSpace`, a two-level page table kept in that memory. An address
  space supports kernel mappings (`setup_kernel`), page walks and mapping,
  growing and shrinking user memory (`alloc_user`, `dealloc_user`), copying
  (`copy`), loading (`init_user`, `load`) and `copy_out`. Running out of pages
  raises `MemoryError`.
- `teachos.shell`: the shell's tokenizer (`tokenize`) and parser
  (`parse_command`). The parser builds a tree of `ExecCmd`, `RedirCmd`,
  `PipeCmd`, `ListCmd` and `BackCmd`, with `OpenFlag` modes on redirections.
  Bad input raises `ShellSyntaxError`.
- `teachos.locks`: `SpinLock`, a thread-owned lock that can also be used as a
  context manager, and `SleepLock`, a long-term lock recorded against a pid.
- `teachos.syscalls`: the `Syscall` numbers, `syscall_name`, and `Tracer`.
  `Tracer` dispatches system calls for a `Process` to handlers you supply and
  prints a `TRACE:` line per call when tracing is on. `toggle` turns tracing
  on or off, and `set_exclusive` limits tracing to a single call. The
  `trace`, `t_toggle`, `excid` and `getpid` calls are handled by the tracer
  itself.
- `teachos.wc`: counts lines, words and bytes (`count`, `WordCount`) and
  provides a command-line entry point.

## What it does not do

This is a set of kernel components, not a kernel that boots. There is no file
system, no process table or scheduler, and no device access. The shell only
parses command lines; it runs nothing. `Tracer` only calls the handlers it is
given. ELF headers are decoded, but no program is executed.

## Installing

```
pip install .
```

## Examples

```python
from teachos.shell import parse_command

tree = parse_command("cat < in | grep x > out; echo done &\n")
print(tree)
```

```python
from teachos.vm import PhysicalMemory, AddressSpace

memory = PhysicalMemory(64)
space = AddressSpace(memory)
size = space.alloc_user(0, 8192)
space.copy_out(100, b"hello")
```

```python
import io
from teachos.syscalls import Process, Syscall, Tracer

out = io.StringIO()
tracer = Tracer({Syscall.FORK: lambda proc: 42}, out)
tracer.toggle(True)
tracer.dispatch(Process(pid=3, name="cat"), Syscall.FORK)
print(out.getvalue())
```

## Command line

Count the lines, words and bytes of files, or of standard input when no file
is named:

```
teachos-wc README.md
```

## Running the tests

```
pip install .[test]
pytest
```