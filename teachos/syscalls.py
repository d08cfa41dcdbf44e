"""System call numbers, dispatch and the tracing of system calls."""

from __future__ import annotations

import enum
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Optional, TextIO

from .layout import KernelPanic


class Syscall(enum.IntEnum):
    """System call numbers."""

    FORK = 1
    EXIT = 2
    WAIT = 3
    PIPE = 4
    READ = 5
    KILL = 6
    EXEC = 7
    FSTAT = 8
    CHDIR = 9
    DUP = 10
    GETPID = 11
    SBRK = 12
    SLEEP = 13
    UPTIME = 14
    OPEN = 15
    WRITE = 16
    MKNOD = 17
    UNLINK = 18
    LINK = 19
    MKDIR = 20
    CLOSE = 21
    TRACE = 22
    T_TOGGLE = 23
    EXCID = 24


def syscall_name(num: int) -> Optional[str]:
    """The name of system call num, or None for an unknown number."""
    try:
        return Syscall(num).name.lower()
    except ValueError:
        return None


@dataclass
class Process:
    """The parts of a process that system call dispatch looks at."""

    pid: int
    name: str
    args: list[int] = field(default_factory=list)
    eax: int = 0
    tracer: bool = False

    def arg(self, n: int) -> Optional[int]:
        """The nth integer argument, or None when it cannot be fetched."""
        if 0 <= n < len(self.args):
            return self.args[n]
        return None


Handler = Callable[[Process], int]


class Tracer:
    """Dispatches system calls to handlers, printing a trace when enabled."""

    def __init__(
        self,
        handlers: Mapping[int, Handler],
        output: Optional[TextIO] = None,
    ) -> None:
        self.handlers: dict[int, Handler] = {
            int(Syscall.TRACE): lambda proc: 0,
            int(Syscall.T_TOGGLE): self._sys_t_toggle,
            int(Syscall.EXCID): self._sys_excid,
            int(Syscall.GETPID): lambda proc: proc.pid,
        }
        self.handlers.update({int(num): handler for num, handler in handlers.items()})
        self.enabled = False
        self.exclusive = 0
        self.shell_reading_command = False
        self._output = output

    def toggle(self, on: bool) -> None:
        """Turn tracing of every process on or off."""
        self.enabled = bool(on)

    def set_exclusive(self, num: int) -> None:
        """Trace only system call num until the next exit; 0 traces everything."""
        self.exclusive = int(num)

    def _sys_t_toggle(self, proc: Process) -> int:
        on_off = proc.arg(0)
        if on_off is None:
            return -1
        self.toggle(bool(on_off))
        return 0

    def _sys_excid(self, proc: Process) -> int:
        sysid = proc.arg(0)
        if sysid is None:
            return -1
        self.set_exclusive(sysid)
        return 0

    def _write(self, text: str) -> None:
        (self._output if self._output is not None else sys.stdout).write(text)

    def _call(self, proc: Process, num: int) -> int:
        handler = self.handlers.get(num)
        if handler is None:
            raise KernelPanic(f"no handler for sys call {num}")
        return handler(proc)

    @staticmethod
    def _prefix(proc: Process, name: str) -> str:
        return f"TRACE: pid = {proc.pid} | command name = {proc.name} | syscall = {name}"

    def _traced_call(self, proc: Process, num: int, name: str) -> int:
        self._write(self._prefix(proc, name))
        value = self._call(proc, num)
        self._write(f" | return value = {value}\n")
        proc.eax = value
        return value

    def dispatch(self, proc: Process, num: int) -> int:
        """Run system call num for proc, store the result in proc.eax and return it."""
        if not (proc.tracer or self.enabled):
            handler = self.handlers.get(num)
            if num > 0 and handler is not None:
                proc.eax = handler(proc)
            else:
                self._write(f"{proc.pid} {proc.name}: unknown sys call {num}\n")
                proc.eax = -1
            return proc.eax

        name = syscall_name(num)
        if name is None:
            return proc.eax

        if self.exclusive:
            if num == Syscall.EXIT:
                self.exclusive = 0
            if num == self.exclusive:
                self._traced_call(proc, num, name)
            else:
                proc.eax = self._call(proc, num)

        if self.exclusive == 0:
            if proc.name.startswith("sh"):
                self._traced_call(proc, num, name)
                if self.shell_reading_command or num == Syscall.EXEC:
                    self._traced_call(proc, num, name)
                    return proc.eax
            elif num == Syscall.WRITE:
                value = self._call(proc, num)
                self._write(f"{self._prefix(proc, name)} | return value = {value}\n")
                proc.eax = value
            else:
                self._write(self._prefix(proc, name))
                value = self._call(proc, num)
                self._write(f" | return value = {value}\n")
                if num == Syscall.EXIT:
                    self._write("\n")
                proc.eax = value
        return proc.eax