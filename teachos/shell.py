"""Command-line parser for the shell: tokens, command trees and redirections."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Union

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"
MAXARGS = 10
"""An exec command holds fewer than this many words."""


class OpenFlag(enum.IntFlag):
    """Modes for opening a file."""

    O_RDONLY = 0x000
    O_WRONLY = 0x001
    O_RDWR = 0x002
    O_CREATE = 0x200


class ShellSyntaxError(ValueError):
    """Raised for a command line the shell cannot parse."""

    def __init__(self, message: str, leftovers: Optional[str] = None) -> None:
        super().__init__(message if leftovers is None else f"{message}: leftovers: {leftovers}")
        self.leftovers = leftovers


@dataclass
class ExecCmd:
    """Run a program with its arguments; an empty argv does nothing."""

    argv: list[str] = field(default_factory=list)


@dataclass
class RedirCmd:
    """Run cmd with file descriptor fd reopened on file."""

    cmd: "Command"
    file: str
    mode: OpenFlag
    fd: int


@dataclass
class PipeCmd:
    """Connect the output of left to the input of right."""

    left: "Command"
    right: "Command"


@dataclass
class ListCmd:
    """Run left to completion, then right."""

    left: "Command"
    right: "Command"


@dataclass
class BackCmd:
    """Run cmd without waiting for it."""

    cmd: "Command"


Command = Union[ExecCmd, RedirCmd, PipeCmd, ListCmd, BackCmd]

_Token = tuple[str, str]


class _Scanner:
    def __init__(self, line: str) -> None:
        end = line.find("\0")
        self.text = line if end < 0 else line[:end]
        self.pos = 0

    def _skip(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in WHITESPACE:
            self.pos += 1

    def peek(self, toks: str) -> bool:
        self._skip()
        return self.pos < len(self.text) and self.text[self.pos] in toks

    def next(self) -> Optional[_Token]:
        self._skip()
        if self.pos >= len(self.text):
            return None
        c = self.text[self.pos]
        if c in "|();&<":
            self.pos += 1
            token = (c, c)
        elif c == ">":
            if self.text.startswith(">>", self.pos):
                self.pos += 2
                token = (">>", ">>")
            else:
                self.pos += 1
                token = (">", ">")
        else:
            start = self.pos
            while (
                self.pos < len(self.text)
                and self.text[self.pos] not in WHITESPACE
                and self.text[self.pos] not in SYMBOLS
            ):
                self.pos += 1
            token = ("word", self.text[start:self.pos])
        self._skip()
        return token

    @property
    def rest(self) -> str:
        return self.text[self.pos:]


def tokenize(line: str) -> list[tuple[str, str]]:
    """Split a line into (kind, text) tokens; kind is "word" or the symbol itself."""
    scanner = _Scanner(line)
    tokens = []
    while (token := scanner.next()) is not None:
        tokens.append(token)
    return tokens


def _parse_line(sc: _Scanner) -> Command:
    cmd = _parse_pipe(sc)
    while sc.peek("&"):
        sc.next()
        cmd = BackCmd(cmd)
    if sc.peek(";"):
        sc.next()
        cmd = ListCmd(cmd, _parse_line(sc))
    return cmd


def _parse_pipe(sc: _Scanner) -> Command:
    cmd = _parse_exec(sc)
    if sc.peek("|"):
        sc.next()
        cmd = PipeCmd(cmd, _parse_pipe(sc))
    return cmd


def _parse_redirs(cmd: Command, sc: _Scanner) -> Command:
    while sc.peek("<>"):
        kind, _ = sc.next()  # type: ignore[misc]
        target = sc.next()
        if target is None or target[0] != "word":
            raise ShellSyntaxError("missing file for redirection")
        if kind == "<":
            cmd = RedirCmd(cmd, target[1], OpenFlag.O_RDONLY, 0)
        else:
            # ">>" opens the same way as ">".
            cmd = RedirCmd(cmd, target[1], OpenFlag.O_WRONLY | OpenFlag.O_CREATE, 1)
    return cmd


def _parse_block(sc: _Scanner) -> Command:
    if not sc.peek("("):
        raise ShellSyntaxError("parseblock")
    sc.next()
    cmd = _parse_line(sc)
    if not sc.peek(")"):
        raise ShellSyntaxError("syntax - missing )")
    sc.next()
    return _parse_redirs(cmd, sc)


def _parse_exec(sc: _Scanner) -> Command:
    if sc.peek("("):
        return _parse_block(sc)
    exec_cmd = ExecCmd()
    ret = _parse_redirs(exec_cmd, sc)
    while not sc.peek("|)&;"):
        token = sc.next()
        if token is None:
            break
        if token[0] != "word":
            raise ShellSyntaxError("syntax")
        exec_cmd.argv.append(token[1])
        if len(exec_cmd.argv) >= MAXARGS:
            raise ShellSyntaxError("too many args")
        ret = _parse_redirs(ret, sc)
    return ret


def parse_command(line: str) -> Command:
    """Parse a whole command line into a command tree."""
    sc = _Scanner(line)
    cmd = _parse_line(sc)
    sc.peek("")
    if sc.rest:
        raise ShellSyntaxError("syntax", leftovers=sc.rest)
    return cmd