"""Command-line client for the network daemon's command socket."""

from __future__ import annotations

import errno
import os
import re
import socket
import sys
from collections.abc import Sequence
from typing import TextIO

SOCKET_DIR = "/dev/socket"
DEFAULT_SOCKET = "netd"
BUFFER_SIZE = 4096

_LEADING_NUMBER = re.compile(r"[ \t\n\v\f\r]*[+-]?\d")
_CODE = re.compile(r"[ \t\n\v\f\r]*([+-]?\d+)")


def build_command(args: Sequence[str]) -> str:
    """Join command words into one line, adding sequence number 0 if none is given.

    Words holding a space are quoted; words holding a quote raise ValueError.
    """
    args = list(args)
    if not args:
        raise ValueError("no command given")
    prefix = "" if _LEADING_NUMBER.match(args[0]) else "0 "
    words = []
    for word in args:
        if '"' in word:
            raise ValueError("argument with embedded quotes not allowed")
        words.append(f'"{word}"' if " " in word else word)
    return prefix + " ".join(words)


def split_responses(data: bytes) -> tuple[list[str], bytes]:
    """Split NUL-terminated replies; return the complete ones and the unfinished rest."""
    *complete, rest = data.split(b"\0")
    return [part.decode("utf-8", errors="replace") for part in complete], rest


def _response_code(message: str) -> int:
    match = _CODE.match(message[:3])
    return int(match.group(1)) if match else 0


def monitor(sock: socket.socket, stop_after_cmd: bool = False, out: TextIO | None = None) -> int:
    """Print replies from ``sock`` to ``out``.

    With ``stop_after_cmd`` it returns 0 after the first final reply (code
    200-599). Otherwise it runs until the connection ends and returns an
    errno value.
    """
    out = sys.stdout if out is None else out
    if not stop_after_cmd:
        print("[Connected to Netd]", file=out)
    pending = b""
    while True:
        try:
            chunk = sock.recv(BUFFER_SIZE)
        except OSError as exc:
            print(f"Error reading data ({exc})", file=sys.stderr)
            return exc.errno or errno.EIO
        if not chunk:
            print("Lost connection to Netd - did it crash?", file=sys.stderr)
            return errno.ECONNRESET
        messages, pending = split_responses(pending + chunk)
        for message in messages:
            print(message, file=out)
            if stop_after_cmd and 200 <= _response_code(message) < 600:
                return 0


def _connect(name: str) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(os.path.join(SOCKET_DIR, name))
    except OSError:
        sock.close()
        raise
    return sock


def _usage(progname: str) -> int:
    print(
        f"Usage: {progname} [<sockname>] ([monitor] | ([<cmd_seq_num>] <cmd> [arg ...]))",
        file=sys.stderr,
    )
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Send one command (or monitor) and return the process exit status."""
    progname = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "ndc"
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        return _usage(progname)

    # Try the first argument as a socket name; fall back to the daemon's socket.
    try:
        sock = _connect(args[0])
    except OSError:
        try:
            sock = _connect(DEFAULT_SOCKET)
        except OSError as exc:
            print(f"Error connecting ({exc.strerror or exc})", file=sys.stderr)
            return 4
        command = args
    else:
        if len(args) < 2:
            sock.close()
            return _usage(progname)
        print(f"Using alt socket {args[0]}")
        command = args[1:]

    with sock:
        if command[0] == "monitor":
            return monitor(sock, False, sys.stdout)
        try:
            line = build_command(command)
        except ValueError as exc:
            print(exc, file=sys.stderr)
            return 1
        try:
            sock.sendall(line.encode() + b"\0")
        except OSError as exc:
            print(f"write: {exc}", file=sys.stderr)
            return exc.errno or errno.EIO
        return monitor(sock, True, sys.stdout)


if __name__ == "__main__":
    raise SystemExit(main())