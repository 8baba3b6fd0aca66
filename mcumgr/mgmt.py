"""Core management layer: header format, error codes, handler registry."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional, Sequence

import cbor2

MAX_MTU = 1024
HDR_SIZE = 8

_HDR_STRUCT = struct.Struct(">BBHHBB")


class Op(IntEnum):
    """Opcodes carried in the low three bits of the first header byte."""

    READ = 0
    READ_RSP = 1
    WRITE = 2
    WRITE_RSP = 3


class GroupId(IntEnum):
    """Command group identifiers; the first 64 are reserved for the system."""

    OS = 0
    IMAGE = 1
    STAT = 2
    CONFIG = 3
    LOG = 4
    CRASH = 5
    SPLIT = 6
    RUN = 7
    FS = 8
    SHELL = 9
    PERUSER = 64


class MgmtErr(IntEnum):
    """Management error codes."""

    EOK = 0
    EUNKNOWN = 1
    ENOMEM = 2
    EINVAL = 3
    ETIMEOUT = 4
    ENOENT = 5
    EBADSTATE = 6
    EMSGSIZE = 7
    ENOTSUP = 8
    ECORRUPT = 9
    EPERUSER = 256


class EvtOp(IntEnum):
    """Management event opcodes."""

    CMD_RECV = 0x01
    CMD_STATUS = 0x02
    CMD_DONE = 0x03


def _as_code(code: int) -> int:
    try:
        return MgmtErr(code)
    except ValueError:
        return int(code)


class MgmtError(Exception):
    """Raised when a management operation fails with a management error code."""

    def __init__(self, code: int, message: Optional[str] = None) -> None:
        self.code = _as_code(code)
        if message is None:
            message = self.code.name if isinstance(self.code, MgmtErr) else f"error {self.code}"
        self.message = message
        super().__init__(message)


@dataclass
class MgmtHeader:
    """The 8-byte management header that precedes every request and response."""

    op: int = Op.READ
    flags: int = 0
    length: int = 0
    group: int = 0
    seq: int = 0
    command_id: int = 0

    def pack(self) -> bytes:
        """Encode the header in network byte order."""
        if not 0 <= int(self.op) <= 7:
            raise ValueError(f"opcode out of range: {self.op}")
        try:
            return _HDR_STRUCT.pack(
                int(self.op),
                self.flags,
                self.length,
                int(self.group),
                self.seq,
                self.command_id,
            )
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def unpack(cls, data: bytes) -> "MgmtHeader":
        """Decode a header from the first eight bytes of ``data``."""
        if len(data) < HDR_SIZE:
            raise MgmtError(MgmtErr.EINVAL, "truncated management header")
        op_byte, flags, length, group, seq, command_id = _HDR_STRUCT.unpack_from(data)
        return cls(
            op=op_byte & 0x07,
            flags=flags,
            length=length,
            group=group,
            seq=seq,
            command_id=command_id,
        )


HandlerFn = Callable[["MgmtContext"], Any]


@dataclass(frozen=True)
class Handler:
    """Read and write handlers for a single command ID."""

    read: Optional[HandlerFn] = None
    write: Optional[HandlerFn] = None


@dataclass(eq=False)
class Group:
    """A collection of handlers for a command group, indexed by command ID."""

    group_id: int
    handlers: Sequence[Optional[Handler]] = field(default_factory=tuple)


def err_from_cbor(exc: Optional[BaseException]) -> MgmtErr:
    """Map a CBOR failure (or its absence) to a management error code."""
    if exc is None:
        return MgmtErr.EOK
    if isinstance(exc, MemoryError):
        return MgmtErr.ENOMEM
    return MgmtErr.EUNKNOWN


class MgmtContext:
    """Holds a decoded request and the response map that handlers fill in."""

    def __init__(self, request: bytes) -> None:
        self.raw = bytes(request)
        try:
            self.request: Any = cbor2.loads(self.raw)
        except (cbor2.CBORDecodeError, MemoryError) as exc:
            raise MgmtError(err_from_cbor(exc), f"cannot decode request: {exc}") from exc
        self.response: dict = {}

    def write_rsp_status(self, status: int) -> None:
        """Record a response status under the ``rc`` key."""
        self.response["rc"] = int(status)


EventCallback = Callable[[int, int, int, Any], None]


class Registry:
    """Registered command groups and the management event callback."""

    def __init__(self) -> None:
        self._groups: list[Group] = []
        self._event_cb: Optional[EventCallback] = None

    @property
    def groups(self) -> tuple[Group, ...]:
        return tuple(self._groups)

    def register_group(self, group: Group) -> None:
        """Append a group to the end of the registry."""
        self._groups.append(group)

    def unregister_group(self, group: Optional[Group]) -> None:
        """Remove a group; unknown groups and ``None`` are ignored."""
        if group is None:
            return
        for index, registered in enumerate(self._groups):
            if registered is group:
                del self._groups[index]
                return

    def find_handler(self, group_id: int, command_id: int) -> Optional[Handler]:
        """Return the handler for a command, or ``None`` if there is none.

        The first group with a matching ID whose command range covers
        ``command_id`` and has a handler for it wins; a matching group whose
        range is too small ends the search.
        """
        for group in self._groups:
            if group.group_id != group_id:
                continue
            if command_id >= len(group.handlers):
                return None
            handler = group.handlers[command_id]
            if handler is None or (handler.read is None and handler.write is None):
                continue
            return handler
        return None

    def register_event_callback(self, callback: Optional[EventCallback]) -> None:
        """Set the function notified of management events."""
        self._event_cb = callback

    def emit_event(self, opcode: int, group: int, command_id: int, arg: Any = None) -> None:
        """Notify the registered callback, if any, of an event."""
        if self._event_cb is not None:
            self._event_cb(opcode, group, command_id, arg)