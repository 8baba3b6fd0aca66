"""OS management command group: echo, task statistics and reset."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from mcumgr.mgmt import Group, GroupId, Handler, MgmtContext, MgmtErr, MgmtError

TASK_NAME_LEN = 32
ECHO_BUF_LEN = 128
DEFAULT_RESET_MS = 250


class OsCommand(IntEnum):
    """Command IDs within the OS management group."""

    ECHO = 0
    CONS_ECHO_CTRL = 1
    TASKSTAT = 2
    MPSTAT = 3
    DATETIME_STR = 4
    RESET = 5


@dataclass(frozen=True)
class TaskInfo:
    """Statistics describing a single task."""

    name: str
    prio: int = 0
    taskid: int = 0
    state: int = 0
    stkusage: int = 0
    stksize: int = 0
    cswcnt: int = 0
    runtime: int = 0
    last_checkin: int = 0
    next_checkin: int = 0

    def _as_map(self) -> dict:
        return {
            "prio": self.prio,
            "tid": self.taskid,
            "state": self.state,
            "stkuse": self.stkusage,
            "stksiz": self.stksize,
            "cswcnt": self.cswcnt,
            "runtime": self.runtime,
            "last_checkin": self.last_checkin,
            "next_checkin": self.next_checkin,
        }


class OsBackend:
    """Operating-system hooks used by the OS group.

    The default implementation supports nothing; subclasses override the
    methods that the host system can provide.
    """

    def task_info(self, idx: int) -> TaskInfo:
        """Return information about the task at ``idx``.

        Raises :class:`MgmtError` with ``ENOENT`` when there is no such task.
        """
        raise MgmtError(MgmtErr.ENOTSUP, "task information not supported")

    def reset(self, delay_ms: int) -> None:
        """Schedule a system reset after ``delay_ms`` milliseconds."""
        raise MgmtError(MgmtErr.ENOTSUP, "reset not supported")


class OsMgmt:
    """Handlers for the OS management group."""

    def __init__(
        self,
        backend: Optional[OsBackend] = None,
        echo: bool = True,
        taskstat: bool = True,
        reset_ms: int = DEFAULT_RESET_MS,
    ) -> None:
        self.backend = backend if backend is not None else OsBackend()
        self.echo_enabled = echo
        self.taskstat_enabled = taskstat
        self.reset_ms = reset_ms

        handlers: list[Optional[Handler]] = [None] * (OsCommand.RESET + 1)
        if echo:
            handlers[OsCommand.ECHO] = Handler(read=self.echo, write=self.echo)
        if taskstat:
            handlers[OsCommand.TASKSTAT] = Handler(read=self.taskstat_read)
        handlers[OsCommand.RESET] = Handler(write=self.reset)
        self._group = Group(group_id=GroupId.OS, handlers=tuple(handlers))

    def echo(self, ctxt: MgmtContext) -> None:
        """Reply with the text found under ``d`` as ``r``."""
        request = ctxt.request
        if not isinstance(request, Mapping):
            raise MgmtError(MgmtErr.EINVAL, "request is not a map")
        text = request.get("d", "")
        if not isinstance(text, str):
            raise MgmtError(MgmtErr.EINVAL, "echo data is not a text string")
        if len(text.encode("utf-8")) >= ECHO_BUF_LEN:
            raise MgmtError(MgmtErr.EINVAL, "echo data too long")
        ctxt.response["r"] = text

    def taskstat_read(self, ctxt: MgmtContext) -> None:
        """Reply with statistics for every task under ``tasks``."""
        tasks: dict = {}
        ctxt.response["tasks"] = tasks
        idx = 0
        while True:
            try:
                info = self.backend.task_info(idx)
            except MgmtError as exc:
                if exc.code == MgmtErr.ENOENT:
                    break
                raise
            tasks[info.name] = info._as_map()
            idx += 1

    def reset(self, ctxt: MgmtContext) -> None:
        """Schedule a system reset after the configured delay."""
        self.backend.reset(self.reset_ms)

    def group(self) -> Group:
        """Return the command group holding this object's handlers."""
        return self._group

    def register(self, registry) -> None:
        """Register the OS group with ``registry``."""
        registry.register_group(self._group)