"""Shell management command group: remote execution of shell command lines."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from mcumgr.mgmt import Group, GroupId, Handler, MgmtContext, MgmtErr, MgmtError, Registry

SHELL_MGMT_ID_EXEC = 0

DEFAULT_MAX_LINE_LEN = 256
DEFAULT_MAX_ARGC = 20


class ShellBackend:
    """Shell hooks used by the shell group.

    The default implementation executes nothing and produces no output;
    subclasses override the methods the host system can provide.
    """

    def execute(self, line: str) -> int:
        """Execute ``line`` as a shell command and return its status."""
        return MgmtErr.ENOTSUP

    def output(self) -> str:
        """Return the text produced by the last executed command."""
        return ""


class ShellMgmt:
    """Handler for the shell management group."""

    def __init__(
        self,
        backend: Optional[ShellBackend] = None,
        max_line_len: int = DEFAULT_MAX_LINE_LEN,
        max_argc: int = DEFAULT_MAX_ARGC,
    ) -> None:
        self.backend = backend if backend is not None else ShellBackend()
        self.max_line_len = max_line_len
        self.max_argc = max_argc
        self._group = Group(
            group_id=GroupId.SHELL,
            handlers=(Handler(write=self.exec_command),),
        )

    def _read_line(self, request: object) -> str:
        if not isinstance(request, Mapping):
            raise MgmtError(MgmtErr.EINVAL, "request is not a map")
        argv = request.get("argv", [])
        if not isinstance(argv, list):
            raise MgmtError(MgmtErr.EINVAL, "argv is not an array")
        if len(argv) > self.max_argc:
            raise MgmtError(MgmtErr.EINVAL, "too many arguments")
        if not all(isinstance(arg, str) for arg in argv):
            raise MgmtError(MgmtErr.EINVAL, "argv holds a non-text element")
        line = " ".join(argv)
        if len(line.encode("utf-8")) > self.max_line_len:
            raise MgmtError(MgmtErr.EINVAL, "command line too long")
        return line

    def exec_command(self, ctxt: MgmtContext) -> None:
        """Execute the command in ``argv``; reply with its output and status."""
        line = self._read_line(ctxt.request)
        rc = self.backend.execute(line)
        ctxt.response["o"] = self.backend.output()
        ctxt.response["rc"] = int(rc)

    def group(self) -> Group:
        """Return the command group holding this object's handler."""
        return self._group

    def register(self, registry: Registry) -> None:
        """Register the shell group with ``registry``."""
        registry.register_group(self._group)