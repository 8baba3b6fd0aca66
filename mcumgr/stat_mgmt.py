"""Statistics management command group: show a group's values, list groups."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from mcumgr.mgmt import Group, GroupId, Handler, MgmtContext, MgmtErr, MgmtError, Registry

DEFAULT_MAX_NAME_LEN = 32


class StatCommand(IntEnum):
    """Command IDs within the statistics management group."""

    SHOW = 0
    LIST = 1


@dataclass(frozen=True)
class StatEntry:
    """A single named value in a statistics group."""

    name: str
    value: int


EntryCallback = Callable[[StatEntry], None]


class StatBackend:
    """Statistics hooks used by the statistics group.

    The default implementation supports nothing; subclasses override the
    methods that the host system can provide.
    """

    def group_name(self, idx: int) -> str:
        """Return the name of the stat group at ``idx``.

        Raises :class:`MgmtError` with ``ENOENT`` when there is no such group.
        """
        raise MgmtError(MgmtErr.ENOTSUP, "stat groups not supported")

    def foreach_entry(self, group_name: str, callback: EntryCallback) -> None:
        """Call ``callback`` with every entry of the named stat group."""
        raise MgmtError(MgmtErr.ENOTSUP, "stat entries not supported")


class StatMgmt:
    """Handlers for the statistics management group."""

    def __init__(
        self,
        backend: Optional[StatBackend] = None,
        max_name_len: int = DEFAULT_MAX_NAME_LEN,
    ) -> None:
        self.backend = backend if backend is not None else StatBackend()
        self.max_name_len = max_name_len
        self._group = Group(
            group_id=GroupId.STAT,
            handlers=(Handler(read=self.show), Handler(read=self.list_groups)),
        )

    def _read_name(self, request: object) -> str:
        if not isinstance(request, Mapping):
            raise MgmtError(MgmtErr.EINVAL, "request is not a map")
        name = request.get("name", "")
        if not isinstance(name, str):
            raise MgmtError(MgmtErr.EINVAL, "name is not a text string")
        if len(name.encode("utf-8")) >= self.max_name_len:
            raise MgmtError(MgmtErr.EINVAL, "stat name too long")
        return name

    def show(self, ctxt: MgmtContext) -> None:
        """Reply with every value in the stat group named under ``name``."""
        name = self._read_name(ctxt.request)
        fields: dict = {}
        ctxt.response["rc"] = int(MgmtErr.EOK)
        ctxt.response["name"] = name
        ctxt.response["fields"] = fields

        def collect(entry: StatEntry) -> None:
            fields[entry.name] = entry.value

        self.backend.foreach_entry(name, collect)

    def list_groups(self, ctxt: MgmtContext) -> None:
        """Reply with the names of all stat groups under ``stat_list``."""
        names: list = []
        ctxt.response["rc"] = int(MgmtErr.EOK)
        ctxt.response["stat_list"] = names
        idx = 0
        while True:
            try:
                names.append(self.backend.group_name(idx))
            except MgmtError as exc:
                if exc.code == MgmtErr.ENOENT:
                    break
                raise
            idx += 1

    def group(self) -> Group:
        """Return the command group holding this object's handlers."""
        return self._group

    def register(self, registry: Registry) -> None:
        """Register the statistics group with ``registry``."""
        registry.register_group(self._group)