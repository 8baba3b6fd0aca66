# mcumgr

This package is the device side of a management protocol. Requests arrive as
bytes. They are sent to command handlers that you register, and the responses
go out through a `transmit` callable that you supply. Payloads are CBOR maps,
and `cbor2` encodes them.

## Core (`mcumgr.mgmt`)

- `MgmtHeader`: the 8-byte management header.
  - Fields: `op`, `flags`, `length`, `group`, `seq`, `command_id`.
  - `pack()` writes the header in network byte order.
  - `MgmtHeader.unpack(data)` reads a header back.
- Enumerations:
  - `Op`: `READ`, `READ_RSP`, `WRITE`, `WRITE_RSP`.
  - `GroupId`: command group IDs.
  - `MgmtErr`: error codes.
  - `EvtOp`: event opcodes.
- `Handler(read=..., write=...)` and `Group(group_id, handlers)` describe a
  command group. A group's handlers are indexed by command ID.
- `Registry`:
  - `register_group` and `unregister_group` add and remove groups.
  - `find_handler(group_id, command_id)` looks up the handler for a command.
  - `register_event_callback(cb)` sets an event callback, which is called as
    `cb(opcode, group, command_id, arg)`.
- `MgmtContext`: handlers receive one.
  - `ctxt.request` is the decoded request.
  - Handlers fill `ctxt.response`, which is a dict.
  - `write_rsp_status(status)` sets `"rc"` in the response.
- `MgmtError`: all failures are raised as this exception. Its `code` holds the
  error code, as a `MgmtErr` member when one matches.

A handler reports failure in one of two ways:

- raise `MgmtError`, or
- return a non-zero error code.

## Transports

### SMP: `mcumgr.smp.SmpServer(registry, transmit)`

`process_request_packet(packet)` handles a packet that holds one or more
requests.

- Each request is a header followed by a CBOR map.
- Each request starts on a 4-byte boundary.
- Every response is passed to `transmit` as its own packet, header included.

If a request fails:

1. An error response with body `{"rc": <code>}` is sent.
2. Processing of the packet stops.
3. `MgmtError` is raised.

Events:

- `EvtOp.CMD_RECV` is emitted before a handler runs.
- `EvtOp.CMD_DONE` is emitted afterwards. Its `arg` is the resulting code.

Helpers: `align4(x)` and `response_op(req_op)`.

### OMP: `mcumgr.omp.OmpServer(registry, transmit)`

`process_request(request)` handles a single CBOR map. The packed header sits
in that map under `"_h"`.

The response map holds:

- the handler's fields,
- the response header under `"_h"`,
- `"rc"` if the handler failed.

The response is encoded, passed to `transmit`, and returned. If the request
cannot be processed, `MgmtError` with `EINVAL` is raised and nothing is sent.

The module also exposes the building blocks: `read_hdr`, `encode_mgmt_hdr`,
`send_err_rsp` and `process_mgmt_hdr`.

## Command groups

### `mcumgr.os_mgmt.OsMgmt(backend, echo, taskstat, reset_ms)`

- **echo**: replies `{"r": text}` to `{"d": text}`.
- **taskstat**: replies with a `"tasks"` map holding one entry per task. The
  entries come from `OsBackend.task_info(idx)`, which is called until it
  raises `ENOENT`.
- **reset**: calls `OsBackend.reset(reset_ms)`.

### `mcumgr.shell_mgmt.ShellMgmt(backend, max_line_len, max_argc)`

- **exec**: joins `"argv"` into one line and runs it with
  `ShellBackend.execute`.
- It replies `{"o": output, "rc": status}`.

### `mcumgr.stat_mgmt.StatMgmt(backend, max_name_len)`

- **show**: replies with the name and the `"fields"` of one statistics group.
- **list**: replies with all group names under `"stat_list"`.
- Both use `StatBackend`.

### Default backends and registration

The base backends do not support anything:

- `OsBackend` raises `MgmtErr.ENOTSUP`.
- `StatBackend` raises `MgmtErr.ENOTSUP`.
- `ShellBackend.execute` returns `MgmtErr.ENOTSUP` and produces empty output.

Subclass a backend to supply the platform side.

Each group object has `group()` and `register(registry)`.

## Utilities (`mcumgr.util`)

`ull_to_str(val, dst_max_len)` and `ll_to_str(val, dst_max_len)` render 64-bit
integers as decimal text. They raise `ValueError` if the text would not fit
in a buffer of `dst_max_len` bytes.

## Example

```python
import cbor2

from mcumgr.mgmt import GroupId, MgmtHeader, Op, Registry
from mcumgr.os_mgmt import OsBackend, OsCommand, OsMgmt
from mcumgr.smp import SmpServer

registry = Registry()
OsMgmt(OsBackend(), echo=True, taskstat=True, reset_ms=250).register(registry)

sent = []
server = SmpServer(registry, sent.append)

body = cbor2.dumps({"d": "hello"})
header = MgmtHeader(op=Op.WRITE, length=len(body), group=GroupId.OS,
                    command_id=OsCommand.ECHO)
server.process_request_packet(header.pack() + body)

response = sent[0]
print(MgmtHeader.unpack(response), cbor2.loads(response[8:]))  # {'r': 'hello'}
```

## What this package does not do

- **No transport.** There is no Bluetooth, serial or network layer. Bytes have
  to be handed to the servers, and the `transmit` callable has to be wired
  up, by the caller.
- **Limited command groups.** Only the OS, shell and statistics groups are
  provided. There are no image, file-system, configuration or log groups.
- **No platform backends.** There are no working backends for any real
  operating system. The defaults report the operations as not supported.
- **No command-line program.** The package does not install one.