"""SMP - Simple Management Protocol request processing.

A request packet holds one or more requests, each an 8-byte management
header followed by a CBOR map.  Every request starts at an offset that is a
multiple of 4.  Requests are processed in order; each response is sent in
its own packet, and the first failing request aborts processing after an
error response has been sent.
"""

from __future__ import annotations

from typing import Any, Callable

import cbor2

from mcumgr.mgmt import (
    HDR_SIZE,
    EvtOp,
    HandlerFn,
    MgmtContext,
    MgmtErr,
    MgmtError,
    MgmtHeader,
    Op,
    Registry,
    err_from_cbor,
)

TransmitFn = Callable[[bytes], Any]


def align4(x: int) -> int:
    """Round a non-negative length up to the next multiple of 4."""
    rem = x % 4
    return x if rem == 0 else x - rem + 4


def response_op(req_op: int) -> Op:
    """Return the response opcode that answers a request opcode."""
    return Op.READ_RSP if req_op == Op.READ else Op.WRITE_RSP


def _check_status(result: Any) -> None:
    if isinstance(result, int) and not isinstance(result, bool) and result != 0:
        raise MgmtError(result)


def _encode(response: dict) -> bytes:
    try:
        return cbor2.dumps(response)
    except (cbor2.CBOREncodeError, MemoryError) as exc:
        raise MgmtError(err_from_cbor(exc), f"cannot encode response: {exc}") from exc


def _frame(req_hdr: MgmtHeader, body: bytes) -> bytes:
    rsp_hdr = MgmtHeader(
        op=response_op(req_hdr.op),
        flags=0,
        length=len(body),
        group=req_hdr.group,
        seq=req_hdr.seq,
        command_id=req_hdr.command_id,
    )
    return rsp_hdr.pack() + body


class SmpServer:
    """Processes SMP request packets against a handler registry.

    ``transmit`` is called with each complete response packet.  It signals
    failure by raising :class:`MgmtError` or returning a non-zero code.
    Handlers signal failure the same way.
    """

    def __init__(self, registry: Registry, transmit: TransmitFn) -> None:
        self.registry = registry
        self.transmit = transmit

    def _send(self, data: bytes) -> None:
        _check_status(self.transmit(data))

    def _resolve(self, req_hdr: MgmtHeader) -> HandlerFn:
        handler = self.registry.find_handler(req_hdr.group, req_hdr.command_id)
        if handler is None:
            raise MgmtError(MgmtErr.ENOTSUP)
        if req_hdr.op == Op.READ:
            fn = handler.read
        elif req_hdr.op == Op.WRITE:
            fn = handler.write
        else:
            raise MgmtError(MgmtErr.EINVAL, f"invalid opcode {req_hdr.op}")
        if fn is None:
            raise MgmtError(MgmtErr.ENOTSUP)
        return fn

    def _send_error(self, req_hdr: MgmtHeader, payload: bytes, status: int) -> None:
        try:
            ctxt = MgmtContext(payload)
            ctxt.write_rsp_status(status)
            data = _frame(req_hdr, _encode(ctxt.response))
        except MgmtError:
            return
        try:
            self.transmit(data)
        except MgmtError:
            pass

    def process_request_packet(self, packet: bytes) -> None:
        """Process every request in ``packet`` and transmit the responses.

        Raises :class:`MgmtError` for the first request that fails, after
        an error response for it has been attempted.
        """
        remaining = bytes(packet)
        while len(remaining) >= HDR_SIZE:
            req_hdr = MgmtHeader.unpack(remaining)
            remaining = remaining[HDR_SIZE:]
            payload = remaining[: req_hdr.length]
            handler_found = False
            try:
                ctxt = MgmtContext(payload)
                fn = self._resolve(req_hdr)
                handler_found = True
                self.registry.emit_event(
                    EvtOp.CMD_RECV, req_hdr.group, req_hdr.command_id, None
                )
                _check_status(fn(ctxt))
                self._send(_frame(req_hdr, _encode(ctxt.response)))
            except MgmtError as exc:
                self._send_error(req_hdr, payload, exc.code)
                if handler_found:
                    self.registry.emit_event(
                        EvtOp.CMD_DONE, req_hdr.group, req_hdr.command_id, exc.code
                    )
                raise

            remaining = remaining[align4(req_hdr.length):]
            self.registry.emit_event(
                EvtOp.CMD_DONE, req_hdr.group, req_hdr.command_id, MgmtErr.EOK
            )