"""OMP - the OIC flavour of the simple management protocol.

An OMP request is a single CBOR map.  The management header travels inside
it as an 8-byte byte string under the ``_h`` key, and the remaining keys are
command specific.  The response is a CBOR map built the same way: handler
output, the response header under ``_h`` and, on failure, a status under
``rc``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, Callable, Optional

import cbor2

from mcumgr.mgmt import (
    HDR_SIZE,
    HandlerFn,
    MgmtContext,
    MgmtErr,
    MgmtError,
    MgmtHeader,
    Op,
    Registry,
    err_from_cbor,
)

HEADER_KEY = "_h"

TransmitFn = Callable[[bytes], Any]


def encode_mgmt_hdr(response: dict, hdr: MgmtHeader) -> None:
    """Store ``hdr`` in network byte order under the ``_h`` key."""
    try:
        response[HEADER_KEY] = hdr.pack()
    except ValueError as exc:
        raise MgmtError(MgmtErr.ENOMEM, f"cannot encode header: {exc}") from exc


def send_err_rsp(response: dict, hdr: MgmtHeader, status: int) -> None:
    """Write an error response: the header followed by ``rc``."""
    encode_mgmt_hdr(response, hdr)
    response["rc"] = int(status)


def read_hdr(request: Any) -> MgmtHeader:
    """Extract the management header from a request map.

    ``request`` may be the decoded map or its CBOR encoding.  Raises
    :class:`MgmtError` with ``EINVAL`` if the header is missing or malformed.
    """
    if isinstance(request, (bytes, bytearray, memoryview)):
        try:
            request = cbor2.loads(bytes(request))
        except (cbor2.CBORDecodeError, MemoryError) as exc:
            raise MgmtError(MgmtErr.EINVAL, f"cannot decode request: {exc}") from exc
    if not isinstance(request, Mapping):
        raise MgmtError(MgmtErr.EINVAL, "request is not a map")
    raw = request.get(HEADER_KEY)
    if not isinstance(raw, (bytes, bytearray)) or len(raw) != HDR_SIZE:
        raise MgmtError(MgmtErr.EINVAL, "missing or malformed management header")
    return MgmtHeader.unpack(bytes(raw))


def _failure_code(fn: HandlerFn, ctxt: MgmtContext) -> Optional[int]:
    try:
        result = fn(ctxt)
    except MgmtError as exc:
        return exc.code
    if isinstance(result, int) and not isinstance(result, bool) and result != 0:
        return result
    return None


def process_mgmt_hdr(registry: Registry, req_hdr: MgmtHeader, ctxt: MgmtContext) -> MgmtHeader:
    """Dispatch a request to its handler and encode the response header.

    Returns the response header.  A handler failure is reported in the
    response itself (``rc``) and is not raised.  Raises :class:`MgmtError`
    with ``ENOENT`` if no handler is registered, and with ``EUNKNOWN`` if the
    handler has no function for the requested operation.
    """
    handler = registry.find_handler(req_hdr.group, req_hdr.command_id)
    if handler is None:
        raise MgmtError(MgmtErr.ENOENT, "no handler for command")

    rsp_hdr = dataclasses.replace(req_hdr)
    fn: Optional[HandlerFn] = None
    if req_hdr.op == Op.READ:
        rsp_hdr.op = Op.READ_RSP
        fn = handler.read
    elif req_hdr.op == Op.WRITE:
        rsp_hdr.op = Op.WRITE_RSP
        fn = handler.write

    if fn is None:
        # An unsupported operation is passed through the CBOR status mapping,
        # which reports it as an unknown error.
        raise MgmtError(err_from_cbor(MgmtError(MgmtErr.ENOTSUP)), "operation not supported")

    status = _failure_code(fn, ctxt)
    if status is not None:
        send_err_rsp(ctxt.response, rsp_hdr, status)
    else:
        encode_mgmt_hdr(ctxt.response, rsp_hdr)
    return rsp_hdr


class OmpServer:
    """Processes OMP requests against a handler registry.

    ``transmit`` is called with the CBOR-encoded response map.
    """

    def __init__(self, registry: Registry, transmit: TransmitFn) -> None:
        self.registry = registry
        self.transmit = transmit

    def process_request(self, request: bytes) -> bytes:
        """Process one request, transmit its response and return it.

        Raises :class:`MgmtError` with ``EINVAL`` if the request cannot be
        processed; nothing is transmitted in that case.
        """
        try:
            ctxt = MgmtContext(request)
            req_hdr = read_hdr(ctxt.request)
            process_mgmt_hdr(self.registry, req_hdr, ctxt)
            data = cbor2.dumps(ctxt.response)
        except MgmtError as exc:
            raise MgmtError(MgmtErr.EINVAL, exc.message) from exc
        except (cbor2.CBOREncodeError, MemoryError) as exc:
            raise MgmtError(MgmtErr.EINVAL, f"cannot encode response: {exc}") from exc
        self.transmit(data)
        return data