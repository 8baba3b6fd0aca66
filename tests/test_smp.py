import cbor2
import pytest

from mcumgr.mgmt import (
    HDR_SIZE,
    EvtOp,
    Group,
    Handler,
    MgmtErr,
    MgmtError,
    MgmtHeader,
    Op,
    Registry,
)
from mcumgr.smp import SmpServer, align4, response_op

GROUP = 64


def _echo(ctxt):
    ctxt.response["r"] = ctxt.request["d"]


def _fail_einval(ctxt):
    return MgmtErr.EINVAL


def _request(op, group, command_id, body, seq=0, pad=False):
    payload = cbor2.dumps(body) if not isinstance(body, bytes) else body
    hdr = MgmtHeader(op=op, length=len(payload), group=group, seq=seq,
                     command_id=command_id)
    data = hdr.pack() + payload
    if pad:
        data += b"\x00" * ((-len(payload)) % 4)
    return data


def _split(packet):
    hdr = MgmtHeader.unpack(packet)
    body = packet[HDR_SIZE:]
    assert hdr.length == len(body)
    return hdr, cbor2.loads(body)


@pytest.fixture
def setup():
    registry = Registry()
    registry.register_group(Group(GROUP, (
        Handler(read=_echo, write=_echo),
        Handler(read=_fail_einval),
        Handler(write=_echo),
    )))
    sent = []
    events = []
    registry.register_event_callback(lambda *args: events.append(args))
    server = SmpServer(registry, sent.append)
    return server, sent, events


def test_align4_invariants():
    for x in range(0, 40):
        y = align4(x)
        assert y % 4 == 0
        assert x <= y < x + 4
    assert align4(16) == 16


def test_response_op():
    assert response_op(Op.READ) == Op.READ_RSP
    assert response_op(Op.WRITE) == Op.WRITE_RSP
    assert response_op(4) == Op.WRITE_RSP


def test_single_echo(setup):
    server, sent, events = setup
    server.process_request_packet(_request(Op.READ, GROUP, 0, {"d": "hi"}, seq=9))
    assert len(sent) == 1
    hdr, body = _split(sent[0])
    assert body == {"r": "hi"}
    assert hdr.op == Op.READ_RSP
    assert hdr.group == GROUP
    assert hdr.seq == 9
    assert hdr.command_id == 0
    assert events == [
        (EvtOp.CMD_RECV, GROUP, 0, None),
        (EvtOp.CMD_DONE, GROUP, 0, MgmtErr.EOK),
    ]


def test_multiple_padded_requests(setup):
    server, sent, _ = setup
    packet = (_request(Op.WRITE, GROUP, 0, {"d": "a"}, seq=1, pad=True)
              + _request(Op.READ, GROUP, 0, {"d": "bcd"}, seq=2, pad=True))
    server.process_request_packet(packet)
    assert len(sent) == 2
    first, second = (_split(p) for p in sent)
    assert first[0].op == Op.WRITE_RSP and first[1] == {"r": "a"}
    assert second[0].seq == 2 and second[1] == {"r": "bcd"}


def test_empty_packet_sends_nothing(setup):
    server, sent, events = setup
    assert server.process_request_packet(b"") is None
    assert sent == []
    assert events == []


def test_trailing_short_bytes_ignored(setup):
    server, sent, _ = setup
    server.process_request_packet(_request(Op.READ, GROUP, 0, {"d": "x"}, pad=True)
                                  + b"\x00\x00")
    assert len(sent) == 1


def test_unknown_group_sends_error(setup):
    server, sent, events = setup
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP + 1, 0, {}))
    assert info.value.code == MgmtErr.ENOTSUP
    hdr, body = _split(sent[0])
    assert body == {"rc": int(MgmtErr.ENOTSUP)}
    assert hdr.op == Op.READ_RSP
    assert events == []


def test_missing_op_handler_is_unsupported(setup):
    server, sent, events = setup
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP, 2, {"d": "z"}))
    assert info.value.code == MgmtErr.ENOTSUP
    assert _split(sent[0])[1] == {"rc": int(MgmtErr.ENOTSUP)}
    assert events == []


def test_invalid_opcode(setup):
    server, sent, _ = setup
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(4, GROUP, 0, {"d": "z"}))
    assert info.value.code == MgmtErr.EINVAL
    hdr, body = _split(sent[0])
    assert hdr.op == Op.WRITE_RSP
    assert body == {"rc": int(MgmtErr.EINVAL)}


def test_handler_error_aborts_packet(setup):
    server, sent, events = setup
    packet = (_request(Op.READ, GROUP, 1, {}, pad=True)
              + _request(Op.READ, GROUP, 0, {"d": "never"}, pad=True))
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(packet)
    assert info.value.code == MgmtErr.EINVAL
    assert len(sent) == 1
    assert _split(sent[0])[1] == {"rc": int(MgmtErr.EINVAL)}
    assert events == [
        (EvtOp.CMD_RECV, GROUP, 1, None),
        (EvtOp.CMD_DONE, GROUP, 1, MgmtErr.EINVAL),
    ]


def test_handler_raising_error(setup):
    server, sent, _ = setup

    def boom(ctxt):
        raise MgmtError(MgmtErr.EBADSTATE)

    server.registry.register_group(Group(GROUP + 2, (Handler(read=boom),)))
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP + 2, 0, {}))
    assert info.value.code == MgmtErr.EBADSTATE
    assert _split(sent[0])[1] == {"rc": int(MgmtErr.EBADSTATE)}


def test_undecodable_payload_sends_nothing(setup):
    server, sent, _ = setup
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP, 0, b""))
    assert info.value.code == MgmtErr.EUNKNOWN
    assert sent == []


def test_transmit_failure_sends_error_response():
    registry = Registry()
    registry.register_group(Group(GROUP, (Handler(read=_echo),)))
    sent = []

    def transmit(data):
        if not sent:
            sent.append(None)
            raise MgmtError(MgmtErr.EMSGSIZE)
        sent.append(data)

    server = SmpServer(registry, transmit)
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP, 0, {"d": "q"}))
    assert info.value.code == MgmtErr.EMSGSIZE
    assert len(sent) == 2
    assert _split(sent[1])[1] == {"rc": int(MgmtErr.EMSGSIZE)}


def test_transmit_nonzero_return_is_failure():
    registry = Registry()
    registry.register_group(Group(GROUP, (Handler(read=_echo),)))
    calls = []

    def transmit(data):
        calls.append(data)
        return MgmtErr.ENOMEM

    server = SmpServer(registry, transmit)
    with pytest.raises(MgmtError) as info:
        server.process_request_packet(_request(Op.READ, GROUP, 0, {"d": "q"}))
    assert info.value.code == MgmtErr.ENOMEM
    assert len(calls) == 2
    assert _split(calls[1])[1] == {"rc": int(MgmtErr.ENOMEM)}