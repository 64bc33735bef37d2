import threading
from collections import deque
from functools import reduce
from operator import xor

import pytest

from antpm.antdefs import ANTP_NETKEY, MessageId
from antpm.gant.antlib import (
    EVENT_RX_BROADCAST,
    EVENT_RX_BURST_PACKET,
    EVENT_RX_FAKE_BURST,
    AntDevice,
    BurstAssembler,
    Frame,
    FrameError,
    Framer,
    encode_message,
    open_serial,
    parse_hex,
)


class FakePort:
    def __init__(self, chunks=()):
        self.written = bytearray()
        self._chunks = deque(chunks)

    def write(self, data):
        self.written.extend(data)
        return len(data)

    def read(self, n):
        return self._chunks.popleft() if self._chunks else b""


def make_device(chunks=()):
    port = FakePort(chunks)
    return AntDevice(port, send_delay=0, burst_delay=0), port


def sent(port):
    return Framer().feed(bytes(port.written))


def test_encode_reset_wire_bytes():
    assert encode_message(MessageId.MESG_SYSTEM_RESET_ID, b"\x00") == bytes(
        [0xA4, 0x01, 0x4A, 0x00, 0xEF]
    )


@pytest.mark.parametrize("payload", [b"\x01", b"\x00\x10\x20", bytes(range(9))])
def test_encode_checksum_xors_to_zero(payload):
    frame = encode_message(0x4E, payload)
    assert reduce(xor, frame, 0) == 0
    assert frame[0] == 0xA4
    assert frame[1] == len(payload)
    assert frame[3:-1] == payload


def test_parse_hex_network_key():
    assert parse_hex("A8A423B9F55E63C1") == ANTP_NETKEY
    assert parse_hex(b"a8a423b9f55e63c1") == ANTP_NETKEY


@pytest.mark.parametrize("text", ["abc", "zz", "12 4"])
def test_parse_hex_rejects_bad_input(text):
    with pytest.raises(ValueError):
        parse_hex(text)


def test_framer_round_trip():
    frame = encode_message(0x4E, b"\x00" + bytes(range(8)))
    assert Framer().feed(frame) == [Frame(0x4E, b"\x00" + bytes(range(8)))]


def test_framer_byte_by_byte():
    data = encode_message(0x40, b"\x00\x42\x00")
    framer = Framer()
    results = [framer.feed(bytes([b])) for b in data]
    assert all(r == [] for r in results[:-1])
    assert results[-1] == [Frame(0x40, b"\x00\x42\x00")]


def test_framer_skips_junk_and_bad_checksum():
    good = encode_message(0x4E, b"\x01\x02\x03")
    bad = bytearray(encode_message(0x4F, b"\x05\x06"))
    bad[-1] ^= 0xFF
    frames = Framer().feed(b"\x11\x22" + bytes(bad) + good)
    assert frames == [Frame(0x4E, b"\x01\x02\x03")]
    assert frames[0].channel == 1


def test_framer_ignores_overlong_length():
    assert Framer().feed(encode_message(0x4E, bytes(14))) == []


def test_framer_multiple_frames_in_one_chunk():
    data = encode_message(0x4E, b"\x00\x01") + encode_message(0x4F, b"\x02\x03")
    frames = Framer().feed(data)
    assert [f.msg_id for f in frames] == [0x4E, 0x4F]


def test_framer_overflow_raises():
    framer = Framer()
    with pytest.raises(FrameError):
        framer.feed(bytes(301))
    frame = encode_message(0x4E, b"\x07")
    assert framer.feed(frame) == [Frame(0x4E, b"\x07")]


def test_burst_assembler_complete_transfer():
    asm = BurstAssembler()
    assert asm.add(0x02, b"A" * 8) is None
    assert asm.add(0x22, b"B" * 8) is None
    assert asm.add(0x40 | 0x80 | 0x02, b"C" * 8) == (2, b"A" * 8 + b"B" * 8 + b"C" * 8)


def test_burst_assembler_ignores_out_of_sequence_start():
    asm = BurstAssembler()
    assert asm.add(0x20 | 0x80, b"X" * 8) is None


def test_burst_assembler_restarts_on_seq_zero():
    asm = BurstAssembler()
    asm.add(0x00, b"A" * 8)
    asm.add(0x40, b"B" * 8)  # skipped seq 1: dropped
    assert asm.add(0x00 | 0x80, b"C" * 8) == (0, b"C" * 8)


def test_channel_id_and_period_payloads():
    dev, port = make_device()
    assert dev.set_channel_id(0, 0x1234, 1, 2) is True
    assert dev.set_channel_period(0, 0x1000) is True
    frames = sent(port)
    assert frames[0] == Frame(MessageId.MESG_CHANNEL_ID_ID, bytes([0, 0x34, 0x12, 1, 2]))
    assert frames[1] == Frame(MessageId.MESG_CHANNEL_MESG_PERIOD_ID, bytes([0, 0x00, 0x10]))


def test_simple_commands():
    dev, port = make_device()
    dev.request_message(0, MessageId.MESG_CHANNEL_STATUS_ID)
    dev.assign_channel(0, 0, 0)
    dev.open_channel(3)
    frames = sent(port)
    assert frames == [
        Frame(MessageId.MESG_REQUEST_ID, bytes([0, MessageId.MESG_CHANNEL_STATUS_ID])),
        Frame(MessageId.MESG_ASSIGN_CHANNEL_ID, bytes([0, 0, 0])),
        Frame(MessageId.MESG_OPEN_CHANNEL_ID, bytes([3])),
    ]


def test_network_key_hex_matches_binary():
    hex_dev, hex_port = make_device()
    bin_dev, bin_port = make_device()
    hex_dev.set_network_key_hex(0, "A8A423B9F55E63C1")
    bin_dev.set_network_key(0, ANTP_NETKEY)
    assert hex_port.written == bin_port.written
    assert sent(hex_port)[0].payload == b"\x00" + ANTP_NETKEY


def test_hex_length_errors():
    dev, port = make_device()
    with pytest.raises(ValueError):
        dev.set_network_key_hex(0, "A8A4")
    with pytest.raises(ValueError):
        dev.send_acknowledged_data_hex(0, "00")
    with pytest.raises(ValueError):
        dev.send_burst_transfer_hex(0, "00" * 8, 2)
    assert port.written == bytearray()


def test_acknowledged_hex_matches_binary():
    dev, port = make_device()
    dev.send_acknowledged_data_hex(1, "440dffff00000000")
    frames = sent(port)
    assert frames == [Frame(MessageId.MESG_ACKNOWLEDGED_DATA_ID, b"\x01" + parse_hex("440dffff00000000"))]


def test_burst_transfer_round_trip():
    dev, port = make_device()
    data = bytes(range(40))
    assert dev.send_burst_transfer(1, data, 5) == 5
    frames = sent(port)
    assert all(f.msg_id == MessageId.MESG_BURST_DATA_ID for f in frames)
    assert [bool(f.payload[0] & 0x80) for f in frames] == [False] * 4 + [True]
    asm = BurstAssembler()
    results = [asm.add(f.payload[0], f.payload[1:]) for f in frames]
    assert results[-1] == (1, data)
    assert results[:-1] == [None] * 4


def test_process_broadcast_event():
    dev, _ = make_device()
    events = []
    dev.assign_channel_event_function(0, lambda c, e, d: events.append((c, e, d)))
    data = b"\x43\x04\x00\x00\x01\x02\x03\x04"
    dev.process(encode_message(MessageId.MESG_BROADCAST_DATA_ID, b"\x00" + data))
    assert events == [(0, EVENT_RX_BROADCAST, data)]


def test_process_response_event():
    dev, _ = make_device()
    responses = []
    dev.assign_response_function(lambda c, e, d: responses.append((c, e, d)))
    payload = bytes([0, MessageId.MESG_ASSIGN_CHANNEL_ID, 0])
    dev.process(encode_message(MessageId.MESG_RESPONSE_EVENT_ID, payload))
    assert responses == [(0, 0, payload)]


def test_process_other_message_goes_to_response():
    dev, _ = make_device()
    responses = []
    dev.assign_response_function(lambda c, e, d: responses.append((c, e, d)))
    payload = bytes([0, 0x34, 0x12, 1, 5])
    dev.process(encode_message(MessageId.MESG_CHANNEL_ID_ID, payload))
    assert responses == [(0, MessageId.MESG_CHANNEL_ID_ID, payload)]


def test_process_burst_yields_fake_burst():
    sender, port = make_device()
    data = bytes(range(24))
    sender.send_burst_transfer(0, data, 3)
    dev, _ = make_device()
    events = []
    dev.assign_channel_event_function(0, lambda c, e, d: events.append((e, d)))
    dev.process(bytes(port.written))
    kinds = [e for e, _ in events]
    assert kinds == [EVENT_RX_BURST_PACKET] * 3 + [EVENT_RX_FAKE_BURST]
    assert events[-1][1] == data


def test_background_reader_dispatches():
    payload = b"\x00" + bytes(8)
    dev, _ = make_device([encode_message(MessageId.MESG_BROADCAST_DATA_ID, payload)])
    got = threading.Event()
    events = []

    def on_event(chan, event, data):
        events.append(event)
        got.set()

    dev.assign_channel_event_function(0, on_event)
    with dev:
        dev.start()
        assert got.wait(5)
    assert events == [EVENT_RX_BROADCAST]
    assert dev.error is None


def test_open_serial_missing_device(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_serial(str(tmp_path / "no-such-tty"))