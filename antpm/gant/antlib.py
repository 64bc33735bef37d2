"""Framing, burst reassembly and command helpers for an ANT serial stick."""

from __future__ import annotations

import os
import select
import string
import threading
import time
from dataclasses import dataclass
from functools import reduce
from operator import xor
from typing import Any, BinaryIO, Callable, Optional

from antpm.antdefs import MESG_TX_SYNC, MessageId
from antpm.log import Log, LogLevel

# Events synthesised from received data messages.
EVENT_RX_BROADCAST = 0x9A
EVENT_RX_ACKNOWLEDGED = 0x9B
EVENT_RX_BURST_PACKET = 0x9C
EVENT_RX_EXT_BROADCAST = 0x9D
EVENT_RX_EXT_ACKNOWLEDGED = 0x9E
EVENT_RX_EXT_BURST_PACKET = 0x9F
EVENT_RX_FAKE_BURST = 0xDD  # a whole burst transfer, reassembled
INVALID_MESSAGE = 0x28

MAX_DATA_LEN = 13
MAX_BUFFER = 300
READ_CHUNK = 20
MAX_CHANNELS = 32
BURST_PACKET_SIZE = 8

ResponseCallback = Callable[[int, int, bytes], Any]
ChannelEventCallback = Callable[[int, int, bytes], Any]

_DATA_EVENTS = {
    MessageId.MESG_BROADCAST_DATA_ID: EVENT_RX_BROADCAST,
    MessageId.MESG_ACKNOWLEDGED_DATA_ID: EVENT_RX_ACKNOWLEDGED,
    MessageId.MESG_BURST_DATA_ID: EVENT_RX_BURST_PACKET,
    MessageId.MESG_EXT_BROADCAST_DATA_ID: EVENT_RX_EXT_BROADCAST,
    MessageId.MESG_EXT_ACKNOWLEDGED_DATA_ID: EVENT_RX_EXT_ACKNOWLEDGED,
    MessageId.MESG_EXT_BURST_DATA_ID: EVENT_RX_EXT_BURST_PACKET,
}


def _log(level: LogLevel, msg: str) -> None:
    Log.instance().log(level, msg)


class FrameError(Exception):
    """Raised when the receive buffer fills up without yielding a message."""


@dataclass(frozen=True)
class Frame:
    """One checksummed message received from the stick."""

    msg_id: int
    payload: bytes

    @property
    def channel(self) -> int:
        return self.payload[0] if self.payload else 0


def encode_message(msg_id: int, payload: bytes) -> bytes:
    """Build a framed message: sync, length, id, payload and XOR checksum."""
    body = bytes([MESG_TX_SYNC, len(payload), msg_id]) + bytes(payload)
    return body + bytes([reduce(xor, body, 0)])


def parse_hex(text: str | bytes) -> bytes:
    """Decode a string of hexadecimal digit pairs."""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("ascii")
    if len(text) % 2 or any(c not in string.hexdigits for c in text):
        raise ValueError(f"not a hex string: {text!r}")
    return bytes.fromhex(text)


class Framer:
    """Turns a stream of received bytes into checksummed frames."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def feed(self, data: bytes) -> list[Frame]:
        """Add received bytes; return every complete frame found."""
        data = bytes(data)
        frames: list[Frame] = []
        for start in range(0, len(data), READ_CHUNK):
            frames.extend(self._feed_chunk(data[start:start + READ_CHUNK]))
        return frames

    def _feed_chunk(self, chunk: bytes) -> list[Frame]:
        buf = self._buf
        buf.extend(chunk)
        if len(buf) > MAX_BUFFER:
            dump = buf.hex()
            size = len(buf)
            buf.clear()
            raise FrameError(f"buf too long {size}: {dump}")
        frames: list[Frame] = []
        srch = 0
        consumed = 0
        while srch < len(buf):
            found = self._find(srch)
            if found is None:
                break
            i, dlen = found
            if i > srch:
                _log(LogLevel.LOG_WARN, f"Discarding: {buf[:i].hex()}\n")
            frames.append(Frame(buf[i + 2], bytes(buf[i + 3:i + 3 + dlen])))
            consumed = i + 4 + dlen
            srch = consumed
        del buf[:consumed]
        return frames

    def _find(self, srch: int) -> Optional[tuple[int, int]]:
        buf = self._buf
        n = len(buf)
        for i in range(srch, n):
            if buf[i] != MESG_TX_SYNC or i + 1 >= n:
                continue
            dlen = buf[i + 1]
            if not 1 <= dlen <= MAX_DATA_LEN or i + 3 + dlen >= n:
                continue
            chk = reduce(xor, buf[i:i + 4 + dlen], 0)
            if chk == 0:
                return i, dlen
            _log(LogLevel.LOG_WARN, f"bad chk {chk:02x} {buf[i:i + 4 + dlen].hex()}\n")
        return None


class BurstAssembler:
    """Collects burst packets per channel into whole transfers."""

    def __init__(self) -> None:
        self._buffers: dict[int, bytearray] = {}
        self._last_seq: dict[int, int] = {}

    def add(self, chan_byte: int, payload: bytes) -> Optional[tuple[int, bytes]]:
        """Add one packet; return ``(channel, data)`` once the last packet arrives."""
        seq = (chan_byte & 0x60) >> 5
        last = bool(chan_byte & 0x80)
        chan = chan_byte & (MAX_CHANNELS - 1)
        data = bytes(payload[:BURST_PACKET_SIZE]).ljust(BURST_PACKET_SIZE, b"\0")

        if chan not in self._buffers:
            if seq != 0:
                _log(LogLevel.LOG_WARN, f"out of sequence ch# {chan} {seq}\n")
            else:
                self._start(chan, data)
        elif self._last_seq[chan] + 1 != seq:
            _log(
                LogLevel.LOG_WARN,
                f"out of sequence ch# {chan} {seq} l {self._last_seq[chan]}\n",
            )
            del self._buffers[chan]
            if seq == 0:
                self._start(chan, data)
                _log(LogLevel.LOG_WARN, f"reinit ch# {chan} {seq}\n")
        else:
            self._buffers[chan].extend(data)
            self._last_seq[chan] = 0 if seq == 3 else seq

        if last and chan in self._buffers:
            return chan, bytes(self._buffers.pop(chan))
        return None

    def _start(self, chan: int, data: bytes) -> None:
        self._buffers[chan] = bytearray(data)
        self._last_seq[chan] = 0


def open_serial(devname: str) -> BinaryIO:
    """Open a serial device raw at 115200 baud, 8N1 with hardware flow control."""
    fd = os.open(devname, os.O_RDWR)
    try:
        import termios

        iflag, oflag, cflag, lflag, _ispeed, _ospeed, cc = termios.tcgetattr(fd)
        iflag &= ~(
            termios.IGNBRK | termios.BRKINT | termios.PARMRK | termios.ISTRIP
            | termios.INLCR | termios.IGNCR | termios.ICRNL | termios.IXON
            | termios.IXOFF | termios.IXANY | termios.INPCK
            | getattr(termios, "IUCLC", 0)
        )
        oflag &= ~termios.OPOST
        lflag &= ~(
            termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG
            | termios.IEXTEN | termios.ECHOE
        )
        cflag &= ~(termios.CSIZE | termios.PARENB)
        cflag |= termios.CS8 | termios.CLOCAL | termios.CREAD | getattr(termios, "CRTSCTS", 0)
        cc[termios.VMIN] = 1
        cc[termios.VTIME] = 0
        termios.tcsetattr(
            fd,
            termios.TCSANOW,
            [iflag, oflag, cflag, lflag, termios.B115200, termios.B115200, cc],
        )
    except BaseException:
        os.close(fd)
        raise
    return os.fdopen(fd, "r+b", buffering=0)


class AntDevice:
    """Sends commands to an ANT stick and dispatches what it receives."""

    def __init__(self, port: Any, *, send_delay: float = 0.01, burst_delay: float = 0.02) -> None:
        self._port = port
        self._send_delay = send_delay
        self._burst_delay = burst_delay
        self._write_lock = threading.Lock()
        self._framer = Framer()
        self._bursts = BurstAssembler()
        self._pending_burst: Optional[bytes] = None
        self._response: Optional[ResponseCallback] = None
        self._channel_event: Optional[ChannelEventCallback] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[Exception] = None

    # -- sending -----------------------------------------------------------

    def send(self, msg_id: int, payload: bytes) -> bool:
        """Frame and write one message; return whether it was written whole."""
        frame = encode_message(msg_id, payload)
        if self._send_delay:
            time.sleep(self._send_delay)
        with self._write_lock:
            try:
                written = self._port.write(frame)
            except OSError as err:
                _log(LogLevel.LOG_ERR, f"failed write: {err}\n")
                return False
        if written is not None and written != len(frame):
            _log(LogLevel.LOG_ERR, f"failed write: {written} of {len(frame)} bytes\n")
            return False
        _log(LogLevel.LOG_DBG2, f">>> {' '.join(f'{b:02x}' for b in frame)}\n")
        return True

    def reset_system(self) -> bool:
        return self.send(MessageId.MESG_SYSTEM_RESET_ID, b"\x00")

    def cmd55(self, chan: int) -> bool:
        return self.send(0x55, bytes([chan]))

    def open_rx_scan_mode(self, chan: int) -> bool:
        return self.send(MessageId.MESG_OPEN_RX_SCAN_ID, bytes([chan]))

    def request_message(self, chan: int, mesg: int) -> bool:
        return self.send(MessageId.MESG_REQUEST_ID, bytes([chan, mesg]))

    def set_network_key_hex(self, net: int, key: str | bytes) -> bool:
        """Set a network key given as 16 hex digits."""
        if len(key) != 16:
            raise ValueError(f"Bad key length {key!r}")
        return self.set_network_key(net, parse_hex(key))

    def set_network_key(self, net: int, key: bytes) -> bool:
        if len(key) < 8:
            raise ValueError("network key needs 8 bytes")
        return self.send(MessageId.MESG_NETWORK_KEY_ID, bytes([net]) + bytes(key[:8]))

    def assign_channel(self, chan: int, chtype: int, net: int) -> bool:
        return self.send(MessageId.MESG_ASSIGN_CHANNEL_ID, bytes([chan, chtype, net]))

    def unassign_channel(self, chan: int) -> bool:
        return self.send(MessageId.MESG_UNASSIGN_CHANNEL_ID, bytes([chan]))

    def set_channel_id(self, chan: int, dev: int, devtype: int, manid: int) -> bool:
        payload = bytes([chan]) + (dev & 0xFFFF).to_bytes(2, "little") + bytes([devtype, manid])
        return self.send(MessageId.MESG_CHANNEL_ID_ID, payload)

    def set_channel_rf_freq(self, chan: int, freq: int) -> bool:
        return self.send(MessageId.MESG_CHANNEL_RADIO_FREQ_ID, bytes([chan, freq]))

    def set_channel_period(self, chan: int, period: int) -> bool:
        payload = bytes([chan]) + (period & 0xFFFF).to_bytes(2, "little")
        return self.send(MessageId.MESG_CHANNEL_MESG_PERIOD_ID, payload)

    def set_channel_search_timeout(self, chan: int, timeout: int) -> bool:
        return self.send(MessageId.MESG_CHANNEL_SEARCH_TIMEOUT_ID, bytes([chan, timeout]))

    def set_search_waveform(self, chan: int, waveform: int) -> bool:
        payload = bytes([chan]) + (waveform & 0xFFFF).to_bytes(2, "little")
        return self.send(MessageId.MESG_SEARCH_WAVEFORM_ID, payload)

    def send_acknowledged_data_hex(self, chan: int, data: str | bytes) -> bool:
        """Send 8 bytes of acknowledged data given as 16 hex digits."""
        if len(data) != 16:
            raise ValueError(f"Bad data length {data!r}")
        return self.send_acknowledged_data(chan, parse_hex(data))

    def send_acknowledged_data(self, chan: int, data: bytes) -> bool:
        if len(data) < 8:
            raise ValueError("acknowledged data needs 8 bytes")
        return self.send(MessageId.MESG_ACKNOWLEDGED_DATA_ID, bytes([chan]) + bytes(data[:8]))

    def send_burst_transfer_hex(self, chan: int, data: str | bytes, numpkts: int) -> int:
        """Send ``numpkts`` burst packets given as hex digits, 16 per packet."""
        if len(data) != 16 * numpkts:
            raise ValueError(f"Bad data length {data!r} numpkts {numpkts}")
        return self.send_burst_transfer(chan, parse_hex(data), numpkts)

    def send_burst_transfer(self, chan: int, data: bytes, numpkts: int) -> int:
        """Send ``numpkts`` 8-byte burst packets; return the number sent."""
        if len(data) < BURST_PACKET_SIZE * numpkts:
            raise ValueError(f"burst of {numpkts} packets needs {8 * numpkts} bytes")
        seq = 0
        for index in range(numpkts):
            last = 0x80 if index == numpkts - 1 else 0
            chunk = data[index * BURST_PACKET_SIZE:(index + 1) * BURST_PACKET_SIZE]
            if self._burst_delay:
                time.sleep(self._burst_delay)
            self.send(MessageId.MESG_BURST_DATA_ID, bytes([chan | (seq << 5) | last]) + bytes(chunk))
            seq = seq + 1 if seq < 3 else 1
        return numpkts

    def open_channel(self, chan: int) -> bool:
        return self.send(MessageId.MESG_OPEN_CHANNEL_ID, bytes([chan]))

    def close_channel(self, chan: int) -> bool:
        return self.send(MessageId.MESG_CLOSE_CHANNEL_ID, bytes([chan]))

    # -- receiving ---------------------------------------------------------

    def assign_response_function(self, callback: Optional[ResponseCallback]) -> None:
        """Call ``callback(chan, event, payload)`` for responses and replies."""
        self._response = callback

    def assign_channel_event_function(self, chan: int, callback: Optional[ChannelEventCallback]) -> None:
        """Call ``callback(chan, event, data)`` for received channel data."""
        self._channel_event = callback

    def process(self, data: bytes) -> list[Frame]:
        """Feed received bytes, dispatch every complete frame and return them."""
        frames = self._framer.feed(data)
        for frame in frames:
            self._dispatch(frame)
        return frames

    def _dispatch(self, frame: Frame) -> None:
        msg_id, payload = frame.msg_id, frame.payload
        if msg_id == MessageId.MESG_RESPONSE_EVENT_ID:
            if self._response is not None:
                code = payload[2] if len(payload) > 2 else 0
                self._response(payload[0], code, payload)
            return
        event = _DATA_EVENTS.get(msg_id)
        if event is None:
            if self._response is not None:
                self._response(payload[0], msg_id, payload)
            return
        if msg_id == MessageId.MESG_BURST_DATA_ID:
            completed = self._bursts.add(payload[0], payload[1:1 + BURST_PACKET_SIZE])
            if completed is not None:
                self._pending_burst = completed[1]
        if self._channel_event is None:
            return
        chan = payload[0] & (MAX_CHANNELS - 1)
        self._channel_event(chan, event, payload[1:])
        if event == EVENT_RX_BURST_PACKET and self._pending_burst:
            burst, self._pending_burst = self._pending_burst, None
            self._channel_event(chan, EVENT_RX_FAKE_BURST, burst)

    # -- background reader -------------------------------------------------

    def start(self) -> None:
        """Start reading from the port in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("reader already running")
        self._stop.clear()
        self.error = None
        self._thread = threading.Thread(target=self._read_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background reader and wait for it."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join()

    def __enter__(self) -> "AntDevice":
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def _selectable(self) -> bool:
        try:
            self._port.fileno()
        except (AttributeError, OSError, ValueError):
            return False
        return True

    def _read_loop(self) -> None:
        selectable = self._selectable()
        try:
            while not self._stop.is_set():
                if selectable:
                    ready, _, _ = select.select([self._port], [], [], 1.0)
                    if not ready:
                        continue
                chunk = self._port.read(READ_CHUNK)
                if not chunk:
                    self._stop.wait(0.01)
                    continue
                self.process(chunk)
        except (FrameError, OSError) as err:
            self.error = err
            _log(LogLevel.LOG_ERR, f"reader stopped: {err}\n")