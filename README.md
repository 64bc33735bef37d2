# antpm

Building blocks for talking to an ANT wireless USB/serial stick: protocol
identifiers, message framing and checksums, burst reassembly, a serial
device driver, a levelled logger and small configuration helpers.

## Modules

- `antpm.antdefs`: ANT protocol identifiers as `IntEnum`s (`MessageId`,
  `ResponseCode`, `AntFSCommand`, `AntFSResponse`, `StateFSWork`,
  `ModeOfOperation`) and name lookups: `msg_name()`, `response_name()`,
  `antfs_command_name()` and `antfs_response_name()` return `"UNKNOWN"` for
  values they do not know. `state_fs_work_to_str()` and
  `mode_of_operation_to_str()` return `"???"` in that case.
  `get_version_string()` describes the version, platform, Python runtime and
  byte order.
- `antpm.log`: `LogLevel` and `Log`. A `Log` writes prefixed messages
  (`"ERROR: "`, `"WW: "`, `"II: "`, `"DBG: "`) to every stream added with
  `add_sink()`. Given a file name, it moves an existing file to `<name>.old`
  before it opens the new one. `Log.instance()` returns a shared log.
  `log()` writes only levels that pass `reporting_level`. `printf()`
  truncates the message to 1023 characters.
- `antpm.common`: `itoa()`, `to_hex_string()`, `to_dec_string()`, `split()`,
  `ends_with()`, `swap_dword()`, `get_date_string()`, `get_config_folder()`
  (from `ANTPM_DIR`, `XDG_CONFIG_HOME` or `HOME`), `get_config_file_name()`,
  `read_paired_key()` / `write_paired_key()` (8-byte key files named
  `libantpmauth_<serial>` in the config folder), `read_file()`, `mk_dir()`,
  `folder_exists()`, `is_antpm405_override()` and `sleep_ms()`.
- `antpm.gant.antlib`: serial framing and the device driver.
  - `encode_message()` builds a frame: sync byte, length, id, payload and
    XOR checksum.
  - `Framer.feed()` turns received bytes into `Frame` objects. It skips
    garbage and bad checksums. It raises `FrameError` when more than 300
    bytes pile up without a frame.
  - `BurstAssembler.add()` joins sequenced 8-byte burst packets for each
    channel into whole transfers.
  - `parse_hex()` decodes hex digit strings.
  - `open_serial()` opens a POSIX serial device raw at 115200 baud.
  - `AntDevice` wraps a port. It has command methods (`reset_system`,
    `assign_channel`, `set_channel_period`, `set_network_key`,
    `send_acknowledged_data`, `send_burst_transfer`, `open_channel`, ...)
    and callbacks for responses and channel events. When a burst transfer
    completes, the channel-event callback also receives it as one
    `EVENT_RX_FAKE_BURST` event. `process()` dispatches received bytes.
    `start()` and `stop()` run and end a background reader.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from antpm.antdefs import MessageId, msg_name
from antpm.gant.antlib import Framer, encode_message

frame = encode_message(MessageId.MESG_OPEN_CHANNEL_ID, bytes([0]))
for message in Framer().feed(frame):
    print(msg_name(message.msg_id), message.payload.hex())
```

Driving a stick:

```python
from antpm.gant.antlib import AntDevice, open_serial

with AntDevice(open_serial("/dev/ttyUSB0")) as dev:
    dev.assign_response_function(lambda chan, event, data: print(chan, event, data.hex()))
    dev.start()
    dev.reset_system()
```

## What this package does not do

The package has no command-line program. It does not pair with or
authenticate to a watch. It does not run a download session and writes no
activity files (TCX or otherwise). It gives you the framing, the device
driver and the helpers. The protocol conversation with a device is left to
your code.