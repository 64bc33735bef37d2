"""ANT protocol identifiers, name lookups and build information."""

from __future__ import annotations

import platform
import sys
from enum import IntEnum

APP_NAME = "antpm"
VERSION = "1.0.0"

MESG_DATA_SIZE = 30
MESG_RESPONSE_EVENT_SIZE = 3
MESG_TX_SYNC = 0xA4

ANTP_NETKEY_HR = bytes([0xB9, 0xA5, 0x21, 0xFB, 0xBD, 0x72, 0xC3, 0x45])
ANTP_NETKEY = bytes([0xA8, 0xA4, 0x23, 0xB9, 0xF5, 0x5E, 0x63, 0xC1])  # ANT+Sport

# first byte of an ANT-FS packet
ANTFS_BEACON_ID = 0x43
ANTFS_COMMAND_RESPONSE_ID = 0x44

# Sun Dec 31 00:00:00 UTC 1989
GARMIN_EPOCH = 631065600

UNKNOWN_NAME = "UNKNOWN"
UNKNOWN_STATE = "???"


class MessageId(IntEnum):
    """Message identifiers of the ANT serial protocol."""

    MESG_EVENT_ID = 0x01
    MESG_VERSION_ID = 0x3E
    MESG_RESPONSE_EVENT_ID = 0x40
    MESG_UNASSIGN_CHANNEL_ID = 0x41
    MESG_ASSIGN_CHANNEL_ID = 0x42
    MESG_CHANNEL_MESG_PERIOD_ID = 0x43
    MESG_CHANNEL_SEARCH_TIMEOUT_ID = 0x44
    MESG_CHANNEL_RADIO_FREQ_ID = 0x45
    MESG_NETWORK_KEY_ID = 0x46
    MESG_SEARCH_WAVEFORM_ID = 0x49
    MESG_SYSTEM_RESET_ID = 0x4A
    MESG_OPEN_CHANNEL_ID = 0x4B
    MESG_CLOSE_CHANNEL_ID = 0x4C
    MESG_REQUEST_ID = 0x4D
    MESG_BROADCAST_DATA_ID = 0x4E
    MESG_ACKNOWLEDGED_DATA_ID = 0x4F
    MESG_BURST_DATA_ID = 0x50
    MESG_CHANNEL_ID_ID = 0x51
    MESG_CHANNEL_STATUS_ID = 0x52
    MESG_CAPABILITIES_ID = 0x54
    MESG_OPEN_RX_SCAN_ID = 0x5B
    MESG_EXT_BROADCAST_DATA_ID = 0x5D
    MESG_EXT_ACKNOWLEDGED_DATA_ID = 0x5E
    MESG_EXT_BURST_DATA_ID = 0x5F
    MESG_GET_SERIAL_NUM_ID = 0x61
    MESG_STARTUP_MSG_ID = 0x6F


class ResponseCode(IntEnum):
    """Response and event codes reported by an ANT device."""

    RESPONSE_NO_ERROR = 0x00
    EVENT_RX_SEARCH_TIMEOUT = 0x01
    EVENT_RX_FAIL = 0x02
    EVENT_TX = 0x03
    EVENT_TRANSFER_RX_FAILED = 0x04
    EVENT_TRANSFER_TX_COMPLETED = 0x05
    EVENT_TRANSFER_TX_FAILED = 0x06
    EVENT_CHANNEL_CLOSED = 7
    EVENT_RX_FAIL_GO_TO_SEARCH = 8
    EVENT_CHANNEL_COLLISION = 9
    EVENT_TRANSFER_TX_START = 10
    CHANNEL_IN_WRONG_STATE = 21
    CHANNEL_NOT_OPENED = 22
    CHANNEL_ID_NOT_SET = 24
    CLOSE_ALL_CHANNELS = 25
    TRANSFER_IN_PROGRESS = 31
    TRANSFER_SEQUENCE_NUMBER_ERROR = 32
    TRANSFER_IN_ERROR = 33


class AntFSCommand(IntEnum):
    """Second byte of an ANT-FS command packet."""

    ANTFS_CmdLink = 0x02
    ANTFS_CmdDisconnect = 0x03
    ANTFS_CmdAuthenticate = 0x04
    ANTFS_CmdPing = 0x05
    ANTFS_ReqDownload = 0x09
    ANTFS_ReqUpload = 0x0A
    ANTFS_ReqErase = 0x0B
    ANTFS_UploadData = 0x0C
    ANTFS_CmdDirect = 0x0D


class AntFSResponse(IntEnum):
    """Second byte of an ANT-FS response packet."""

    ANTFS_RespAuthenticate = 0x84
    ANTFS_RespDownload = 0x89
    ANTFS_RespUpload = 0x8A
    ANTFS_RespErase = 0x8B
    ANTFS_RespUploadData = 0x8C
    ANTFS_RespDirect = 0x8D


class StateFSWork(IntEnum):
    """States of the ANT-FS download state machine."""

    ST_ANTFS_0 = 0
    ST_ANTFS_NODATA = 999
    ST_ANTFS_RESTART = 1000
    ST_ANTFS_START0 = 1001
    ST_ANTFS_LINKING = 1005
    ST_ANTFS_AUTH0_SN = 1012
    ST_ANTFS_AUTH1_PASS = 1013
    ST_ANTFS_AUTH1_PAIR = 1017
    ST_ANTFS_DL_DIRECTORY = 1024
    ST_ANTFS_DL_FILES = 1025
    ST_ANTFS_DL_SINGLE_FILE = 1027
    ST_ANTFS_GINTF_DL_CAPS = 1034
    ST_ANTFS_ERASE_SINGLE_FILE = 500
    ST_ANTFS_BAD = 1006
    ST_ANTFS_LAST = 1007


class ModeOfOperation(IntEnum):
    """What a download session is asked to do."""

    MD_DOWNLOAD_ALL = 0
    MD_DOWNLOAD_SINGLE_FILE = 1
    MD_DIRECTORY_LISTING = 2
    MD_ERASE_SINGLE_FILE = 3
    MD_ERASE_ALL_ACTIVITIES = 4
    MD_LAST = 5


def _name_of(enum_cls: type[IntEnum], value: int, default: str) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return default


def msg_name(value: int) -> str:
    """Name of a message id, or ``"UNKNOWN"``."""
    return _name_of(MessageId, value, UNKNOWN_NAME)


def response_name(value: int) -> str:
    """Name of a response code, or ``"UNKNOWN"``."""
    return _name_of(ResponseCode, value, UNKNOWN_NAME)


def antfs_command_name(value: int) -> str:
    """Name of an ANT-FS command, or ``"UNKNOWN"``."""
    return _name_of(AntFSCommand, value, UNKNOWN_NAME)


def antfs_response_name(value: int) -> str:
    """Name of an ANT-FS response, or ``"UNKNOWN"``."""
    return _name_of(AntFSResponse, value, UNKNOWN_NAME)


def state_fs_work_to_str(value: int) -> str:
    """Name of a download state, or ``"???"``."""
    return _name_of(StateFSWork, value, UNKNOWN_STATE)


def mode_of_operation_to_str(value: int) -> str:
    """Name of a mode of operation, or ``"???"``."""
    return _name_of(ModeOfOperation, value, UNKNOWN_STATE)


def _os_name() -> str:
    is_64 = sys.maxsize > 2**32
    if sys.platform.startswith("linux"):
        return "linux64" if is_64 else "linux32"
    if sys.platform == "win32":
        return "win64" if is_64 else "win32"
    if sys.platform == "darwin":
        return "macos"
    return "unknown_os"


def get_version_string() -> str:
    """Describe the program version, platform, runtime and byte order."""
    runtime = f"{platform.python_implementation()} {platform.python_version()}"
    endian = " LittleEndian" if sys.byteorder == "little" else " BigEndian"
    return f"{APP_NAME} v{VERSION} built  under {_os_name()} with {runtime}{endian}"