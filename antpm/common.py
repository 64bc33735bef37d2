"""Small helpers shared by the tools: formatting, paths, key storage."""

from __future__ import annotations

import os
import struct
import sys
import time

from antpm.antdefs import APP_NAME
from antpm.log import Log, LogLevel

ANTPM_RETRIES = 30
ANTPM_RETRY_MS = 1000
ANTPM_MAX_CHANNELS = 56

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_NATIVE_U64 = struct.Struct("=Q")
_U64_MASK = 0xFFFFFFFFFFFFFFFF
_INT_MASK = 0xFFFFFFFF


def sleep_ms(timeout_ms: float) -> None:
    """Sleep for ``timeout_ms`` milliseconds."""
    time.sleep(timeout_ms / 1000.0)


def itoa(value: int, base: int = 10) -> str:
    """Render ``value`` in ``base`` (2..36) with lower-case digits and a leading minus."""
    if not 2 <= base <= 36:
        raise ValueError(f"base must be in [2, 36], got {base}")
    magnitude = abs(value)
    digits = []
    while True:
        magnitude, rem = divmod(magnitude, base)
        digits.append(_DIGITS[rem])
        if magnitude == 0:
            break
    if value < 0:
        digits.append("-")
    return "".join(reversed(digits))


def _pad(text: str, width: int, fill: str) -> str:
    if width == -1:
        return text
    return text.rjust(width, fill)


def to_hex_string(val: int | str, width: int = -1, fill: str = " ") -> str:
    """Hexadecimal form of ``val`` right-aligned to ``width`` with ``fill``.

    Negative integers are shown as their 32-bit two's complement; a
    single character is shown as itself.
    """
    if isinstance(val, str):
        text = val
    else:
        number = int(val)
        if number < 0:
            number &= _INT_MASK
        text = format(number, "x")
    return _pad(text, width, fill)


def to_dec_string(val: int | float | str, width: int = -1, fill: str = " ") -> str:
    """Decimal form of ``val`` right-aligned to ``width`` with ``fill``."""
    if isinstance(val, str):
        text = val
    elif isinstance(val, float):
        text = format(val, "g")
    else:
        text = str(int(val))
    return _pad(text, width, fill)


def split(s: str, delimiter: str) -> list[str]:
    """Split ``s`` on ``delimiter``; a trailing empty field is dropped."""
    parts = s.split(delimiter)
    if parts and parts[-1] == "":
        parts.pop()
    return parts


def ends_with(s: str, ending: str) -> bool:
    return s.endswith(ending)


def get_date_string() -> str:
    """Current local time as ``YYYY_MM_DD_hh_mm_ss``."""
    return time.strftime("%Y_%m_%d_%H_%M_%S", time.localtime())


def get_config_folder() -> str:
    """Folder that holds configuration and pairing data, ending in a slash."""
    antpm_dir = os.environ.get("ANTPM_DIR")
    if antpm_dir:
        return antpm_dir + "/"
    if sys.platform != "win32":
        xdg = os.environ.get("XDG_CONFIG_HOME")
        home = os.environ.get("HOME")
        if xdg:
            return f"{xdg}/{APP_NAME}/"
        if home:
            return f"{home}/.config/{APP_NAME}/"
    else:
        profile = os.environ.get("USERPROFILE")
        if profile:
            return f"{profile}/.config/{APP_NAME}/"
    return f"~/.config/{APP_NAME}/"


def get_config_file_name() -> str:
    return get_config_folder() + "/config.ini"


def _auth_file_name(client_sn: int) -> str:
    return f"{get_config_folder()}libantpmauth_{client_sn}"


def read_paired_key(client_sn: int) -> int | None:
    """Read the stored pairing key of a device.

    Returns ``None`` when no key file exists and ``0`` when the file is too short.
    """
    path = _auth_file_name(client_sn)
    try:
        with open(path, "rb") as f:
            raw = f.read(_NATIVE_U64.size)
    except OSError:
        Log.instance().log(LogLevel.LOG_INF, f"auth file= {path}, found= False\n")
        return None
    key = _NATIVE_U64.unpack(raw)[0] if len(raw) == _NATIVE_U64.size else 0
    Log.instance().log(LogLevel.LOG_INF, f"auth file= {path}, found= True, key= {key}\n")
    return key


def write_paired_key(client_sn: int, key: int) -> bool:
    """Store the pairing key of a device; return whether it was written."""
    path = _auth_file_name(client_sn)
    try:
        with open(path, "wb") as f:
            f.write(_NATIVE_U64.pack(key & _U64_MASK))
    except OSError:
        Log.instance().log(LogLevel.LOG_INF, f"auth file= {path}, written= False\n")
        return False
    Log.instance().log(LogLevel.LOG_INF, f"auth file= {path}, written= True, key= {key}\n")
    return True


def swap_dword(a: int) -> int:
    """Reverse the byte order of a 64-bit value."""
    return int.from_bytes((a & _U64_MASK).to_bytes(8, "little"), "big")


def read_file(file_name: str | os.PathLike[str]) -> bytes:
    """Whole contents of a file, or empty bytes if it cannot be opened."""
    try:
        with open(file_name, "rb") as f:
            return f.read()
    except OSError:
        return b""


def mk_dir(dir_name: str | os.PathLike[str]) -> bool:
    """Create a directory and its parents; return whether anything was created."""
    Log.instance().log(LogLevel.LOG_DBG, f'mkDir: "{dir_name}"\n')
    if os.path.isdir(dir_name):
        return False
    try:
        os.makedirs(dir_name)
    except OSError as err:
        Log.instance().log(
            LogLevel.LOG_WARN,
            f"mkDir: failed\n\twhat  {err.strerror}\n\tpath1 ={err.filename}\n",
        )
        return False
    return True


def folder_exists(dir_name: str | os.PathLike[str]) -> bool:
    return os.path.isdir(dir_name)


def is_antpm405_override() -> bool:
    """Whether ANTPM_405 in the environment starts with ``1``."""
    return os.environ.get("ANTPM_405", "").startswith("1")