"""Soft access point control: hostapd configuration and process lifecycle."""

from __future__ import annotations

import hashlib
import logging
import re
import subprocess
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

log = logging.getLogger(__name__)

HOSTAPD_CONF_FILE = "/data/misc/wifi/hostapd.conf"
HOSTAPD_BIN_FILE = "/system/bin/hostapd"
HOSTAPD_SOCKETS_DIR = "/data/misc/wifi/sockets"
HOSTAPD_CTRL_DIR = "/data/misc/wifi/hostapd"
WIFI_ENTROPY_FILE = "/data/misc/wifi/entropy.bin"

AP_BSS_START_DELAY = 0.2
AP_BSS_STOP_DELAY = 0.5
AP_CHANNEL_DEFAULT = 6

PSK_ITERATIONS = 4096
PSK_LENGTH = 32

_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?\d+)")


class HostapdProcess(Protocol):
    """The part of :class:`subprocess.Popen` the controller relies on."""

    def terminate(self) -> None: ...

    def wait(self) -> int: ...


Spawner = Callable[[Sequence[str]], HostapdProcess]


def _spawn_hostapd(args: Sequence[str]) -> HostapdProcess:
    return subprocess.Popen(list(args))


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def generate_psk(ssid: str, passphrase: str) -> str:
    """Derive the WPA pre-shared key (PBKDF2-HMAC-SHA1, 4096 rounds) as hex."""
    key = hashlib.pbkdf2_hmac(
        "sha1", passphrase.encode(), ssid.encode(), PSK_ITERATIONS, PSK_LENGTH
    )
    return key.hex()


def build_hostapd_config(args: Sequence[str]) -> str:
    """Build hostapd.conf text from ``[iface, ssid, hidden|broadcast, channel, security, key]``.

    Only the first three items are required. An unknown security mode gives
    an empty configuration. Raises ValueError when arguments are missing.
    """
    args = list(args)
    if len(args) < 3:
        raise ValueError(
            "softap set is missing arguments: <wlan iface> <SSID> <hidden/broadcast> "
            "<channel> <wpa2?-psk|open> <passphrase>"
        )
    iface, ssid, visibility = args[:3]
    hidden = 1 if visibility.lower() == "hidden" else 0
    channel = _atoi(args[3]) if len(args) > 3 else AP_CHANNEL_DEFAULT
    if channel <= 0:
        channel = AP_CHANNEL_DEFAULT
    hw_mode = "g" if channel <= 14 else "a"

    base = (
        f"interface={iface}\n"
        "driver=nl80211\n"
        f"ctrl_interface={HOSTAPD_CTRL_DIR}\n"
        f"ssid={ssid}\n"
        f"channel={channel}\n"
        "ieee80211n=1\n"
        f"hw_mode={hw_mode}\n"
        f"ignore_broadcast_ssid={hidden}\n"
        "wowlan_triggers=any\n"
    )

    if len(args) > 5:
        security, passphrase = args[4], args[5]
        if security == "wpa-psk":
            psk = generate_psk(ssid, passphrase)
            return f"{base}wpa=3\nwpa_pairwise=TKIP CCMP\nwpa_psk={psk}\n"
        if security == "wpa2-psk":
            psk = generate_psk(ssid, passphrase)
            return f"{base}wpa=2\nrsn_pairwise=CCMP\nwpa_psk={psk}\n"
        return base if security == "open" else ""
    if len(args) > 4:
        return base if args[4] == "open" else ""
    return base


class SoftapController:
    """Writes the hostapd configuration and starts and stops hostapd."""

    def __init__(
        self,
        *,
        conf_file: str | Path = HOSTAPD_CONF_FILE,
        hostapd_bin: str = HOSTAPD_BIN_FILE,
        sockets_dir: str | Path = HOSTAPD_SOCKETS_DIR,
        ctrl_dir: str | Path = HOSTAPD_CTRL_DIR,
        entropy_file: str = WIFI_ENTROPY_FILE,
        spawn: Spawner = _spawn_hostapd,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._conf_file = Path(conf_file)
        self._hostapd_bin = hostapd_bin
        self._sockets_dir = Path(sockets_dir)
        self._ctrl_dir = Path(ctrl_dir)
        self._entropy_file = entropy_file
        self._spawn = spawn
        self._sleep = sleep
        self._process: HostapdProcess | None = None
        self.ctrl_interface: Path = self._ctrl_dir / "wlan0"

    def _ensure_sockets_dir(self) -> None:
        try:
            self._sockets_dir.mkdir(mode=0o777)
        except FileExistsError:
            log.debug("%s already exists", self._sockets_dir)
            return
        except PermissionError:
            log.error("Cant open %s , check permissions", self._sockets_dir)
            return
        self._sockets_dir.chmod(0o770)

    def start_softap(self, global_ctrl_iface: bool = False, ifname: str | None = None) -> None:
        """Start hostapd; does nothing if it is already running.

        Raises OSError if hostapd cannot be started.
        """
        if self._process is not None:
            log.error("SoftAP is already running")
            return
        args = [self._hostapd_bin, "-e", self._entropy_file]
        if global_ctrl_iface:
            args += ["-ddd", "-g", str(self._ctrl_dir / "global")]
        args.append(str(self._conf_file))
        self._process = self._spawn(args)
        log.debug("SoftAP started successfully")
        self._sleep(AP_BSS_START_DELAY)
        self._ensure_sockets_dir()
        if ifname:
            self.ctrl_interface = self._ctrl_dir / ifname

    def stop_softap(self) -> None:
        """Stop hostapd; does nothing if it is not running."""
        process = self._process
        if process is None:
            log.error("SoftAP is not running")
            return
        log.debug("Stopping the SoftAP service...")
        process.terminate()
        process.wait()
        self._process = None
        log.debug("SoftAP stopped successfully")
        self._sleep(AP_BSS_STOP_DELAY)

    def is_softap_started(self) -> bool:
        """Whether hostapd is running."""
        return self._process is not None

    def set_softap(self, args: Sequence[str]) -> None:
        """Write the configuration built from ``args`` to the hostapd.conf file."""
        config = build_hostapd_config(args)
        self._conf_file.write_text(config)
        self._conf_file.chmod(0o660)