"""Tethering: IP forwarding, the DHCP/DNS daemon and tethered interfaces."""

from __future__ import annotations

import errno
import ipaddress
import logging
import re
import subprocess
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import IO, Protocol

from netdctl.permission import FWMARK_NET_ID_MASK, Fwmark, Permission

log = logging.getLogger(__name__)

BP_TOOLS_MODE = "bp-tools"
IPV4_FORWARDING_PROC_FILE = "/proc/sys/net/ipv4/ip_forward"
IPV6_FORWARDING_PROC_FILE = "/proc/sys/net/ipv6/conf/all/forwarding"
IPV6_CONF_DIR = "/proc/sys/net/ipv6/conf"
DNSMASQ_PATH = "/system/bin/dnsmasq"
SEPARATOR = "|"
MAX_CMD_SIZE = 1024

_IFACE_NAME = re.compile(r"[A-Za-z0-9_\-.:]{1,15}")


class TetherError(OSError):
    """A tethering operation failed; ``errno`` tells why."""


class Ipv6Configurator(Protocol):
    """Per-interface IPv6 settings; each method raises OSError on failure."""

    def set_enable_ipv6(self, interface: str, enable: bool) -> None: ...

    def set_accept_ipv6_ra(self, interface: str, accept: bool) -> None: ...

    def set_accept_ipv6_dad(self, interface: str, accept: bool) -> None: ...

    def set_ipv6_dad_transmits(self, interface: str, value: str) -> None: ...


class ProcSysIpv6Configurator:
    """Applies IPv6 interface settings through the proc filesystem."""

    def __init__(self, conf_dir: str | Path = IPV6_CONF_DIR) -> None:
        self._conf_dir = Path(conf_dir)

    def _write(self, interface: str, name: str, value: str) -> None:
        (self._conf_dir / interface / name).write_text(value)

    def set_enable_ipv6(self, interface: str, enable: bool) -> None:
        self._write(interface, "disable_ipv6", "0" if enable else "1")

    def set_accept_ipv6_ra(self, interface: str, accept: bool) -> None:
        self._write(interface, "accept_ra", "1" if accept else "0")

    def set_accept_ipv6_dad(self, interface: str, accept: bool) -> None:
        self._write(interface, "accept_dad", "1" if accept else "0")

    def set_ipv6_dad_transmits(self, interface: str, value: str) -> None:
        self._write(interface, "dad_transmits", value)


class DaemonProcess(Protocol):
    """The part of :class:`subprocess.Popen` the controller relies on."""

    stdin: IO[bytes] | None

    def terminate(self) -> None: ...

    def wait(self) -> int: ...


Spawner = Callable[[Sequence[str]], DaemonProcess]


def _spawn_daemon(args: Sequence[str]) -> DaemonProcess:
    return subprocess.Popen(list(args), stdin=subprocess.PIPE)


def _is_iface_name(name: str) -> bool:
    return bool(_IFACE_NAME.fullmatch(name)) and name not in (".", "..")


def _write_file(path: str | Path, value: str) -> bool:
    try:
        Path(path).write_text(value)
    except OSError as exc:
        log.error("Failed to write %s to %s: %s", value, path, exc)
        return False
    return True


class TetherController:
    """Tracks forwarding requests, the tethering daemon and tethered interfaces."""

    def __init__(
        self,
        *,
        ipv4_forwarding_file: str | Path = IPV4_FORWARDING_PROC_FILE,
        ipv6_forwarding_file: str | Path = IPV6_FORWARDING_PROC_FILE,
        ipv6_configurator: Ipv6Configurator | None = None,
        spawn: Spawner = _spawn_daemon,
        dnsmasq_path: str = DNSMASQ_PATH,
        boot_mode: str = "unknown",
    ) -> None:
        self._forwarding_files = (Path(ipv4_forwarding_file), Path(ipv6_forwarding_file))
        self._ipv6 = ipv6_configurator or ProcSysIpv6Configurator()
        self._spawn = spawn
        self._dnsmasq_path = dnsmasq_path
        self._interfaces: list[str] = []
        self._dns_net_id = 0
        self._dns_forwarders: list[str] = []
        self._daemon: DaemonProcess | None = None
        self._forwarding_requests: set[str] = set()
        try:
            # In BP tools mode IP forwarding stays enabled.
            if boot_mode == BP_TOOLS_MODE:
                self.enable_forwarding(BP_TOOLS_MODE)
            else:
                self._set_ip_fwd_enabled()
        except TetherError as exc:
            log.error("%s", exc)

    # Forwarding -----------------------------------------------------------

    def _set_ip_fwd_enabled(self) -> None:
        value = "1" if self._forwarding_requests else "0"
        log.debug("Setting IP forward enable = %s", value)
        results = [_write_file(path, value) for path in self._forwarding_files]
        if not all(results):
            raise TetherError(errno.EIO, f"failed to set IP forwarding to {value}")

    def enable_forwarding(self, requester: str) -> None:
        """Register ``requester``; forwarding is switched on by the first one."""
        trigger = not self._forwarding_requests
        self._forwarding_requests.add(requester)
        if trigger:
            self._set_ip_fwd_enabled()

    def disable_forwarding(self, requester: str) -> None:
        """Drop ``requester``; forwarding is switched off when none remain."""
        self._forwarding_requests.discard(requester)
        if not self._forwarding_requests:
            self._set_ip_fwd_enabled()

    def forwarding_request_count(self) -> int:
        """Number of distinct requesters that want forwarding on."""
        return len(self._forwarding_requests)

    # Daemon -----------------------------------------------------------------

    def _daemon_args(self, dhcp_ranges: Sequence[str]) -> list[str]:
        if len(dhcp_ranges) % 2:
            raise ValueError("DHCP ranges must come in start/end pairs")
        args = [
            self._dnsmasq_path,
            "--keep-in-foreground",
            "--no-resolv",
            "--no-poll",
            "--dhcp-authoritative",
            "--dhcp-option-force=43,ANDROID_METERED",
            "--pid-file",
            "",
        ]
        pairs = zip(dhcp_ranges[::2], dhcp_ranges[1::2])
        args.extend(f"--dhcp-range={start},{end},1h" for start, end in pairs)
        return args

    def start_tethering(self, dhcp_ranges: Sequence[str]) -> None:
        """Start the DHCP/DNS daemon serving ``dhcp_ranges`` (start, end, ...)."""
        if self._daemon is not None:
            raise TetherError(errno.EBUSY, "Tethering already started")
        args = self._daemon_args(list(dhcp_ranges))
        log.debug("Starting tethering services")
        try:
            self._daemon = self._spawn(args)
        except OSError as exc:
            raise TetherError(exc.errno or errno.EIO, f"failed to start daemon: {exc}") from exc
        try:
            self.apply_dns_interfaces()
        except TetherError as exc:
            log.error("%s", exc)
        log.debug("Tethering services running")

    def stop_tethering(self) -> None:
        """Stop the daemon; does nothing if it is not running."""
        daemon = self._daemon
        if daemon is None:
            log.error("Tethering already stopped")
            return
        log.debug("Stopping tethering services")
        daemon.terminate()
        daemon.wait()
        self._daemon = None
        if daemon.stdin is not None:
            try:
                daemon.stdin.close()
            except OSError:
                pass
        log.debug("Tethering services stopped")

    def is_tethering_started(self) -> bool:
        """Whether the daemon is running."""
        return self._daemon is not None

    def _send_to_daemon(self, command: str) -> None:
        assert self._daemon is not None
        log.debug("Sending update msg to dnsmasq [%s]", command)
        stream = self._daemon.stdin
        try:
            if stream is None:
                raise BrokenPipeError("daemon has no command pipe")
            stream.write(command.encode() + b"\0")
            stream.flush()
        except (OSError, ValueError) as exc:
            raise TetherError(
                errno.EREMOTEIO, f"Failed to send update command to dnsmasq ({exc})"
            ) from exc

    # DNS --------------------------------------------------------------------

    @property
    def dns_net_id(self) -> int:
        """Network id used for forwarded DNS queries."""
        return self._dns_net_id

    @property
    def dns_forwarders(self) -> tuple[str, ...]:
        """Upstream DNS servers handed to the daemon."""
        return tuple(self._dns_forwarders)

    def set_dns_forwarders(self, net_id: int, servers: Iterable[str]) -> None:
        """Set the upstream DNS servers and the network they are reached on.

        Servers past the command size limit are dropped. Raises TetherError
        with EINVAL for a server that is not a numeric address, and with
        EREMOTEIO if the running daemon cannot be told.
        """
        mark = Fwmark(
            net_id=net_id & FWMARK_NET_ID_MASK,
            explicitly_selected=True,
            protected_from_vpn=True,
            permission=Permission.SYSTEM,
        )
        command = f"update_dns{SEPARATOR}{mark.to_int():#x}"
        self._dns_forwarders.clear()
        for index, server in enumerate(servers):
            log.debug("setDnsForwarders(%#x %d = '%s')", mark.to_int(), index, server)
            try:
                ipaddress.ip_address(server)
            except ValueError:
                self._dns_forwarders.clear()
                raise TetherError(errno.EINVAL, f"Failed to parse DNS server '{server}'") from None
            if len(command) + len(server) + 2 >= MAX_CMD_SIZE:
                log.debug("Too many DNS servers listed")
                break
            command += SEPARATOR + server
            self._dns_forwarders.append(server)

        self._dns_net_id = net_id
        if self._daemon is not None:
            try:
                self._send_to_daemon(command)
            except TetherError:
                self._dns_forwarders.clear()
                raise

    # Interfaces -------------------------------------------------------------

    @property
    def tethered_interfaces(self) -> tuple[str, ...]:
        """Interfaces currently tethered, in the order they were added."""
        return tuple(self._interfaces)

    def apply_dns_interfaces(self) -> None:
        """Tell the running daemon which interfaces to serve."""
        command = "update_ifaces"
        have_interfaces = False
        for name in self._interfaces:
            if len(command) + len(name) + 2 >= MAX_CMD_SIZE:
                log.debug("Too many DNS ifaces listed")
                break
            command += SEPARATOR + name
            have_interfaces = True
        if self._daemon is not None and have_interfaces:
            self._send_to_daemon(command)

    def _configure_for_ipv6_router(self, interface: str) -> bool:
        try:
            self._ipv6.set_enable_ipv6(interface, False)
            self._ipv6.set_accept_ipv6_ra(interface, False)
            self._ipv6.set_accept_ipv6_dad(interface, False)
            self._ipv6.set_ipv6_dad_transmits(interface, "0")
            self._ipv6.set_enable_ipv6(interface, True)
        except OSError as exc:
            log.error("Failed to configure %s as IPv6 router: %s", interface, exc)
            return False
        return True

    def _configure_for_ipv6_client(self, interface: str) -> None:
        steps = (
            lambda: self._ipv6.set_accept_ipv6_ra(interface, True),
            lambda: self._ipv6.set_accept_ipv6_dad(interface, True),
            lambda: self._ipv6.set_ipv6_dad_transmits(interface, "1"),
            lambda: self._ipv6.set_enable_ipv6(interface, False),
        )
        for step in steps:
            try:
                step()
            except OSError as exc:
                log.error("Failed to configure %s as IPv6 client: %s", interface, exc)

    def tether_interface(self, interface: str) -> None:
        """Start tethering on ``interface``."""
        log.debug("tetherInterface(%s)", interface)
        if not _is_iface_name(interface):
            raise TetherError(errno.ENOENT, f"invalid interface name {interface!r}")
        if not self._configure_for_ipv6_router(interface):
            self._configure_for_ipv6_client(interface)
            raise TetherError(errno.EIO, f"failed to configure {interface} for tethering")
        self._interfaces.append(interface)
        try:
            self.apply_dns_interfaces()
        except TetherError:
            self._interfaces.pop()
            self._configure_for_ipv6_client(interface)
            raise

    def untether_interface(self, interface: str) -> None:
        """Stop tethering on ``interface``; ENOENT if it was not tethered."""
        log.debug("untetherInterface(%s)", interface)
        try:
            self._interfaces.remove(interface)
        except ValueError:
            raise TetherError(errno.ENOENT, f"{interface} is not tethered") from None
        self._configure_for_ipv6_client(interface)
        self.apply_dns_interfaces()