import errno

import pytest

from netdctl.permission import Fwmark, Permission
from netdctl.tether import (
    BP_TOOLS_MODE,
    MAX_CMD_SIZE,
    ProcSysIpv6Configurator,
    TetherController,
    TetherError,
)


class FakeStream:
    def __init__(self, broken=False):
        self.data = b""
        self.broken = broken
        self.closed = False

    def write(self, chunk):
        if self.broken:
            raise BrokenPipeError("pipe closed")
        self.data += chunk
        return len(chunk)

    def flush(self):
        pass

    def close(self):
        self.closed = True


class FakeProcess:
    def __init__(self, args, broken=False):
        self.args = list(args)
        self.stdin = FakeStream(broken)
        self.terminated = False
        self.waited = False

    def terminate(self):
        self.terminated = True

    def wait(self):
        self.waited = True
        return 0


class FakeIpv6:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise OSError(errno.EIO, "cannot write")

    def set_enable_ipv6(self, interface, enable):
        self._record("enable", interface, enable)

    def set_accept_ipv6_ra(self, interface, accept):
        self._record("ra", interface, accept)

    def set_accept_ipv6_dad(self, interface, accept):
        self._record("dad", interface, accept)

    def set_ipv6_dad_transmits(self, interface, value):
        self._record("dad_transmits", interface, value)


@pytest.fixture
def fwd_files(tmp_path):
    return tmp_path / "ip_forward", tmp_path / "forwarding"


def make_controller(fwd_files, broken=False, ipv6=None, boot_mode="unknown"):
    processes = []

    def spawn(args):
        proc = FakeProcess(args, broken)
        processes.append(proc)
        return proc

    ctrl = TetherController(
        ipv4_forwarding_file=fwd_files[0],
        ipv6_forwarding_file=fwd_files[1],
        ipv6_configurator=ipv6 or FakeIpv6(),
        spawn=spawn,
        boot_mode=boot_mode,
    )
    return ctrl, processes


def test_constructor_disables_forwarding(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    assert fwd_files[0].read_text() == "0"
    assert fwd_files[1].read_text() == "0"
    assert ctrl.forwarding_request_count() == 0


def test_bp_tools_mode_keeps_forwarding_on(fwd_files):
    ctrl, _ = make_controller(fwd_files, boot_mode=BP_TOOLS_MODE)
    assert fwd_files[0].read_text() == "1"
    assert ctrl.forwarding_request_count() == 1


def test_forwarding_requests(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    ctrl.enable_forwarding("a")
    ctrl.enable_forwarding("a")
    assert ctrl.forwarding_request_count() == 1
    assert fwd_files[1].read_text() == "1"
    ctrl.enable_forwarding("b")
    ctrl.disable_forwarding("a")
    assert fwd_files[0].read_text() == "1"
    ctrl.disable_forwarding("b")
    assert ctrl.forwarding_request_count() == 0
    assert fwd_files[0].read_text() == "0"


def test_forwarding_write_failure_raises(tmp_path):
    missing = (tmp_path / "nope" / "a", tmp_path / "nope" / "b")
    ctrl, _ = make_controller(missing)
    with pytest.raises(TetherError):
        ctrl.enable_forwarding("x")
    assert ctrl.forwarding_request_count() == 1


def test_start_tethering_arguments(fwd_files):
    ctrl, procs = make_controller(fwd_files)
    ctrl.start_tethering(["192.168.42.2", "192.168.42.254", "192.168.43.2", "192.168.43.254"])
    assert ctrl.is_tethering_started()
    args = procs[0].args
    assert args[:8] == [
        "/system/bin/dnsmasq",
        "--keep-in-foreground",
        "--no-resolv",
        "--no-poll",
        "--dhcp-authoritative",
        "--dhcp-option-force=43,ANDROID_METERED",
        "--pid-file",
        "",
    ]
    assert args[8:] == [
        "--dhcp-range=192.168.42.2,192.168.42.254,1h",
        "--dhcp-range=192.168.43.2,192.168.43.254,1h",
    ]


def test_start_twice_is_busy(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    ctrl.start_tethering([])
    with pytest.raises(TetherError) as info:
        ctrl.start_tethering([])
    assert info.value.errno == errno.EBUSY


def test_odd_dhcp_ranges_rejected(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    with pytest.raises(ValueError):
        ctrl.start_tethering(["192.168.42.2"])
    assert not ctrl.is_tethering_started()


def test_stop_tethering(fwd_files):
    ctrl, procs = make_controller(fwd_files)
    ctrl.stop_tethering()
    assert not ctrl.is_tethering_started()
    ctrl.start_tethering([])
    ctrl.stop_tethering()
    assert procs[0].terminated and procs[0].waited and procs[0].stdin.closed
    assert not ctrl.is_tethering_started()


def test_set_dns_forwarders_sends_command(fwd_files):
    ctrl, procs = make_controller(fwd_files)
    ctrl.start_tethering([])
    ctrl.set_dns_forwarders(100, ["8.8.8.8", "2001:4860:4860::8888"])
    mark = Fwmark(100, True, True, Permission.SYSTEM).to_int()
    expected = f"update_dns|{mark:#x}|8.8.8.8|2001:4860:4860::8888\0".encode()
    assert procs[0].stdin.data == expected
    assert ctrl.dns_forwarders == ("8.8.8.8", "2001:4860:4860::8888")
    assert ctrl.dns_net_id == 100


def test_set_dns_forwarders_without_daemon(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    ctrl.set_dns_forwarders(7, ["192.0.2.1"])
    assert ctrl.dns_forwarders == ("192.0.2.1",)
    assert ctrl.dns_net_id == 7


def test_invalid_dns_server(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    with pytest.raises(TetherError) as info:
        ctrl.set_dns_forwarders(1, ["192.0.2.1", "not.an.address"])
    assert info.value.errno == errno.EINVAL
    assert ctrl.dns_forwarders == ()


def test_dns_forwarders_truncated_to_command_size(fwd_files):
    ctrl, procs = make_controller(fwd_files)
    ctrl.start_tethering([])
    servers = ["2001:db8::%x" % i for i in range(200)]
    ctrl.set_dns_forwarders(1, servers)
    assert 0 < len(ctrl.dns_forwarders) < len(servers)
    assert list(ctrl.dns_forwarders) == servers[: len(ctrl.dns_forwarders)]
    assert len(procs[0].stdin.data) < MAX_CMD_SIZE


def test_dns_write_failure(fwd_files):
    ctrl, _ = make_controller(fwd_files, broken=True)
    ctrl.start_tethering([])
    with pytest.raises(TetherError) as info:
        ctrl.set_dns_forwarders(1, ["192.0.2.1"])
    assert info.value.errno == errno.EREMOTEIO
    assert ctrl.dns_forwarders == ()


def test_tether_interface(fwd_files):
    ipv6 = FakeIpv6()
    ctrl, procs = make_controller(fwd_files, ipv6=ipv6)
    ctrl.start_tethering([])
    ctrl.tether_interface("wlan0")
    assert ctrl.tethered_interfaces == ("wlan0",)
    assert procs[0].stdin.data == b"update_ifaces|wlan0\0"
    assert ipv6.calls == [
        ("enable", "wlan0", False),
        ("ra", "wlan0", False),
        ("dad", "wlan0", False),
        ("dad_transmits", "wlan0", "0"),
        ("enable", "wlan0", True),
    ]


def test_tether_bad_name(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    with pytest.raises(TetherError) as info:
        ctrl.tether_interface("bad name!")
    assert info.value.errno == errno.ENOENT


def test_tether_configuration_failure(fwd_files):
    ipv6 = FakeIpv6(fail=True)
    ctrl, _ = make_controller(fwd_files, ipv6=ipv6)
    with pytest.raises(TetherError):
        ctrl.tether_interface("wlan0")
    assert ctrl.tethered_interfaces == ()
    assert ("dad_transmits", "wlan0", "1") in ipv6.calls


def test_tether_rolls_back_on_daemon_failure(fwd_files):
    ipv6 = FakeIpv6()
    ctrl, _ = make_controller(fwd_files, broken=True, ipv6=ipv6)
    ctrl.start_tethering([])
    with pytest.raises(TetherError):
        ctrl.tether_interface("rndis0")
    assert ctrl.tethered_interfaces == ()
    assert ipv6.calls[-1] == ("enable", "rndis0", False)


def test_untether_interface(fwd_files):
    ipv6 = FakeIpv6()
    ctrl, _ = make_controller(fwd_files, ipv6=ipv6)
    ctrl.tether_interface("wlan0")
    ctrl.tether_interface("rndis0")
    ctrl.untether_interface("wlan0")
    assert ctrl.tethered_interfaces == ("rndis0",)
    assert ipv6.calls[-4:] == [
        ("ra", "wlan0", True),
        ("dad", "wlan0", True),
        ("dad_transmits", "wlan0", "1"),
        ("enable", "wlan0", False),
    ]


def test_untether_unknown(fwd_files):
    ctrl, _ = make_controller(fwd_files)
    with pytest.raises(TetherError) as info:
        ctrl.untether_interface("wlan0")
    assert info.value.errno == errno.ENOENT


def test_proc_sys_configurator(tmp_path):
    (tmp_path / "wlan0").mkdir()
    conf = ProcSysIpv6Configurator(tmp_path)
    conf.set_enable_ipv6("wlan0", False)
    conf.set_accept_ipv6_ra("wlan0", True)
    conf.set_ipv6_dad_transmits("wlan0", "0")
    assert (tmp_path / "wlan0" / "disable_ipv6").read_text() == "1"
    assert (tmp_path / "wlan0" / "accept_ra").read_text() == "1"
    assert (tmp_path / "wlan0" / "dad_transmits").read_text() == "0"