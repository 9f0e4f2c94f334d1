"""Firewall rules that catch apps sending cleartext (non-TLS) traffic."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from enum import Enum, IntEnum

from netdctl.codes import ConnmarkFlags


class StrictPenalty(IntEnum):
    """What happens when a UID is caught sending cleartext."""

    INVALID = 0
    ACCEPT = 1
    LOG = 2
    REJECT = 3


class IptablesTarget(Enum):
    """Which address families a rule set applies to."""

    V4 = "v4"
    V6 = "v6"
    V4V6 = "v4v6"


IptablesRunner = Callable[[IptablesTarget, Sequence[str]], int]
IptablesRestoreRunner = Callable[[IptablesTarget, str], int]

_FAMILIES = {
    IptablesTarget.V4: ("iptables",),
    IptablesTarget.V6: ("ip6tables",),
    IptablesTarget.V4V6: ("iptables", "ip6tables"),
}


def _run_iptables(target: IptablesTarget, args: Sequence[str]) -> int:
    status = 0
    for binary in _FAMILIES[target]:
        try:
            status |= subprocess.run([binary, "-w", *args], check=False).returncode
        except OSError:
            status |= 1
    return status


def _run_iptables_restore(target: IptablesTarget, commands: str) -> int:
    script = commands.rstrip("\x04")
    status = 0
    for binary in _FAMILIES[target]:
        try:
            status |= subprocess.run(
                [f"{binary}-restore", "--noflush", "-w"],
                input=script,
                text=True,
                check=False,
            ).returncode
        except OSError:
            status |= 1
    return status


_ACCEPT = f"{ConnmarkFlags.STRICT_RESOLVED_ACCEPT.value:#x}"
_REJECT = f"{ConnmarkFlags.STRICT_RESOLVED_REJECT.value:#x}"
_TEST_ACCEPT = f"{_ACCEPT}/{_ACCEPT}"
_TEST_REJECT = f"{_REJECT}/{_REJECT}"
_COMMIT = "COMMIT\n\x04"


class StrictController:
    """Installs the strict-mode chains and per-UID cleartext penalties."""

    LOCAL_OUTPUT = "st_OUTPUT"
    LOCAL_CLEAR_DETECT = "st_clear_detect"
    LOCAL_CLEAR_CAUGHT = "st_clear_caught"
    LOCAL_PENALTY_LOG = "st_penalty_log"
    LOCAL_PENALTY_REJECT = "st_penalty_reject"

    def __init__(
        self,
        exec_iptables: IptablesRunner = _run_iptables,
        exec_iptables_restore: IptablesRestoreRunner = _run_iptables_restore,
    ) -> None:
        self._exec_iptables = exec_iptables
        self._exec_iptables_restore = exec_iptables_restore

    def _clear_chains(self) -> int:
        chains = (
            self.LOCAL_OUTPUT,
            self.LOCAL_PENALTY_LOG,
            self.LOCAL_PENALTY_REJECT,
            self.LOCAL_CLEAR_CAUGHT,
            self.LOCAL_CLEAR_DETECT,
        )
        commands = ["*filter", *(f":{chain} -" for chain in chains), _COMMIT]
        return self._exec_iptables_restore(IptablesTarget.V4V6, "\n".join(commands))

    def disable_strict(self) -> None:
        """Flush every strict-mode chain. Raises RuntimeError on failure."""
        status = self._clear_chains()
        if status:
            raise RuntimeError(f"failed to flush strict chains (status {status})")

    def enable_strict(self) -> None:
        """Flush, then install the detection chains. Raises RuntimeError on failure."""
        self._clear_chains()

        detect = self.LOCAL_CLEAR_DETECT
        caught = self.LOCAL_CLEAR_CAUGHT
        log = self.LOCAL_PENALTY_LOG
        reject = self.LOCAL_PENALTY_REJECT

        common_head = [
            "*filter",
            f"-A {log} -j CONNMARK --or-mark {_ACCEPT}",
            f"-A {log} -j NFLOG --nflog-group 0",
            f"-A {reject} -j CONNMARK --or-mark {_REJECT}",
            f"-A {reject} -j NFLOG --nflog-group 0",
            f"-A {reject} -j REJECT",
            f"-A {detect} -m connmark --mark {_TEST_REJECT} -j REJECT",
            f"-A {detect} -m connmark --mark {_TEST_ACCEPT} -j RETURN",
        ]

        def mark_tls(proto: str, u32: str) -> str:
            return f'-A {detect} -p {proto} -m u32 --u32 "{u32}" -j CONNMARK --or-mark {_ACCEPT}'

        def catch_tcp(u32: str) -> str:
            return (
                f'-A {detect} -p tcp -m state --state ESTABLISHED -m u32 --u32 "{u32}" '
                f"-j {caught}"
            )

        skip_resolved = f"-A {detect} -m connmark --mark {_TEST_ACCEPT} -j RETURN"
        catch_udp = f"-A {detect} -p udp -j {caught}"

        v4 = [
            *common_head,
            mark_tls(
                "tcp",
                "0>>22&0x3C@ 12>>26&0x3C@ 0&0xFFFF0000=0x16030000 &&"
                "0>>22&0x3C@ 12>>26&0x3C@ 4&0x00FF0000=0x00010000",
            ),
            mark_tls(
                "udp",
                "0>>22&0x3C@ 8&0xFFFF0000=0x16FE0000 &&"
                "0>>22&0x3C@ 20&0x00FF0000=0x00010000",
            ),
            skip_resolved,
            catch_tcp("0>>22&0x3C@ 12>>26&0x3C@ 0&0x0=0x0"),
            catch_udp,
            _COMMIT,
        ]
        # IPv6 has no IHL field, so the 40-byte header offset is added by hand.
        v6 = [
            *common_head,
            mark_tls(
                "tcp",
                "52>>26&0x3C@ 40&0xFFFF0000=0x16030000 &&"
                "52>>26&0x3C@ 44&0x00FF0000=0x00010000",
            ),
            mark_tls("udp", "48&0xFFFF0000=0x16FE0000 &&60&0x00FF0000=0x00010000"),
            skip_resolved,
            catch_tcp("52>>26&0x3C@ 40&0x0=0x0"),
            catch_udp,
            _COMMIT,
        ]

        status = self._exec_iptables_restore(IptablesTarget.V4, "\n".join(v4))
        status |= self._exec_iptables_restore(IptablesTarget.V6, "\n".join(v6))
        if status:
            raise RuntimeError(f"failed to install strict chains (status {status})")

    def set_uid_cleartext_penalty(self, uid: int, penalty: StrictPenalty) -> None:
        """Apply ``penalty`` to cleartext traffic from ``uid``.

        ACCEPT removes any earlier rules and never fails; other penalties
        raise RuntimeError if a rule cannot be inserted.
        """
        penalty = StrictPenalty(penalty)
        owner = ["-m", "owner", "--uid-owner", str(uid)]
        both = IptablesTarget.V4V6

        if penalty is StrictPenalty.ACCEPT:
            self._exec_iptables(both, ["-D", self.LOCAL_OUTPUT, *owner, "-j", self.LOCAL_CLEAR_DETECT])
            self._exec_iptables(both, ["-D", self.LOCAL_CLEAR_CAUGHT, *owner, "-j", self.LOCAL_PENALTY_LOG])
            self._exec_iptables(
                both, ["-D", self.LOCAL_CLEAR_CAUGHT, *owner, "-j", self.LOCAL_PENALTY_REJECT]
            )
            return

        status = self._exec_iptables(
            both, ["-I", self.LOCAL_OUTPUT, *owner, "-j", self.LOCAL_CLEAR_DETECT]
        )
        if penalty is StrictPenalty.LOG:
            status |= self._exec_iptables(
                both, ["-I", self.LOCAL_CLEAR_CAUGHT, *owner, "-j", self.LOCAL_PENALTY_LOG]
            )
        elif penalty is StrictPenalty.REJECT:
            status |= self._exec_iptables(
                both, ["-I", self.LOCAL_CLEAR_CAUGHT, *owner, "-j", self.LOCAL_PENALTY_REJECT]
            )
        if status:
            raise RuntimeError(
                f"failed to set cleartext penalty {penalty.name} for UID {uid} (status {status})"
            )