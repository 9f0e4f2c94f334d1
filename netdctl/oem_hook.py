"""Vendor iptables hook: flush the vendor chains and run the vendor init script."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Sequence

log = logging.getLogger(__name__)

OEM_IPTABLES_FILTER_OUTPUT = "oem_out"
OEM_IPTABLES_FILTER_FORWARD = "oem_fwd"
OEM_IPTABLES_NAT_PREROUTING = "oem_nat_pre"

IPTABLES_PATH = "/system/bin/iptables"
OEM_SCRIPT_PATH = "/system/bin/oem-iptables-init.sh"

Runner = Callable[[Sequence[str]], int]


def _run(argv: Sequence[str]) -> int:
    try:
        return subprocess.run(list(argv), check=False).returncode
    except OSError as exc:
        log.error("%s failed: %s", argv[0], exc)
        return -1


def cleanup_hooks(runner: Runner = _run, iptables_path: str = IPTABLES_PATH) -> None:
    """Flush the vendor filter and nat chains; failures are ignored."""
    runner([iptables_path, "-w", "-F", OEM_IPTABLES_FILTER_OUTPUT])
    runner([iptables_path, "-w", "-F", OEM_IPTABLES_FILTER_FORWARD])
    runner([iptables_path, "-w", "-t", "nat", "-F", OEM_IPTABLES_NAT_PREROUTING])


def setup_oem_iptables_hook(
    script_path: str = OEM_SCRIPT_PATH,
    iptables_path: str = IPTABLES_PATH,
    runner: Runner = _run,
) -> bool:
    """Install the vendor hook if its script is readable and executable.

    Returns True when the script ran successfully. If it fails, the vendor
    chains are flushed again.
    """
    if not os.access(script_path, os.R_OK | os.X_OK):
        return False
    # Flushing first matters when the daemon restarts after a crash.
    cleanup_hooks(runner, iptables_path)
    status = runner([script_path])
    if status != 0:
        log.error("%s failed with status %s", script_path, status)
        cleanup_hooks(runner, iptables_path)
        return False
    log.info("OEM iptable hook installed.")
    return True