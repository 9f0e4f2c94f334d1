# netdctl

Building blocks for controlling a network daemon from Python, and a small
command-line client for its command socket.

## Modules

- `netdctl.codes`: `ResponseCode` (the numeric reply codes of the command
  socket) and `ConnmarkFlags` (CONNMARK bits used by strict mode).
- `netdctl.permission`: the `Permission` enum and `permission_to_name()`, the
  32-bit `Fwmark` socket mark (`Fwmark.to_int()` / `Fwmark.from_int()`), and
  `FwmarkCommand` / `FwmarkCommandId` for fwmark requests.
- `netdctl.resolver_stats`: `ResolverStats` with `encode()` / `decode()` and
  the list helpers `encode_all()` / `decode_all()`. Decoding malformed input
  raises `ValueError`.
- `netdctl.uid_range`: `UidRange`, an inclusive range of UIDs, with a binary
  encoding of two little-endian int32 values (`to_bytes()` / `from_bytes()`).
- `netdctl.uid_ranges`: `UidRanges`, a sorted collection of `(first, last)`
  pairs. Build it with `UidRanges.parse()` from strings such as `"8042"` or
  `"8005-8012"`, or with `UidRanges.from_uid_ranges()`; query it with
  `has_uid()` or `in`; combine with `add()` and `remove()`.
- `netdctl.strict`: `StrictController`, which builds the iptables rules that
  catch cleartext traffic (`enable_strict()`, `disable_strict()`) and applies a
  per-UID `StrictPenalty` (`set_uid_cleartext_penalty()`). By default it runs
  `iptables`/`ip6tables` and their `-restore` tools; other runners can be
  passed in. Failures raise `RuntimeError`.
- `netdctl.tether`: `TetherController` for IP forwarding requests
  (`enable_forwarding()`, `disable_forwarding()`), the DHCP/DNS daemon
  (`start_tethering()`, `stop_tethering()`), DNS forwarders
  (`set_dns_forwarders()`) and tethered interfaces (`tether_interface()`,
  `untether_interface()`). Failures raise `TetherError`, an `OSError` whose
  `errno` says why.
- `netdctl.softap`: `build_hostapd_config()` and `generate_psk()` for hostapd
  configuration, and `SoftapController` to write the configuration
  (`set_softap()`) and start and stop hostapd.
- `netdctl.oem_hook`: `setup_oem_iptables_hook()` runs a vendor iptables init
  script if it is executable; `cleanup_hooks()` flushes the vendor chains.

## Installation

```
pip install .
```

## Example

```python
from netdctl.uid_ranges import UidRanges

ranges = UidRanges.parse(["8005-8012", "8042"])
ranges.has_uid(8010)   # True
ranges.has_uid(8013)   # False
print(ranges)          # UidRanges{ 8005-8012 8042 }
```

## Command line

The `ndc` command connects to a Unix socket under `/dev/socket`, sends one
command and prints the replies until a final status code (200-599) arrives:

```
ndc interface list
ndc monitor
```

Put a socket name first to use a socket other than the default `netd`. Words
that contain spaces are quoted for you; words containing a double quote are
refused. If the first word of the command is not a number, the sequence
number `0` is added in front. `monitor` prints every reply until the
connection ends.

## What is not included

This package does not contain the network daemon itself: there is no command
socket server, no netlink handling and no DNS proxy. `ndc` needs a daemon
already listening on its socket. `SoftapController` starts and stops hostapd
but does not listen for hostapd events.

## Tests

```
pip install .[test]
pytest
```