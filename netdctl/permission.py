"""Network permissions, socket marks and fwmark client commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

FWMARK_NET_ID_MASK = 0xFFFF

_EXPLICIT_BIT = 16
_PROTECTED_BIT = 17
_PERMISSION_SHIFT = 18
_PERMISSION_MASK = 0x3


class Permission(IntEnum):
    """Permission held by an app, or required to use a network."""

    NONE = 0x0
    NETWORK = 0x1
    SYSTEM = 0x3  # Includes NETWORK.


def permission_to_name(permission: Permission) -> str:
    """Return the short name of a permission ("NONE", "NETWORK" or "SYSTEM")."""
    return Permission(permission).name


@dataclass(frozen=True)
class Fwmark:
    """The 32-bit socket mark: net id, selection flags and permission."""

    net_id: int = 0
    explicitly_selected: bool = False
    protected_from_vpn: bool = False
    permission: Permission = Permission.NONE

    def __post_init__(self) -> None:
        if not 0 <= self.net_id <= FWMARK_NET_ID_MASK:
            raise ValueError(f"net id {self.net_id} does not fit in 16 bits")
        object.__setattr__(self, "permission", Permission(self.permission))

    def to_int(self) -> int:
        """Pack the mark into its 32-bit integer value."""
        return (
            self.net_id
            | (int(bool(self.explicitly_selected)) << _EXPLICIT_BIT)
            | (int(bool(self.protected_from_vpn)) << _PROTECTED_BIT)
            | (int(self.permission) << _PERMISSION_SHIFT)
        )

    @classmethod
    def from_int(cls, value: int) -> Fwmark:
        """Unpack a 32-bit mark value."""
        if not 0 <= value <= 0xFFFFFFFF:
            raise ValueError(f"fwmark {value} does not fit in 32 bits")
        bits = (value >> _PERMISSION_SHIFT) & _PERMISSION_MASK
        try:
            permission = Permission(bits)
        except ValueError:
            raise ValueError(f"invalid permission bits {bits:#x} in fwmark") from None
        return cls(
            net_id=value & FWMARK_NET_ID_MASK,
            explicitly_selected=bool((value >> _EXPLICIT_BIT) & 1),
            protected_from_vpn=bool((value >> _PROTECTED_BIT) & 1),
            permission=permission,
        )


class FwmarkCommandId(IntEnum):
    """Commands a client sends to the fwmark server to mark sockets."""

    ON_ACCEPT = 0
    ON_CONNECT = 1
    SELECT_NETWORK = 2
    PROTECT_FROM_VPN = 3
    SELECT_FOR_USER = 4
    QUERY_USER_ACCESS = 5


@dataclass(frozen=True)
class FwmarkCommand:
    """A request to the fwmark server.

    ``net_id`` is used only by SELECT_NETWORK; ``uid`` only by
    SELECT_FOR_USER and QUERY_USER_ACCESS.
    """

    cmd_id: FwmarkCommandId
    net_id: int = 0
    uid: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "cmd_id", FwmarkCommandId(self.cmd_id))