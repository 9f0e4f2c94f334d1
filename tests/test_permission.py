import pytest

from netdctl.permission import (
    FWMARK_NET_ID_MASK,
    Fwmark,
    FwmarkCommand,
    FwmarkCommandId,
    Permission,
    permission_to_name,
)


@pytest.mark.parametrize(
    "permission, name",
    [
        (Permission.NONE, "NONE"),
        (Permission.NETWORK, "NETWORK"),
        (Permission.SYSTEM, "SYSTEM"),
    ],
)
def test_permission_to_name(permission, name):
    assert permission_to_name(permission) == name


def test_permission_to_name_rejects_unknown_value():
    with pytest.raises(ValueError):
        permission_to_name(2)


def test_system_includes_network():
    assert permission_to_name(Permission.SYSTEM & Permission.NETWORK) == "NETWORK"


def test_default_fwmark_is_zero():
    assert Fwmark().to_int() == 0


def test_net_id_occupies_low_bits():
    mark = Fwmark(net_id=42, explicitly_selected=True, permission=Permission.SYSTEM)
    assert mark.to_int() & FWMARK_NET_ID_MASK == 42


def test_flags_do_not_touch_net_id():
    plain = Fwmark(net_id=100).to_int()
    flagged = Fwmark(
        net_id=100, explicitly_selected=True, protected_from_vpn=True
    ).to_int()
    assert plain & FWMARK_NET_ID_MASK == flagged & FWMARK_NET_ID_MASK
    assert plain != flagged


@pytest.mark.parametrize("net_id", [0, 1, 42, 43, FWMARK_NET_ID_MASK])
@pytest.mark.parametrize("explicit", [False, True])
@pytest.mark.parametrize("protected", [False, True])
@pytest.mark.parametrize("permission", list(Permission))
def test_round_trip(net_id, explicit, protected, permission):
    mark = Fwmark(net_id, explicit, protected, permission)
    assert Fwmark.from_int(mark.to_int()) == mark


def test_fits_in_32_bits():
    mark = Fwmark(FWMARK_NET_ID_MASK, True, True, Permission.SYSTEM)
    assert mark.to_int() < 2**32


def test_net_id_too_large():
    with pytest.raises(ValueError):
        Fwmark(net_id=FWMARK_NET_ID_MASK + 1)


def test_from_int_invalid_permission_bits():
    value = Fwmark(net_id=1, permission=Permission.NETWORK).to_int() << 1
    with pytest.raises(ValueError):
        Fwmark.from_int(value & ~FWMARK_NET_ID_MASK)


def test_from_int_out_of_range():
    with pytest.raises(ValueError):
        Fwmark.from_int(-1)


def test_command_ids_are_ordered():
    names = [FwmarkCommand(index).cmd_id.name for index in range(6)]
    assert names == [
        "ON_ACCEPT",
        "ON_CONNECT",
        "SELECT_NETWORK",
        "PROTECT_FROM_VPN",
        "SELECT_FOR_USER",
        "QUERY_USER_ACCESS",
    ]


def test_fwmark_command_coerces_id():
    cmd = FwmarkCommand(FwmarkCommandId.SELECT_NETWORK.value, net_id=42)
    assert cmd.cmd_id is FwmarkCommandId.SELECT_NETWORK
    assert cmd.net_id == 42
    assert cmd.uid == 0