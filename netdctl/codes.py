"""Numeric codes shared by the network daemon's controllers and its clients."""

from enum import IntEnum, IntFlag


class ResponseCode(IntEnum):
    """Reply codes sent back to command-socket clients."""

    # 100 series: action initiated, expect another reply before a new command.
    ActionInitiated = 100
    InterfaceListResult = 110
    TetherInterfaceListResult = 111
    TetherDnsFwdTgtListResult = 112
    TtyListResult = 113
    TetheringStatsListResult = 114
    TetherDnsFwdNetIdResult = 115

    # 200 series: requested action completed.
    CommandOkay = 200
    TetherStatusResult = 210
    IpFwdStatusResult = 211
    InterfaceGetCfgResult = 213
    SoftapStatusResult = 214
    UsbRNDISStatusResult = 215
    InterfaceRxCounterResult = 216
    InterfaceTxCounterResult = 217
    InterfaceRxThrottleResult = 218
    InterfaceTxThrottleResult = 219
    QuotaCounterResult = 220
    TetheringStatsResult = 221
    DnsProxyQueryResult = 222
    ClatdStatusResult = 223

    # 400 series: command accepted, but the action did not take place.
    OperationFailed = 400
    DnsProxyOperationFailed = 401
    ServiceStartFailed = 402
    ServiceStopFailed = 403

    # 500 series: command rejected.
    CommandSyntaxError = 500
    CommandParameterError = 501

    # 600 series: unsolicited broadcasts.
    InterfaceChange = 600
    BandwidthControl = 601
    ServiceDiscoveryFailed = 602
    ServiceDiscoveryServiceAdded = 603
    ServiceDiscoveryServiceRemoved = 604
    ServiceRegistrationFailed = 605
    ServiceRegistrationSucceeded = 606
    ServiceResolveFailed = 607
    ServiceResolveSuccess = 608
    ServiceSetHostnameFailed = 609
    ServiceSetHostnameSuccess = 610
    ServiceGetAddrInfoFailed = 611
    ServiceGetAddrInfoSuccess = 612
    InterfaceClassActivity = 613
    InterfaceAddressChange = 614
    InterfaceDnsInfo = 615
    RouteChange = 616
    StrictCleartext = 617
    InterfaceMessage = 618


class ConnmarkFlags(IntFlag):
    """iptables CONNMARK bits, kept in one place to avoid clashes."""

    STRICT_RESOLVED_ACCEPT = 0x01000000
    STRICT_RESOLVED_REJECT = 0x02000000