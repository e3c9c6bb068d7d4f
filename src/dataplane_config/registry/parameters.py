"""
Declarations for every tunable parameter of the dataplane agent.

Defaults are written in the same wire encoding any source would use, so the
registry can parse and validate them with the regular coercion path when it is
built. Legacy ``aliases`` are the pre-v3 parameter names still accepted from
environment variables and config files.
"""

from __future__ import annotations

from typing import Any, Final

from dataplane_config.constants import ROUTING_RULE_PRIORITY_MAX
from dataplane_config.registry.descriptors import ParameterSpec, UnitScale, ValueKind

_PORT: Final[tuple[str, ...]] = ("port",)
_ROUTING_RULE_PRIORITY: Final[tuple[str, ...]] = ("gt=0", f"lt={ROUTING_RULE_PRIORITY_MAX}")
_LOG_LEVELS: Final[tuple[str, ...]] = ("Debug", "Info", "Warning", "Error", "Fatal")
_L7_INCLUDE_EXCLUDE: Final[str] = "IncludeL7{0},ExcludeL7{0}"


def _param(
    name: str,
    kind: ValueKind,
    default: str | None,
    *,
    aliases: tuple[str, ...] = (),
    unit: UnitScale | None = None,
    rules: tuple[str, ...] = (),
    choices: tuple[str, ...] = (),
    live: bool = False,
    doc: str = "",
) -> ParameterSpec:
    return ParameterSpec(
        name=name,
        kind=kind,
        default=default,
        aliases=aliases,
        unit=unit,
        rules=rules,
        choices=choices,
        live_apply=live,
        description=doc,
    )


def _bool(name: str, default: bool, **kwargs: Any) -> ParameterSpec:
    return _param(name, ValueKind.BOOL, "true" if default else "false", **kwargs)


def _int(name: str, default: int, **kwargs: Any) -> ParameterSpec:
    return _param(name, ValueKind.INT, str(default), **kwargs)


def _str(name: str, default: str, **kwargs: Any) -> ParameterSpec:
    return _param(name, ValueKind.STRING, default, **kwargs)


def _secs(name: str, default: str, **kwargs: Any) -> ParameterSpec:
    return _param(name, ValueKind.DURATION, default, unit=UnitScale.SECONDS, **kwargs)


def _millis(name: str, default: str, **kwargs: Any) -> ParameterSpec:
    return _param(name, ValueKind.DURATION, default, unit=UnitScale.MILLISECONDS, **kwargs)


def _enum(name: str, default: str, choices: str, **kwargs: Any) -> ParameterSpec:
    allowed = tuple(choices.split(","))
    return _param(name, ValueKind.ENUM, default, choices=allowed, **kwargs)


def _l7_enum(name: str, subject: str, default: str) -> ParameterSpec:
    return _enum(name, default, _L7_INCLUDE_EXCLUDE.format(subject))


PARAMETERS: Final[tuple[ParameterSpec, ...]] = (
    # Dataplane driver.
    _bool("UseInternalDataplaneDriver", True),
    _str("DataplaneDriver", "calico-iptables-plugin"),
    _bool("IPv6Support", True),
    # Refresh intervals.
    _secs("RouteRefreshInterval", "90", live=True, doc="Period between dataplane route re-checks; 0 disables."),
    _secs("InterfaceRefreshInterval", "90", live=True, doc="Period between local interface rescans; 0 disables."),
    _secs("IptablesRefreshInterval", "10", live=True, doc="Period between iptables re-checks; 0 disables."),
    _secs(
        "IptablesPostWriteCheckInterval",
        "1",
        aliases=("IptablesPostWriteCheckIntervalSecs",),
        doc="Delay before reading back iptables after a write.",
    ),
    _str("IptablesLockFilePath", "/run/xtables.lock"),
    _secs(
        "IptablesLockTimeout",
        "0",
        aliases=("IptablesLockTimeoutSecs",),
        doc="Time to wait for the iptables lock; 0 disables locking.",
    ),
    _millis(
        "IptablesLockProbeInterval",
        "50",
        aliases=("IptablesLockProbeIntervalMillis",),
        doc="Delay between attempts to take a contended iptables lock.",
    ),
    _param(
        "FeatureDetectOverride",
        ValueKind.KEY_VALUE_LIST,
        "",
        doc="Forced feature detection results, e.g. SNATFullyRandom=true.",
    ),
    _secs("IpsetsRefreshInterval", "90", live=True),
    _int("MaxIpsetSize", 1048576, rules=("gt=0",)),
    _enum("IptablesBackend", "Legacy", "Legacy,NFT"),
    _secs("XDPRefreshInterval", "90", live=True),
    _secs("NetlinkTimeout", "10", aliases=("NetlinkTimeoutSecs",)),
    # Metadata NAT (OpenStack).
    _str("MetadataAddr", "127.0.0.1", rules=("metadataAddr",)),
    _int("MetadataPort", 8775, rules=_PORT),
    _str("OpenstackRegion", "", rules=("openstackRegion",)),
    # Interfaces and chains.
    _str("InterfacePrefix", "cali", rules=("interfacePrefix",)),
    _param("InterfaceExclude", ValueKind.STRING_LIST, "kube-ipvs0", rules=("interfaceExclude",)),
    _enum("ChainInsertMode", "insert", "insert,append"),
    _enum("DefaultEndpointToHostAction", "Drop", "Drop,Accept,Return"),
    _enum("IptablesFilterAllowAction", "Accept", "Accept,Return"),
    _enum("IptablesMangleAllowAction", "Accept", "Accept,Return"),
    # Logging.
    _str("LogPrefix", "calico-packet"),
    _bool("LogDropActionOverride", False),
    _str("LogFilePath", "/var/log/calico/felix.log", rules=("filePathOrNone",)),
    _enum("LogSeverityFile", "Info", ",".join(_LOG_LEVELS), live=True),
    _enum("LogSeverityScreen", "Info", ",".join(_LOG_LEVELS), live=True),
    _enum("LogSeveritySys", "Info", ",".join((*_LOG_LEVELS, "None")), live=True),
    # Encapsulation.
    _bool("IPIPEnabled", False, aliases=("IpInIpEnabled",)),
    _int("IPIPMTU", 1440, aliases=("IpInIpMtu",), rules=("gt=0",)),
    _bool("VXLANEnabled", False),
    _int("VXLANMTU", 1440, rules=("gt=0",)),
    _int("VXLANPort", 4789, rules=_PORT),
    _int("VXLANVNI", 4096, rules=("gt=0", "lte=16777215")),
    _bool("AllowVXLANPacketsFromWorkloads", False),
    _bool("AllowIPIPPacketsFromWorkloads", False),
    # Status reporting.
    _secs("ReportingInterval", "30", aliases=("ReportingIntervalSecs",), live=True),
    _secs("ReportingTTL", "90", aliases=("ReportingTTLSecs",), live=True),
    _bool("EndpointReportingEnabled", False),
    _secs("EndpointReportingDelay", "1", aliases=("EndpointReportingDelaySecs",)),
    _param("IptablesMarkMask", ValueKind.BITMASK, "0xff000000", rules=("markMask",)),
    _bool("DisableConntrackInvalidCheck", False),
    # Health and metrics endpoints.
    _bool("HealthEnabled", False),
    _str("HealthHost", "localhost", rules=("hostOrIP",)),
    _int("HealthPort", 9099, rules=_PORT),
    _bool("PrometheusMetricsEnabled", False),
    _str("PrometheusMetricsHost", "", rules=("hostOrIP",)),
    _int("PrometheusMetricsPort", 9091, rules=_PORT),
    _bool("PrometheusGoMetricsEnabled", True),
    _bool("PrometheusProcessMetricsEnabled", True),
    _bool("PrometheusWireGuardMetricsEnabled", True),
    _str("PrometheusMetricsCertFile", ""),
    _str("PrometheusMetricsKeyFile", ""),
    _str("PrometheusMetricsCAFile", ""),
    # Failsafe ports.
    _param(
        "FailsafeInboundHostPorts",
        ValueKind.PROTO_PORT_LIST,
        "tcp:22,udp:68,tcp:179,tcp:2379,tcp:2380,tcp:6443,tcp:6666,tcp:6667",
        doc="Ports always open for inbound host traffic; none disables.",
    ),
    _param(
        "FailsafeOutboundHostPorts",
        ValueKind.PROTO_PORT_LIST,
        "tcp:179,tcp:2379,tcp:2380,tcp:6443,tcp:6666,tcp:6667,udp:53,udp:67",
        doc="Ports always open for outbound host traffic; none disables.",
    ),
    # kube-proxy integration.
    _int("KubeMasqueradeBit", 14, rules=("gte=0", "lte=31")),
    _param("KubeNodePortRanges", ValueKind.PORT_RANGE_LIST, "30000:32767"),
    _str("PolicySyncPathPrefix", ""),
    # Usage reporting.
    _bool("UsageReportingEnabled", True, live=True),
    _secs(
        "UsageReportingInitialDelay",
        "300",
        aliases=("UsageReportingInitialDelaySecs",),
        live=True,
    ),
    _secs(
        "UsageReportingInterval",
        "86400",
        aliases=("UsageReportingIntervalSecs",),
        live=True,
    ),
    # NAT and device routes.
    _param("NATPortRange", ValueKind.PORT_RANGE, None, doc="Outgoing NAT port range; unset uses the kernel default."),
    _str("NATOutgoingAddress", "", rules=("ipOrEmpty",)),
    _str("DeviceRouteSourceAddress", "", rules=("ipOrEmpty",)),
    _int("DeviceRouteProtocol", 3, rules=("gte=0", "lte=255")),
    _bool("RemoveExternalRoutes", True),
    _param(
        "ExternalNodesCIDRList",
        ValueKind.STRING_LIST,
        "",
        aliases=("externalNodesList",),
        rules=("cidrList",),
    ),
    _str("NfNetlinkBufSize", "65536", rules=("digits",)),
    _str("StatsDumpFilePath", "/var/log/calico/stats/dump"),
    # Denied packet metrics.
    _bool("PrometheusReporterEnabled", False),
    _int("PrometheusReporterPort", 9092, rules=_PORT),
    _str("PrometheusReporterCertFile", ""),
    _str("PrometheusReporterKeyFile", ""),
    _str("PrometheusReporterCAFile", ""),
    _int("DeletedMetricsRetentionSecs", 30, rules=("gte=0",)),
    _enum("DropActionOverride", "Drop", "Drop,Accept,LogAndDrop,LogAndAccept"),
    # Debug knobs.
    _str("DebugMemoryProfilePath", "", live=True),
    _bool("DebugDisableLogDropping", False, live=True),
    _secs("DebugSimulateCalcGraphHangAfter", "0"),
    _secs("DebugSimulateDataplaneHangAfter", "0"),
    _str("IptablesNATOutgoingInterfaceFilter", "", rules=("ifaceFilter",)),
    # XDP / BPF.
    _bool("SidecarAccelerationEnabled", False),
    _bool("XDPEnabled", True),
    _bool("GenericXDPEnabled", False),
    _bool("BPFEnabled", False),
    _bool("BPFDisableUnprivileged", True),
    _enum("BPFLogLevel", "Off", "Off,Info,Debug"),
    _param("BPFDataIfacePattern", ValueKind.REGEX, "^(en.*|eth.*|tunl0$)"),
    _bool("BPFConnectTimeLoadBalancingEnabled", True),
    _enum("BPFExternalServiceMode", "Tunnel", "Tunnel,DSR"),
    _int("BPFExtToServiceConnmark", 0, rules=("gte=0", "lte=4294967295")),
    _bool("BPFKubeProxyIptablesCleanupEnabled", True),
    _secs("BPFKubeProxyMinSyncPeriod", "1"),
    _bool("BPFKubeProxyEndpointSlicesEnabled", False),
    # Syslog reporter.
    _str("SyslogReporterNetwork", ""),
    _str("SyslogReporterAddress", ""),
    # IPsec.
    _enum("IPSecMode", "", ",PSK"),
    _bool("IPSecAllowUnsecuredTraffic", False),
    _str("IPSecIKEAlgorithm", "aes128gcm16-prfsha256-ecp256"),
    _str("IPSecESPAlgorithm", "aes128gcm16-ecp256"),
    _enum("IPSecLogLevel", "Info", "None,Notice,Info,Debug,Verbose"),
    _secs("IPSecPolicyRefreshInterval", "600", live=True),
    # Flow logs.
    _secs("FlowLogsFlushInterval", "300", live=True),
    _bool("FlowLogsEnableHostEndpoint", False),
    _bool("FlowLogsEnableNetworkSets", False),
    _int("FlowLogsMaxOriginalIPsIncluded", 50, rules=("gte=0",)),
    _bool("FlowLogsCollectProcessInfo", False),
    _bool("FlowLogsCollectTcpStats", False),
    _bool("FlowLogsCollectProcessPath", False),
    _bool("FlowLogsFileEnabled", False),
    _int("FlowLogsFileMaxFiles", 5, rules=("gt=0",)),
    _int("FlowLogsFileMaxFileSizeMB", 100, rules=("gt=0",)),
    _str("FlowLogsFileDirectory", "/var/log/calico/flowlogs"),
    _bool("FlowLogsFileIncludeLabels", False),
    _bool("FlowLogsFileIncludePolicies", False),
    _bool("FlowLogsFileIncludeService", False),
    _int("FlowLogsFileAggregationKindForAllowed", 2, rules=("gte=0", "lte=3")),
    _int("FlowLogsFileAggregationKindForDenied", 1, rules=("gte=0", "lte=3")),
    _bool("FlowLogsFileEnabledForAllowed", True),
    _bool("FlowLogsFileEnabledForDenied", True),
    _bool("FlowLogsDynamicAggregationEnabled", True),
    _str("FlowLogsPositionFilePath", "/var/log/calico/flows.log.pos"),
    _int("FlowLogsAggregationThresholdBytes", 8192, rules=("gt=0",)),
    _int("FlowLogsFilePerFlowProcessLimit", 2, rules=("gte=0",)),
    # Windows nodes.
    _str("WindowsFlowLogsFileDirectory", "c:\\TigeraCalico\\flowlogs"),
    _str("WindowsFlowLogsPositionFilePath", "c:\\TigeraCalico\\flowlogs\\flows.log.pos"),
    _str("WindowsStatsDumpFilePath", "c:\\TigeraCalico\\stats\\dump"),
    _str("WindowsDNSCacheFile", "c:\\TigeraCalico\\felix-dns-cache.txt"),
    _secs("WindowsDNSExtraTTL", "120"),
    # DNS policy and DNS logs.
    _param(
        "DNSTrustedServers",
        ValueKind.STRING_LIST,
        "k8s-service:kube-dns",
        rules=("ipOrK8sService",),
    ),
    _str("DNSCacheFile", "/var/run/calico/felix-dns-cache.txt"),
    _secs("DNSCacheSaveInterval", "60", live=True),
    _int("DNSCacheEpoch", 0, live=True),
    _secs("DNSExtraTTL", "0"),
    _secs("DNSLogsFlushInterval", "300", live=True),
    _bool("DNSLogsFileEnabled", False),
    _int("DNSLogsFileMaxFiles", 5, rules=("gt=0",)),
    _int("DNSLogsFileMaxFileSizeMB", 100, rules=("gt=0",)),
    _str("DNSLogsFileDirectory", "/var/log/calico/dnslogs"),
    _bool("DNSLogsFileIncludeLabels", True),
    _int("DNSLogsFileAggregationKind", 1, rules=("gte=0", "lte=1")),
    _int("DNSLogsFilePerNodeLimit", 0, rules=("gte=0",)),
    _bool("DNSLogsLatency", True),
    # L7 logs.
    _secs("L7LogsFlushInterval", "300", live=True),
    _bool("L7LogsFileEnabled", True),
    _int("L7LogsFileMaxFiles", 5, rules=("gt=0",)),
    _int("L7LogsFileMaxFileSizeMB", 100, rules=("gt=0",)),
    _str("L7LogsFileDirectory", "/var/log/calico/l7logs"),
    _l7_enum("L7LogsFileAggregationHTTPHeaderInfo", "HTTPHeaderInfo", "ExcludeL7HTTPHeaderInfo"),
    _l7_enum("L7LogsFileAggregationHTTPMethod", "HTTPMethod", "IncludeL7HTTPMethod"),
    _l7_enum("L7LogsFileAggregationServiceInfo", "ServiceInfo", "IncludeL7ServiceInfo"),
    _l7_enum("L7LogsFileAggregationDestinationInfo", "DestinationInfo", "IncludeL7DestinationInfo"),
    _enum(
        "L7LogsFileAggregationSourceInfo",
        "IncludeL7SourceInfoNoPort",
        "IncludeL7SourceInfo,IncludeL7SourceInfoNoPort,ExcludeL7SourceInfo",
    ),
    _l7_enum("L7LogsFileAggregationResponseCode", "ResponseCode", "IncludeL7ResponseCode"),
    _enum(
        "L7LogsFileAggregationTrimURL",
        "IncludeL7FullURL",
        "IncludeL7FullURL,TrimURLQuery,TrimURLQueryAndPath,ExcludeL7URL",
    ),
    _int("L7LogsFileAggregationNumURLPath", 5),
    _int("L7LogsFileAggregationURLCharLimit", 250, rules=("gt=0",)),
    _int("L7LogsFilePerNodeLimit", 1500, rules=("gte=0",)),
    _param("WindowsNetworkName", ValueKind.REGEX, "(?i)calico.*"),
    # Routing.
    _enum("RouteSource", "CalicoIPAM", "CalicoIPAM,WorkloadIPs"),
    _param("RouteTableRange", ValueKind.ROUTE_TABLE_RANGE, "1,250"),
    # Egress gateways.
    _enum(
        "EgressIPSupport",
        "Disabled",
        "Disabled,EnabledPerNamespace,EnabledPerNamespaceOrPerPod",
    ),
    _int("EgressIPVXLANPort", 4790, rules=_PORT),
    _int("EgressIPVXLANVNI", 4097, rules=("gt=0", "lte=16777215")),
    _int("EgressIPRoutingRulePriority", 100, rules=_ROUTING_RULE_PRIORITY),
    # WireGuard.
    _bool("WireguardEnabled", False),
    _int("WireguardListeningPort", 51820, rules=("gt=0", "lte=65535")),
    _int("WireguardRoutingRulePriority", 99, rules=_ROUTING_RULE_PRIORITY),
    _str("WireguardInterfaceName", "wg.calico", rules=("interfaceName",)),
    _int("WireguardMTU", 1420, rules=("gt=0",)),
    _bool("WireguardHostEncryptionEnabled", False),
    # Packet capture.
    _str("CaptureDir", "/var/log/calico/pcap", rules=("nonEmpty",)),
    _int("CaptureMaxSizeBytes", 10000000, rules=("gt=0",)),
    _int("CaptureRotationSeconds", 3600, rules=("gt=0",)),
    _int("CaptureMaxFiles", 2, rules=("gt=0",)),
    # Cloud and service handling.
    _enum("AWSSrcDstCheck", "DoNothing", "DoNothing,Enable,Disable"),
    _enum("ServiceLoopPrevention", "Drop", "Drop,Reject,Disabled"),
    _param("MTUIfacePattern", ValueKind.REGEX, "^((en|wl|ww|sl|ib)[opsx].*|(eth|wlan|wwan).*)"),
    _enum("TPROXYMode", "Disabled", "Disabled,Enabled,EnabledAllServices"),
    _int("TPROXYPort", 16001, rules=("gt=0", "lte=65535")),
)

__all__ = ["PARAMETERS"]
