"""
Conversion between the host's attribute model and the reconciler's typed structs.

Everything that can be checked locally is checked here, so that invalid
input fails before any remote call is made.
"""

from cloudprovider.core.exceptions import AttributeValidationError
from cloudprovider.domain.server import (
    FIREWALL_DIRECTIONS,
    AttachmentSet,
    FirewallRule,
    FirewallRules,
    NetworkAttachment,
    ServerSpec,
    StorageAttachment,
)
from cloudprovider.domain.validation import (
    AVAILABILITY_ZONES,
    HARDWARE_PROFILES,
    validate_choice,
    validate_port,
    validate_unique_orders,
)
from cloudprovider.infra.cloud.base import ServerRecord
from cloudprovider.schemas.server import (
    FirewallRuleAttrs,
    NetworkAttrs,
    ServerConfig,
    ServerState,
    StorageAttrs,
)


def _to_firewall_rule(attribute: str, rule: FirewallRuleAttrs) -> FirewallRule:
    return FirewallRule(
        order=rule.order,
        action=rule.action,
        protocol=rule.protocol,
        src_port=validate_port(f"{attribute}.src_port", rule.src_port),
        dst_port=validate_port(f"{attribute}.dst_port", rule.dst_port),
        src_cidr=rule.src_cidr,
        dst_cidr=rule.dst_cidr,
        comment=rule.comment,
    )


def to_firewall_rules(index: int, network: NetworkAttrs) -> FirewallRules:
    rules: dict[str, tuple[FirewallRule, ...]] = {}
    for direction in FIREWALL_DIRECTIONS:
        attribute = f"network.{index}.{direction}"
        direction_rules = getattr(network, direction)
        validate_unique_orders(attribute, (r.order for r in direction_rules))
        rules[direction] = tuple(_to_firewall_rule(attribute, r) for r in direction_rules)
    return FirewallRules(**rules)


def _check_unique_uuids(attribute: str, uuids: list[str]) -> None:
    if len(set(uuids)) != len(uuids):
        raise AttributeValidationError(attribute, f"The same object is listed twice in {attribute}")


def to_server_spec(config: ServerConfig, object_uuid: str | None = None) -> ServerSpec:
    validate_choice("hardware_profile", config.hardware_profile, HARDWARE_PROFILES)
    if config.availability_zone is not None:
        validate_choice("availability_zone", config.availability_zone, AVAILABILITY_ZONES)
    return ServerSpec(
        name=config.name,
        cores=config.cores,
        memory=config.memory,
        hardware_profile=config.hardware_profile,
        power=config.power,
        availability_zone=config.availability_zone,
        location_uuid=config.location_uuid,
        labels=frozenset(config.labels),
        object_uuid=object_uuid,
    )


def to_attachment_set(config: ServerConfig) -> AttachmentSet:
    _check_unique_uuids("storage", [s.object_uuid for s in config.storage])
    _check_unique_uuids("network", [n.object_uuid for n in config.network])
    return AttachmentSet(
        storages=tuple(StorageAttachment(s.object_uuid, s.bootdevice) for s in config.storage),
        networks=tuple(
            NetworkAttachment(n.object_uuid, n.bootdevice, to_firewall_rules(i, n))
            for i, n in enumerate(config.network)
        ),
        ipv4=config.ipv4 or None,
        ipv6=config.ipv6 or None,
        isoimage=config.isoimage or None,
    )


def _to_network_attrs(network: NetworkAttachment) -> NetworkAttrs:
    directions = {
        direction: [
            FirewallRuleAttrs(
                order=r.order,
                action=r.action,
                protocol=r.protocol,
                dst_port=r.dst_port,
                src_port=r.src_port,
                src_cidr=r.src_cidr,
                dst_cidr=r.dst_cidr,
                comment=r.comment,
            )
            for r in getattr(network.firewall, direction)
        ]
        for direction in FIREWALL_DIRECTIONS
    }
    return NetworkAttrs(
        object_uuid=network.object_uuid, bootdevice=network.bootdevice, **directions
    )


def record_to_state(record: ServerRecord) -> ServerState:
    return ServerState(
        id=record.object_uuid,
        name=record.name,
        memory=record.memory,
        cores=record.cores,
        location_uuid=record.location_uuid,
        hardware_profile=record.hardware_profile,
        power=record.power,
        availability_zone=record.availability_zone,
        storage=[
            StorageAttrs(object_uuid=s.object_uuid, bootdevice=s.bootdevice)
            for s in record.storages
        ],
        network=[_to_network_attrs(n) for n in record.other_networks],
        ipv4=record.ipv4,
        ipv6=record.ipv6,
        isoimage=record.isoimages[0] if record.isoimages else None,
        labels=list(record.labels),
        status=record.status,
        legacy=record.legacy,
        current_price=record.current_price,
        auto_recovery=record.auto_recovery,
        console_token=record.console_token,
        usage_in_minutes_memory=record.usage_in_minutes_memory,
        usage_in_minutes_cores=record.usage_in_minutes_cores,
    )
