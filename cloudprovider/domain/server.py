"""Typed server configuration used by the reconciler.

These types carry no knowledge of the host's attribute model; the adapter in
``cloudprovider.schemas.adapter`` builds them from validated payloads.
"""

from dataclasses import dataclass, field

from cloudprovider.domain.validation import LEGACY_HARDWARE_PROFILE

FIREWALL_DIRECTIONS = ("rules_v4_in", "rules_v4_out", "rules_v6_in", "rules_v6_out")


@dataclass(frozen=True)
class FirewallRule:
    order: int
    action: str
    protocol: str | None = None
    src_port: str = ""
    dst_port: str = ""
    src_cidr: str = ""
    dst_cidr: str = ""
    comment: str = ""


@dataclass(frozen=True)
class FirewallRules:
    """Rules of one network attachment, one ordered list per direction.

    Rules are evaluated by ascending order, first match wins, and traffic
    matching no rule is dropped.
    """

    rules_v4_in: tuple[FirewallRule, ...] = ()
    rules_v4_out: tuple[FirewallRule, ...] = ()
    rules_v6_in: tuple[FirewallRule, ...] = ()
    rules_v6_out: tuple[FirewallRule, ...] = ()

    def is_empty(self) -> bool:
        return not any(getattr(self, direction) for direction in FIREWALL_DIRECTIONS)


@dataclass(frozen=True)
class StorageAttachment:
    object_uuid: str
    bootdevice: bool = False


@dataclass(frozen=True)
class NetworkAttachment:
    object_uuid: str
    bootdevice: bool = False
    firewall: FirewallRules = field(default_factory=FirewallRules)


def boot_first(attachments):
    """Boot devices first, everything else in its original order."""
    return sorted(attachments, key=lambda a: not a.bootdevice)


def diff_by_uuid(old, new):
    """Split two attachment lists into ('old minus new', 'new minus old') by object UUID.

    Both results keep the order of the list they come from. Entries present
    on both sides are in neither result.
    """
    old_uuids = {a.object_uuid for a in old}
    new_uuids = {a.object_uuid for a in new}
    to_unlink = [a for a in old if a.object_uuid not in new_uuids]
    to_link = [a for a in new if a.object_uuid not in old_uuids]
    return to_unlink, to_link


@dataclass(frozen=True)
class AttachmentSet:
    storages: tuple[StorageAttachment, ...] = ()
    networks: tuple[NetworkAttachment, ...] = ()
    ipv4: str | None = None
    ipv6: str | None = None
    isoimage: str | None = None

    @property
    def storage_uuids(self) -> frozenset[str]:
        return frozenset(s.object_uuid for s in self.storages)

    @property
    def network_uuids(self) -> frozenset[str]:
        return frozenset(n.object_uuid for n in self.networks)

    @property
    def has_public_ip(self) -> bool:
        return bool(self.ipv4 or self.ipv6)


@dataclass(frozen=True)
class ServerSpec:
    name: str
    cores: int
    memory: int
    hardware_profile: str = "default"
    power: bool = False
    availability_zone: str | None = None
    location_uuid: str = ""
    labels: frozenset[str] = frozenset()
    legacy: bool = False
    object_uuid: str | None = None

    @property
    def is_legacy(self) -> bool:
        return self.legacy or self.hardware_profile == LEGACY_HARDWARE_PROFILE


@dataclass(frozen=True)
class ChangeSet:
    """Difference between the previous and the desired configuration of a server."""

    old_spec: ServerSpec
    new_spec: ServerSpec
    old: AttachmentSet
    new: AttachmentSet

    @property
    def cores_changed(self) -> bool:
        return self.old_spec.cores != self.new_spec.cores

    @property
    def cores_decreased(self) -> bool:
        return self.new_spec.cores < self.old_spec.cores

    @property
    def memory_changed(self) -> bool:
        return self.old_spec.memory != self.new_spec.memory

    @property
    def memory_decreased(self) -> bool:
        return self.new_spec.memory < self.old_spec.memory

    @property
    def ipv4_changed(self) -> bool:
        return self.old.ipv4 != self.new.ipv4

    @property
    def ipv6_changed(self) -> bool:
        return self.old.ipv6 != self.new.ipv6

    @property
    def isoimage_changed(self) -> bool:
        return self.old.isoimage != self.new.isoimage

    @property
    def storages_changed(self) -> bool:
        return self.old.storage_uuids != self.new.storage_uuids

    @property
    def networks_changed(self) -> bool:
        return self.old.network_uuids != self.new.network_uuids

    @property
    def fields_changed(self) -> bool:
        old, new = self.old_spec, self.new_spec
        return (
            old.name != new.name
            or old.cores != new.cores
            or old.memory != new.memory
            or old.availability_zone != new.availability_zone
            or old.labels != new.labels
        )
