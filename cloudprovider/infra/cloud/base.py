from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from cloudprovider.domain.server import FirewallRules, NetworkAttachment, StorageAttachment


@dataclass
class ObjectRecord:
    """Common shape of every remote object the status poller looks at."""

    object_uuid: str
    name: str
    status: str


@dataclass
class NetworkRecord(ObjectRecord):
    public: bool = False


@dataclass
class IPRecord(ObjectRecord):
    family: int = 4
    ip: str = ""


@dataclass
class NetworkRelation:
    object_uuid: str
    bootdevice: bool = False
    public: bool = False
    firewall: FirewallRules = field(default_factory=FirewallRules)


@dataclass
class IPRelation:
    object_uuid: str
    family: int


@dataclass
class ServerRecord:
    object_uuid: str
    name: str
    status: str
    cores: int
    memory: int
    power: bool
    legacy: bool
    hardware_profile: str
    location_uuid: str
    availability_zone: str | None = None
    labels: list[str] = field(default_factory=list)
    current_price: float = 0.0
    auto_recovery: bool = True
    console_token: str = ""
    usage_in_minutes_memory: int = 0
    usage_in_minutes_cores: int = 0
    storages: list[StorageAttachment] = field(default_factory=list)
    networks: list[NetworkRelation] = field(default_factory=list)
    ip_addresses: list[IPRelation] = field(default_factory=list)
    isoimages: list[str] = field(default_factory=list)

    @property
    def ipv4(self) -> str | None:
        return next((ip.object_uuid for ip in self.ip_addresses if ip.family == 4), None)

    @property
    def ipv6(self) -> str | None:
        return next((ip.object_uuid for ip in self.ip_addresses if ip.family == 6), None)

    @property
    def other_networks(self) -> list[NetworkAttachment]:
        return [
            NetworkAttachment(n.object_uuid, n.bootdevice, n.firewall)
            for n in self.networks
            if not n.public
        ]


class CloudClientBase(ABC):
    """Abstract remote API client used by the lifecycle handlers and the reconciler.

    Every method raises ``RemoteAPIError`` (or its 404/409 subclasses) when the
    remote side rejects the call.
    """

    # --- Server operations ---

    @abstractmethod
    async def get_server(self, server_id: str) -> ServerRecord: ...

    @abstractmethod
    async def create_server(
        self,
        name: str,
        cores: int,
        memory: int,
        hardware_profile: str,
        location_uuid: str,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> str: ...

    @abstractmethod
    async def update_server(
        self,
        server_id: str,
        name: str,
        cores: int,
        memory: int,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> None: ...

    @abstractmethod
    async def delete_server(self, server_id: str) -> None: ...

    @abstractmethod
    async def start_server(self, server_id: str) -> None: ...

    @abstractmethod
    async def stop_server(self, server_id: str) -> None: ...

    @abstractmethod
    async def shutdown_server(self, server_id: str) -> None:
        """Graceful ACPI shutdown; falls back to a hard stop on the remote side."""

    # --- Server relations ---

    @abstractmethod
    async def link_storage(self, server_id: str, storage_id: str, bootdevice: bool) -> None: ...

    @abstractmethod
    async def unlink_storage(self, server_id: str, storage_id: str) -> None: ...

    @abstractmethod
    async def link_network(
        self,
        server_id: str,
        network_id: str,
        bootdevice: bool = False,
        firewall: FirewallRules | None = None,
    ) -> None: ...

    @abstractmethod
    async def unlink_network(self, server_id: str, network_id: str) -> None: ...

    @abstractmethod
    async def link_ip(self, server_id: str, ip_id: str) -> None: ...

    @abstractmethod
    async def unlink_ip(self, server_id: str, ip_id: str) -> None: ...

    @abstractmethod
    async def link_isoimage(self, server_id: str, isoimage_id: str) -> None: ...

    @abstractmethod
    async def unlink_isoimage(self, server_id: str, isoimage_id: str) -> None: ...

    # --- Lookups ---

    @abstractmethod
    async def get_network_public(self) -> NetworkRecord: ...

    @abstractmethod
    async def get_ip_version(self, ip_id: str) -> int: ...

    @abstractmethod
    async def get_ip(self, ip_id: str) -> IPRecord: ...

    @abstractmethod
    async def get_network(self, network_id: str) -> NetworkRecord: ...

    @abstractmethod
    async def get_storage(self, storage_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_storage_snapshot(self, storage_id: str, snapshot_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_isoimage(self, isoimage_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_loadbalancer(self, loadbalancer_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_sshkey(self, sshkey_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_paas_service(self, service_id: str) -> ObjectRecord: ...

    @abstractmethod
    async def get_security_zone(self, zone_id: str) -> ObjectRecord: ...
