"""
MockCloudClient: implements CloudClientBase against the SQLAlchemy async DB.

This allows full end-to-end runs without a real cloud account. The remote
API's relation rules are applied here the way the remote side would apply
them: missing objects answer 404, duplicate links answer 409, and a running
legacy server refuses hardware and attachment changes.
"""

import dataclasses
import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudprovider.core.exceptions import RemoteAPIError, RemoteConflictError, RemoteNotFoundError
from cloudprovider.domain.kinds import ResourceKind
from cloudprovider.domain.server import (
    FIREWALL_DIRECTIONS,
    FirewallRule,
    FirewallRules,
    StorageAttachment,
)
from cloudprovider.infra.cloud.base import (
    CloudClientBase,
    IPRecord,
    IPRelation,
    NetworkRecord,
    NetworkRelation,
    ObjectRecord,
    ServerRecord,
)
from cloudprovider.models import CloudObject, Server, ServerRelation

_BAD_REQUEST = 400


def _firewall_to_json(firewall: FirewallRules | None) -> dict | None:
    if firewall is None or firewall.is_empty():
        return None
    return {
        direction: [dataclasses.asdict(rule) for rule in getattr(firewall, direction)]
        for direction in FIREWALL_DIRECTIONS
    }


def _firewall_from_json(data: dict | None) -> FirewallRules:
    if not data:
        return FirewallRules()
    return FirewallRules(
        **{
            direction: tuple(FirewallRule(**rule) for rule in data.get(direction, []))
            for direction in FIREWALL_DIRECTIONS
        }
    )


def _object_to_record(obj: CloudObject) -> ObjectRecord:
    return ObjectRecord(object_uuid=obj.object_uuid, name=obj.name, status=obj.status)


class MockCloudClient(CloudClientBase):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- helpers ---

    async def _load_server(self, server_id: str) -> Server:
        server = await self._session.get(Server, server_id)
        if server is None:
            raise RemoteNotFoundError(f"Object (server) {server_id} not found")
        return server

    async def _load_object(self, kind: ResourceKind, object_uuid: str) -> CloudObject:
        obj = await self._session.get(CloudObject, object_uuid)
        if obj is None or obj.kind != kind.value:
            raise RemoteNotFoundError(f"Object ({kind.value}) {object_uuid} not found")
        return obj

    @staticmethod
    def _require_hotplug(server: Server, what: str) -> None:
        if server.legacy and server.power:
            raise RemoteAPIError(
                _BAD_REQUEST,
                f"Server {server.object_uuid} uses legacy hardware and must be stopped "
                f"to change {what}",
            )

    async def _add_relation(
        self,
        server: Server,
        kind: ResourceKind,
        object_uuid: str,
        bootdevice: bool = False,
        firewall: dict | None = None,
    ) -> None:
        if any(r.object_uuid == object_uuid for r in server.relations):
            raise RemoteConflictError(
                f"Object {object_uuid} is already linked to server {server.object_uuid}"
            )
        server.relations.append(
            ServerRelation(
                server_uuid=server.object_uuid,
                object_uuid=object_uuid,
                kind=kind.value,
                bootdevice=bootdevice,
                firewall=firewall,
            )
        )
        await self._session.flush()

    async def _remove_relation(self, server_id: str, kind: ResourceKind, object_uuid: str) -> None:
        server = await self._load_server(server_id)
        relation = next(
            (
                r
                for r in server.relations
                if r.object_uuid == object_uuid and r.kind == kind.value
            ),
            None,
        )
        if relation is None:
            raise RemoteNotFoundError(
                f"Relation between server {server_id} and {kind.value} {object_uuid} not found"
            )
        if kind in (ResourceKind.STORAGE, ResourceKind.NETWORK):
            self._require_hotplug(server, f"{kind.value}s")
        server.relations.remove(relation)
        await self._session.flush()

    async def add_object(self, kind: ResourceKind, name: str = "", **fields: object) -> str:
        """Create a storage, network, IP, ... directly in the emulated backend."""
        obj = CloudObject(object_uuid=str(uuid.uuid4()), kind=kind.value, name=name, **fields)
        self._session.add(obj)
        await self._session.flush()
        return obj.object_uuid

    # --- Server operations ---

    async def get_server(self, server_id: str) -> ServerRecord:
        server = await self._load_server(server_id)
        related_ids = [r.object_uuid for r in server.relations]
        objects = {}
        if related_ids:
            result = await self._session.execute(
                select(CloudObject).where(CloudObject.object_uuid.in_(related_ids))
            )
            objects = {o.object_uuid: o for o in result.scalars().all()}

        record = ServerRecord(
            object_uuid=server.object_uuid,
            name=server.name,
            status=server.status,
            cores=server.cores,
            memory=server.memory,
            power=server.power,
            legacy=server.legacy,
            hardware_profile=server.hardware_profile,
            location_uuid=server.location_uuid,
            availability_zone=server.availability_zone,
            labels=list(server.labels or []),
            current_price=server.current_price,
            auto_recovery=server.auto_recovery,
            console_token=server.console_token,
            usage_in_minutes_memory=server.usage_in_minutes_memory,
            usage_in_minutes_cores=server.usage_in_minutes_cores,
        )
        for relation in server.relations:
            obj = objects.get(relation.object_uuid)
            if relation.kind == ResourceKind.STORAGE.value:
                record.storages.append(StorageAttachment(relation.object_uuid, relation.bootdevice))
            elif relation.kind == ResourceKind.NETWORK.value:
                record.networks.append(
                    NetworkRelation(
                        object_uuid=relation.object_uuid,
                        bootdevice=relation.bootdevice,
                        public=bool(obj and obj.public),
                        firewall=_firewall_from_json(relation.firewall),
                    )
                )
            elif relation.kind == ResourceKind.IP.value:
                record.ip_addresses.append(
                    IPRelation(relation.object_uuid, obj.family if obj and obj.family else 4)
                )
            elif relation.kind == ResourceKind.ISO_IMAGE.value:
                record.isoimages.append(relation.object_uuid)
        return record

    async def create_server(
        self,
        name: str,
        cores: int,
        memory: int,
        hardware_profile: str,
        location_uuid: str,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> str:
        server = Server(
            object_uuid=str(uuid.uuid4()),
            name=name,
            status="active",  # mock: skip in-provisioning, go straight to active
            cores=cores,
            memory=memory,
            hardware_profile=hardware_profile,
            legacy=hardware_profile == "legacy",
            power=False,
            location_uuid=location_uuid,
            availability_zone=availability_zone or "a",
            labels=list(labels or []),
            console_token=secrets.token_hex(16),
            relations=[],
        )
        self._session.add(server)
        await self._session.flush()
        return server.object_uuid

    async def update_server(
        self,
        server_id: str,
        name: str,
        cores: int,
        memory: int,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> None:
        server = await self._load_server(server_id)
        if server.power and (cores < server.cores or memory < server.memory):
            raise RemoteAPIError(
                _BAD_REQUEST, f"Server {server_id} must be stopped to reduce cores or memory"
            )
        if cores != server.cores or memory != server.memory:
            self._require_hotplug(server, "cores or memory")
        server.name = name
        server.cores = cores
        server.memory = memory
        if availability_zone is not None:
            server.availability_zone = availability_zone
        if labels is not None:
            server.labels = list(labels)
        await self._session.flush()

    async def delete_server(self, server_id: str) -> None:
        server = await self._load_server(server_id)
        if server.power:
            raise RemoteAPIError(_BAD_REQUEST, f"Server {server_id} must be stopped to be deleted")
        await self._session.delete(server)
        await self._session.flush()

    async def _set_power(self, server_id: str, power: bool) -> None:
        server = await self._load_server(server_id)
        server.power = power
        await self._session.flush()

    async def start_server(self, server_id: str) -> None:
        await self._set_power(server_id, True)

    async def stop_server(self, server_id: str) -> None:
        await self._set_power(server_id, False)

    async def shutdown_server(self, server_id: str) -> None:
        await self._set_power(server_id, False)

    # --- Server relations ---

    async def link_storage(self, server_id: str, storage_id: str, bootdevice: bool) -> None:
        server = await self._load_server(server_id)
        await self._load_object(ResourceKind.STORAGE, storage_id)
        self._require_hotplug(server, "storages")
        await self._add_relation(server, ResourceKind.STORAGE, storage_id, bootdevice=bootdevice)

    async def unlink_storage(self, server_id: str, storage_id: str) -> None:
        await self._remove_relation(server_id, ResourceKind.STORAGE, storage_id)

    async def link_network(
        self,
        server_id: str,
        network_id: str,
        bootdevice: bool = False,
        firewall: FirewallRules | None = None,
    ) -> None:
        server = await self._load_server(server_id)
        await self._load_object(ResourceKind.NETWORK, network_id)
        self._require_hotplug(server, "networks")
        await self._add_relation(
            server,
            ResourceKind.NETWORK,
            network_id,
            bootdevice=bootdevice,
            firewall=_firewall_to_json(firewall),
        )

    async def unlink_network(self, server_id: str, network_id: str) -> None:
        await self._remove_relation(server_id, ResourceKind.NETWORK, network_id)

    async def link_ip(self, server_id: str, ip_id: str) -> None:
        server = await self._load_server(server_id)
        ip = await self._load_object(ResourceKind.IP, ip_id)
        for relation in server.relations:
            if relation.kind != ResourceKind.IP.value or relation.object_uuid == ip_id:
                continue
            other = await self._session.get(CloudObject, relation.object_uuid)
            if other is not None and other.family == ip.family:
                raise RemoteConflictError(
                    f"Server {server_id} already has an IPv{ip.family} address"
                )
        await self._add_relation(server, ResourceKind.IP, ip_id)

    async def unlink_ip(self, server_id: str, ip_id: str) -> None:
        await self._remove_relation(server_id, ResourceKind.IP, ip_id)

    async def link_isoimage(self, server_id: str, isoimage_id: str) -> None:
        server = await self._load_server(server_id)
        await self._load_object(ResourceKind.ISO_IMAGE, isoimage_id)
        if any(
            r.kind == ResourceKind.ISO_IMAGE.value and r.object_uuid != isoimage_id
            for r in server.relations
        ):
            raise RemoteConflictError(f"Server {server_id} already has an ISO image")
        await self._add_relation(server, ResourceKind.ISO_IMAGE, isoimage_id)

    async def unlink_isoimage(self, server_id: str, isoimage_id: str) -> None:
        await self._remove_relation(server_id, ResourceKind.ISO_IMAGE, isoimage_id)

    # --- Lookups ---

    async def get_network_public(self) -> NetworkRecord:
        result = await self._session.execute(
            select(CloudObject).where(
                CloudObject.kind == ResourceKind.NETWORK.value, CloudObject.public.is_(True)
            )
        )
        network = result.scalars().first()
        if network is None:
            # The remote side always has a public network
            network_id = await self.add_object(
                ResourceKind.NETWORK, name="Public Network", public=True
            )
            network = await self._load_object(ResourceKind.NETWORK, network_id)
        return NetworkRecord(
            object_uuid=network.object_uuid, name=network.name, status=network.status, public=True
        )

    async def get_ip_version(self, ip_id: str) -> int:
        ip = await self._load_object(ResourceKind.IP, ip_id)
        return ip.family or 4

    async def get_ip(self, ip_id: str) -> IPRecord:
        ip = await self._load_object(ResourceKind.IP, ip_id)
        return IPRecord(
            object_uuid=ip.object_uuid,
            name=ip.name,
            status=ip.status,
            family=ip.family or 4,
            ip=ip.ip or "",
        )

    async def get_network(self, network_id: str) -> NetworkRecord:
        network = await self._load_object(ResourceKind.NETWORK, network_id)
        return NetworkRecord(
            object_uuid=network.object_uuid,
            name=network.name,
            status=network.status,
            public=network.public,
        )

    async def get_storage(self, storage_id: str) -> ObjectRecord:
        return _object_to_record(await self._load_object(ResourceKind.STORAGE, storage_id))

    async def get_storage_snapshot(self, storage_id: str, snapshot_id: str) -> ObjectRecord:
        snapshot = await self._load_object(ResourceKind.SNAPSHOT, snapshot_id)
        if snapshot.parent_uuid != storage_id:
            raise RemoteNotFoundError(
                f"Snapshot {snapshot_id} not found on storage {storage_id}"
            )
        return _object_to_record(snapshot)

    async def get_isoimage(self, isoimage_id: str) -> ObjectRecord:
        return _object_to_record(await self._load_object(ResourceKind.ISO_IMAGE, isoimage_id))

    async def get_loadbalancer(self, loadbalancer_id: str) -> ObjectRecord:
        obj = await self._load_object(ResourceKind.LOADBALANCER, loadbalancer_id)
        return _object_to_record(obj)

    async def get_sshkey(self, sshkey_id: str) -> ObjectRecord:
        return _object_to_record(await self._load_object(ResourceKind.SSH_KEY, sshkey_id))

    async def get_paas_service(self, service_id: str) -> ObjectRecord:
        return _object_to_record(await self._load_object(ResourceKind.PAAS, service_id))

    async def get_security_zone(self, zone_id: str) -> ObjectRecord:
        return _object_to_record(await self._load_object(ResourceKind.SECURITY_ZONE, zone_id))
