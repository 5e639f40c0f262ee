"""
HttpCloudClient: implements CloudClientBase against the remote REST API.

Every non-2xx answer becomes a RemoteAPIError through
``RemoteAPIError.from_status``, so that callers can classify 404 and 409
without looking at HTTP details. Transport failures surface as a
RemoteAPIError with status 503.
"""

import logging
from typing import Any

import httpx

from cloudprovider.config import settings
from cloudprovider.core.exceptions import RemoteAPIError
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

logger = logging.getLogger(__name__)

_NOT_FOUND = 404
_SERVICE_UNAVAILABLE = 503

# Rule list names on the wire use dashes: rules_v4_in <-> rules-v4-in
_WIRE_DIRECTIONS = {direction: direction.replace("_", "-") for direction in FIREWALL_DIRECTIONS}


def _firewall_to_wire(firewall: FirewallRules | None) -> dict[str, Any] | None:
    if firewall is None or firewall.is_empty():
        return None
    body: dict[str, Any] = {}
    for direction, wire_name in _WIRE_DIRECTIONS.items():
        rules = []
        for rule in getattr(firewall, direction):
            item: dict[str, Any] = {"order": rule.order, "action": rule.action}
            for key in ("protocol", "src_port", "dst_port", "src_cidr", "dst_cidr", "comment"):
                value = getattr(rule, key)
                if value:
                    item[key] = value
            rules.append(item)
        if rules:
            body[wire_name] = rules
    return body


def _firewall_from_wire(data: dict[str, Any] | None) -> FirewallRules:
    if not data:
        return FirewallRules()
    rules = {}
    for direction, wire_name in _WIRE_DIRECTIONS.items():
        rules[direction] = tuple(
            FirewallRule(
                order=item["order"],
                action=item["action"],
                protocol=item.get("protocol"),
                src_port=item.get("src_port") or "",
                dst_port=item.get("dst_port") or "",
                src_cidr=item.get("src_cidr") or "",
                dst_cidr=item.get("dst_cidr") or "",
                comment=item.get("comment") or "",
            )
            for item in data.get(wire_name) or []
        )
    return FirewallRules(**rules)


def _object_record(data: dict[str, Any]) -> ObjectRecord:
    return ObjectRecord(
        object_uuid=data["object_uuid"], name=data.get("name", ""), status=data["status"]
    )


def _network_record(data: dict[str, Any]) -> NetworkRecord:
    return NetworkRecord(
        object_uuid=data["object_uuid"],
        name=data.get("name", ""),
        status=data["status"],
        public=bool(data.get("public_net")),
    )


def _server_record(data: dict[str, Any]) -> ServerRecord:
    relations = data.get("relations") or {}
    return ServerRecord(
        object_uuid=data["object_uuid"],
        name=data["name"],
        status=data["status"],
        cores=data["cores"],
        memory=data["memory"],
        power=bool(data.get("power")),
        legacy=bool(data.get("legacy")),
        hardware_profile=data.get("hardware_profile") or "default",
        location_uuid=data.get("location_uuid", ""),
        availability_zone=data.get("availability_zone"),
        labels=list(data.get("labels") or []),
        current_price=float(data.get("current_price") or 0.0),
        auto_recovery=bool(data.get("auto_recovery", True)),
        console_token=data.get("console_token") or "",
        usage_in_minutes_memory=int(data.get("usage_in_minutes_memory") or 0),
        usage_in_minutes_cores=int(data.get("usage_in_minutes_cores") or 0),
        storages=[
            StorageAttachment(s["object_uuid"], bool(s.get("bootdevice")))
            for s in relations.get("storages") or []
        ],
        networks=[
            NetworkRelation(
                object_uuid=n["network_uuid"],
                bootdevice=bool(n.get("bootdevice")),
                public=bool(n.get("public_net")),
                firewall=_firewall_from_wire(n.get("firewall")),
            )
            for n in relations.get("networks") or []
        ],
        ip_addresses=[
            IPRelation(ip["ip_uuid"], int(ip["family"]))
            for ip in relations.get("public_ips") or []
        ],
        isoimages=[iso["object_uuid"] for iso in relations.get("isoimages") or []],
    )


class HttpCloudClient(CloudClientBase):
    """
    Remote API client over ``httpx.AsyncClient``.

    Instantiate via: HttpCloudClient.from_settings(), and close with ``aclose()``.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_settings(
        cls, transport: httpx.AsyncBaseTransport | None = None
    ) -> "HttpCloudClient":
        http = httpx.AsyncClient(
            base_url=settings.api_url.rstrip("/"),
            headers={
                "X-Auth-UserId": settings.api_user_uuid,
                "X-Auth-Token": settings.api_token.get_secret_value(),
                "Content-Type": "application/json",
            },
            timeout=settings.api_request_timeout,
            transport=transport,
        )
        return cls(http)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=json_body)
        except httpx.HTTPError as exc:
            raise RemoteAPIError(
                _SERVICE_UNAVAILABLE, f"{method} {path} failed: {exc}"
            ) from exc

        logger.debug(
            "Remote API call",
            extra={"method": method, "path": path, "status_code": response.status_code},
        )
        if response.status_code >= 400:
            body = response.text.strip()
            detail = f"{method} {path} returned status={response.status_code}"
            if body:
                detail = f"{detail}; body={body[:240]}"
            raise RemoteAPIError.from_status(response.status_code, detail)
        if not response.content:
            return {}
        return response.json()

    # --- Server operations ---

    async def get_server(self, server_id: str) -> ServerRecord:
        data = await self._request("GET", f"/objects/servers/{server_id}")
        return _server_record(data["server"])

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
        body: dict[str, Any] = {
            "name": name,
            "cores": cores,
            "memory": memory,
            "hardware_profile": hardware_profile,
            "location_uuid": location_uuid,
            "labels": list(labels or []),
        }
        if availability_zone:
            body["availability_zone"] = availability_zone
        data = await self._request("POST", "/objects/servers", body)
        return data["object_uuid"]

    async def update_server(
        self,
        server_id: str,
        name: str,
        cores: int,
        memory: int,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> None:
        body: dict[str, Any] = {"name": name, "cores": cores, "memory": memory}
        if availability_zone:
            body["availability_zone"] = availability_zone
        if labels is not None:
            body["labels"] = list(labels)
        await self._request("PATCH", f"/objects/servers/{server_id}", body)

    async def delete_server(self, server_id: str) -> None:
        await self._request("DELETE", f"/objects/servers/{server_id}")

    async def start_server(self, server_id: str) -> None:
        await self._request("PATCH", f"/objects/servers/{server_id}/power", {"power": True})

    async def stop_server(self, server_id: str) -> None:
        await self._request("PATCH", f"/objects/servers/{server_id}/power", {"power": False})

    async def shutdown_server(self, server_id: str) -> None:
        await self._request("PATCH", f"/objects/servers/{server_id}/shutdown", {})

    # --- Server relations ---

    async def link_storage(self, server_id: str, storage_id: str, bootdevice: bool) -> None:
        await self._request(
            "POST",
            f"/objects/servers/{server_id}/storages",
            {"object_uuid": storage_id, "bootdevice": bootdevice},
        )

    async def unlink_storage(self, server_id: str, storage_id: str) -> None:
        await self._request("DELETE", f"/objects/servers/{server_id}/storages/{storage_id}")

    async def link_network(
        self,
        server_id: str,
        network_id: str,
        bootdevice: bool = False,
        firewall: FirewallRules | None = None,
    ) -> None:
        body: dict[str, Any] = {"object_uuid": network_id, "bootdevice": bootdevice}
        rules = _firewall_to_wire(firewall)
        if rules:
            body["firewall"] = rules
        await self._request("POST", f"/objects/servers/{server_id}/networks", body)

    async def unlink_network(self, server_id: str, network_id: str) -> None:
        await self._request("DELETE", f"/objects/servers/{server_id}/networks/{network_id}")

    async def link_ip(self, server_id: str, ip_id: str) -> None:
        await self._request("POST", f"/objects/servers/{server_id}/ips", {"object_uuid": ip_id})

    async def unlink_ip(self, server_id: str, ip_id: str) -> None:
        await self._request("DELETE", f"/objects/servers/{server_id}/ips/{ip_id}")

    async def link_isoimage(self, server_id: str, isoimage_id: str) -> None:
        await self._request(
            "POST", f"/objects/servers/{server_id}/isoimages", {"object_uuid": isoimage_id}
        )

    async def unlink_isoimage(self, server_id: str, isoimage_id: str) -> None:
        await self._request("DELETE", f"/objects/servers/{server_id}/isoimages/{isoimage_id}")

    # --- Lookups ---

    async def get_network_public(self) -> NetworkRecord:
        data = await self._request("GET", "/objects/networks")
        for network in (data.get("networks") or {}).values():
            if network.get("public_net"):
                return _network_record(network)
        raise RemoteAPIError.from_status(_NOT_FOUND, "Public network not found")

    async def get_ip_version(self, ip_id: str) -> int:
        return (await self.get_ip(ip_id)).family

    async def get_ip(self, ip_id: str) -> IPRecord:
        data = (await self._request("GET", f"/objects/ips/{ip_id}"))["ip"]
        return IPRecord(
            object_uuid=data["object_uuid"],
            name=data.get("name", ""),
            status=data["status"],
            family=int(data["family"]),
            ip=data.get("ip", ""),
        )

    async def get_network(self, network_id: str) -> NetworkRecord:
        data = await self._request("GET", f"/objects/networks/{network_id}")
        return _network_record(data["network"])

    async def get_storage(self, storage_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/storages/{storage_id}")
        return _object_record(data["storage"])

    async def get_storage_snapshot(self, storage_id: str, snapshot_id: str) -> ObjectRecord:
        data = await self._request(
            "GET", f"/objects/storages/{storage_id}/snapshots/{snapshot_id}"
        )
        return _object_record(data["snapshot"])

    async def get_isoimage(self, isoimage_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/isoimages/{isoimage_id}")
        return _object_record(data["isoimage"])

    async def get_loadbalancer(self, loadbalancer_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/loadbalancers/{loadbalancer_id}")
        return _object_record(data["loadbalancer"])

    async def get_sshkey(self, sshkey_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/sshkeys/{sshkey_id}")
        return _object_record(data["sshkey"])

    async def get_paas_service(self, service_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/paas/services/{service_id}")
        return _object_record(data["paas_service"])

    async def get_security_zone(self, zone_id: str) -> ObjectRecord:
        data = await self._request("GET", f"/objects/paas/security_zones/{zone_id}")
        return _object_record(data["paas_security_zone"])
