"""
Server service: lifecycle handlers for the server resource.

Translates create/read/update/delete calls from the host engine into remote
calls, delegating attachment changes to the ServerDependencyReconciler and
waiting on the StatusPoller where the remote side works asynchronously.

An update runs these steps in order and stops at the first error, with no
rollback; the next update starts again from a fresh read of the server:

    replace-only field check -> IP family check -> shutdown if required
    -> field update -> ISO image -> IPv4 -> IPv6 -> public network
    -> other networks -> storages -> desired power state
"""

import dataclasses
import logging

from cloudprovider.config import settings
from cloudprovider.core.exceptions import (
    AppException,
    AttributeValidationError,
    ReconciliationError,
    ServerNotFoundError,
    is_not_found,
)
from cloudprovider.core.logging import bind_server_id
from cloudprovider.core.retry import retry_on_conflict
from cloudprovider.domain.kinds import ResourceKind
from cloudprovider.domain.server import AttachmentSet, ChangeSet, ServerSpec
from cloudprovider.infra.cloud.base import CloudClientBase, ServerRecord
from cloudprovider.schemas.adapter import to_attachment_set, to_server_spec
from cloudprovider.schemas.server import ServerConfig
from cloudprovider.services.server_dependencies import ServerDependencyReconciler
from cloudprovider.services.status_poller import StatusPoller

logger = logging.getLogger(__name__)

# The remote API cannot move a server or swap its hardware profile
_REPLACE_ONLY_FIELDS = ("hardware_profile", "location_uuid")


class ServerService:
    def __init__(
        self,
        client: CloudClientBase,
        reconciler: ServerDependencyReconciler | None = None,
        poller: StatusPoller | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self._client = client
        self._reconciler = reconciler or ServerDependencyReconciler(client)
        self._poller = poller or StatusPoller(client)
        self._retry_delay = settings.poll_delay_seconds if retry_delay is None else retry_delay

    async def _set_power(self, server_id: str, on: bool, timeout: float) -> None:
        action = "power on server" if on else "shut down server"
        operation = self._client.start_server if on else self._client.shutdown_server
        try:
            await retry_on_conflict(
                lambda: operation(server_id),
                delay=self._retry_delay,
                timeout=timeout,
            )
        except Exception as exc:
            raise ReconciliationError(action, server_id, None, exc) from exc
        logger.info("Server power changed", extra={"server_id": server_id, "power": on})

    async def _check_ip_families(
        self, server_id: str | None, ipv4: str | None, ipv6: str | None
    ) -> None:
        for ip_id, family in ((ipv4, 4), (ipv6, 6)):
            if ip_id:
                await self._reconciler.check_ip_family(server_id, ip_id, family)

    async def create(self, config: ServerConfig) -> ServerRecord:
        spec = to_server_spec(config)
        attachments = to_attachment_set(config)
        await self._check_ip_families(None, attachments.ipv4, attachments.ipv6)

        try:
            server_id = await self._client.create_server(
                name=spec.name,
                cores=spec.cores,
                memory=spec.memory,
                hardware_profile=spec.hardware_profile,
                location_uuid=spec.location_uuid,
                availability_zone=spec.availability_zone,
                labels=sorted(spec.labels),
            )
        except Exception as exc:
            raise ReconciliationError(f"create server {spec.name}", None, None, exc) from exc
        logger.info(
            "Server created",
            extra={"server_id": server_id, "server_name": spec.name, "cores": spec.cores},
        )
        with bind_server_id(server_id):
            try:
                await self._finish_create(server_id, spec, attachments)
            except AppException as exc:
                # The server exists remotely; the host needs its id to track it
                logger.error("Server created but left incomplete", extra={"server_id": server_id})
                exc.add_details(server_id=server_id)
                raise
            except Exception as exc:
                raise ReconciliationError("finish creating server", server_id, None, exc) from exc
            return await self.get(server_id)

    async def _finish_create(
        self, server_id: str, spec: ServerSpec, attachments: AttachmentSet
    ) -> None:
        await self._poller.wait_until_active(
            ResourceKind.SERVER, server_id, timeout=settings.create_timeout
        )

        # The boot storage has to be linked before anything else
        await self._reconciler.link_storages(server_id, attachments.storages)
        await self._reconciler.link_ipv4(server_id, attachments.ipv4)
        await self._reconciler.link_ipv6(server_id, attachments.ipv6)
        if attachments.has_public_ip:
            await self._reconciler.link_networks(server_id, is_public=True)
        await self._reconciler.link_isoimage(server_id, attachments.isoimage)
        await self._reconciler.link_networks(server_id, attachments.networks)

        if spec.power:
            await self._set_power(server_id, True, settings.create_timeout)

    async def get(self, server_id: str) -> ServerRecord:
        try:
            server = await self._client.get_server(server_id)
        except Exception as exc:
            if is_not_found(exc):
                raise ServerNotFoundError(server_id) from exc
            raise
        logger.debug("Server fetched", extra={"server_id": server_id})
        return server

    async def update(
        self, server_id: str, prior: ServerConfig, desired: ServerConfig
    ) -> ServerRecord:
        with bind_server_id(server_id):
            return await self._update(server_id, prior, desired)

    async def _update(
        self, server_id: str, prior: ServerConfig, desired: ServerConfig
    ) -> ServerRecord:
        old_spec = to_server_spec(prior, server_id)
        desired_spec = to_server_spec(desired, server_id)
        old = to_attachment_set(prior)
        new = to_attachment_set(desired)
        for field in _REPLACE_ONLY_FIELDS:
            if getattr(old_spec, field) != getattr(desired_spec, field):
                raise AttributeValidationError(
                    field, f"{field} cannot be changed in place; the server must be replaced"
                )

        server = await self.get(server_id)
        new_spec = dataclasses.replace(desired_spec, legacy=server.legacy)
        change = ChangeSet(old_spec=old_spec, new_spec=new_spec, old=old, new=new)
        await self._check_ip_families(
            server_id,
            new.ipv4 if change.ipv4_changed else None,
            new.ipv6 if change.ipv6_changed else None,
        )

        powered_on = server.power
        if self._reconciler.is_shutdown_required(change) and powered_on:
            logger.info("Shutdown required for update", extra={"server_id": server_id})
            await self._set_power(server_id, False, settings.update_timeout)
            powered_on = False

        if change.fields_changed:
            try:
                await self._client.update_server(
                    server_id,
                    name=new_spec.name,
                    cores=new_spec.cores,
                    memory=new_spec.memory,
                    availability_zone=new_spec.availability_zone,
                    labels=sorted(new_spec.labels),
                )
            except Exception as exc:
                raise ReconciliationError("update server", server_id, None, exc) from exc
            logger.info("Server fields updated", extra={"server_id": server_id})

        await self._reconciler.update_isoimage_rel(
            server_id, change.old.isoimage, change.new.isoimage
        )
        needs_public_v4 = await self._reconciler.update_ipv4_rel(
            server_id, change.old.ipv4, change.new.ipv4
        )
        needs_public_v6 = await self._reconciler.update_ipv6_rel(
            server_id, change.old.ipv6, change.new.ipv6
        )
        if change.old.has_public_ip and not change.new.has_public_ip:
            await self._reconciler.update_public_network_rel(server_id, attach=False)
        elif (needs_public_v4 or needs_public_v6) and not change.old.has_public_ip:
            await self._reconciler.update_public_network_rel(server_id, attach=True)
        await self._reconciler.update_other_network_rel(
            server_id, change.old.networks, change.new.networks
        )
        await self._reconciler.update_storage_rel(
            server_id, change.old.storages, change.new.storages
        )

        if new_spec.power != powered_on:
            await self._set_power(server_id, new_spec.power, settings.update_timeout)
        return await self.get(server_id)

    async def delete(self, server_id: str) -> None:
        with bind_server_id(server_id):
            await self._delete(server_id)

    async def _delete(self, server_id: str) -> None:
        try:
            server = await self.get(server_id)
        except ServerNotFoundError:
            logger.info("Server already deleted", extra={"server_id": server_id})
            return

        if server.power:
            try:
                await retry_on_conflict(
                    lambda: self._client.stop_server(server_id),
                    delay=self._retry_delay,
                    timeout=settings.delete_timeout,
                )
            except Exception as exc:
                raise ReconciliationError("stop server", server_id, None, exc) from exc

        try:
            await self._client.delete_server(server_id)
        except Exception as exc:
            if not is_not_found(exc):
                raise ReconciliationError("delete server", server_id, None, exc) from exc
        await self._poller.wait_until_deleted(
            ResourceKind.SERVER, server_id, timeout=settings.delete_timeout
        )
        logger.info("Server deleted", extra={"server_id": server_id})
