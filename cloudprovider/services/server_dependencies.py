"""
Server dependency reconciler: links and unlinks the objects attached to a server.

Given the previous and desired attachments of a server (storages, networks,
IPv4/IPv6 addresses, ISO image) it issues the minimal set of link/unlink calls.
A not-found answer to an unlink means the relation is already gone and counts
as success; every other remote error aborts with a ReconciliationError naming
the action, the object and the server.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from cloudprovider.core.exceptions import IPFamilyMismatchError, ReconciliationError, is_not_found
from cloudprovider.domain.server import (
    ChangeSet,
    FirewallRules,
    NetworkAttachment,
    StorageAttachment,
    boot_first,
    diff_by_uuid,
)
from cloudprovider.infra.cloud.base import CloudClientBase

logger = logging.getLogger(__name__)


class ServerDependencyReconciler:
    def __init__(self, client: CloudClientBase) -> None:
        self._client = client

    async def _apply(
        self,
        action: str,
        server_id: str,
        object_uuid: str | None,
        call: Callable[[], Awaitable[object]],
    ) -> None:
        try:
            await call()
        except Exception as exc:
            logger.error(
                "Reconciliation step failed",
                extra={"action": action, "server_id": server_id, "object_uuid": object_uuid},
            )
            raise ReconciliationError(action, server_id, object_uuid, exc) from exc
        logger.info(
            "Reconciliation step applied",
            extra={"action": action, "server_id": server_id, "object_uuid": object_uuid},
        )

    async def _unlink(
        self,
        action: str,
        server_id: str,
        object_uuid: str,
        call: Callable[[], Awaitable[object]],
    ) -> None:
        try:
            await call()
        except Exception as exc:
            if is_not_found(exc):
                # The relation (or the object itself) is already gone
                logger.warning(
                    "Relation already removed",
                    extra={"action": action, "server_id": server_id, "object_uuid": object_uuid},
                )
                return
            raise ReconciliationError(action, server_id, object_uuid, exc) from exc
        logger.info(
            "Reconciliation step applied",
            extra={"action": action, "server_id": server_id, "object_uuid": object_uuid},
        )

    # --- Initial linking (create) ---

    async def link_storages(
        self,
        server_id: str,
        storages: Iterable[StorageAttachment],
        attached: Iterable[str] = (),
    ) -> None:
        """Attach every storage not yet attached. The boot device goes first."""
        already = set(attached)
        for storage in boot_first(storages):
            if storage.object_uuid in already:
                continue
            await self._apply(
                "attach storage",
                server_id,
                storage.object_uuid,
                lambda s=storage: self._client.link_storage(server_id, s.object_uuid, s.bootdevice),
            )

    async def check_ip_family(self, server_id: str | None, ip_id: str, family: int) -> None:
        """Raise IPFamilyMismatchError unless ``ip_id`` is an IPv``family`` address."""
        try:
            version = await self._client.get_ip_version(ip_id)
        except Exception as exc:
            raise ReconciliationError(
                "look up the version of IP address", server_id, ip_id, exc
            ) from exc
        if version != family:
            raise IPFamilyMismatchError(ip_id, expected=family, actual=version)

    async def _link_ip(self, server_id: str, ip_id: str | None, family: int) -> None:
        if not ip_id:
            return
        await self.check_ip_family(server_id, ip_id, family)
        await self._apply(
            f"attach IPv{family} address",
            server_id,
            ip_id,
            lambda: self._client.link_ip(server_id, ip_id),
        )

    async def link_ipv4(self, server_id: str, ip_id: str | None) -> None:
        await self._link_ip(server_id, ip_id, 4)

    async def link_ipv6(self, server_id: str, ip_id: str | None) -> None:
        await self._link_ip(server_id, ip_id, 6)

    async def link_isoimage(self, server_id: str, isoimage_id: str | None) -> None:
        if not isoimage_id:
            return
        await self._apply(
            "attach ISO image",
            server_id,
            isoimage_id,
            lambda: self._client.link_isoimage(server_id, isoimage_id),
        )

    async def link_networks(
        self,
        server_id: str,
        networks: Sequence[NetworkAttachment] = (),
        is_public: bool = False,
    ) -> None:
        """Attach the public network (``is_public``) or the given networks with their rules."""
        if is_public:
            await self.update_public_network_rel(server_id, attach=True)
            return
        for network in boot_first(networks):
            await self._link_network(server_id, network)

    async def _link_network(self, server_id: str, network: NetworkAttachment) -> None:
        await self._apply(
            "attach network",
            server_id,
            network.object_uuid,
            lambda: self._client.link_network(
                server_id, network.object_uuid, network.bootdevice, network.firewall
            ),
        )

    # --- Update ---

    def is_shutdown_required(self, change: ChangeSet) -> bool:
        """Whether the server must be off before ``change`` can be applied.

        Growing cores or memory works live; shrinking them does not, nor does
        changing any attachment. Legacy hardware cannot hot-plug cores or
        memory at all.
        """
        if change.cores_decreased or change.memory_decreased:
            return True
        if change.new_spec.is_legacy and (change.cores_changed or change.memory_changed):
            return True
        return (
            change.ipv4_changed
            or change.ipv6_changed
            or change.storages_changed
            or change.networks_changed
        )

    async def update_isoimage_rel(self, server_id: str, old: str | None, new: str | None) -> None:
        if old == new:
            return
        if old:
            await self._unlink(
                "detach ISO image",
                server_id,
                old,
                lambda: self._client.unlink_isoimage(server_id, old),
            )
        await self.link_isoimage(server_id, new)

    async def _update_ip_rel(
        self, server_id: str, old: str | None, new: str | None, family: int
    ) -> bool:
        if old == new:
            return False
        if old:
            await self._unlink(
                f"detach IPv{family} address",
                server_id,
                old,
                lambda: self._client.unlink_ip(server_id, old),
            )
        await self._link_ip(server_id, new, family)
        # With an old address of this family the public network is already there
        return not old and bool(new)

    async def update_ipv4_rel(self, server_id: str, old: str | None, new: str | None) -> bool:
        """Swap the IPv4 relation. Returns True when this family now needs the public network."""
        return await self._update_ip_rel(server_id, old, new, 4)

    async def update_ipv6_rel(self, server_id: str, old: str | None, new: str | None) -> bool:
        """Swap the IPv6 relation. Returns True when this family now needs the public network."""
        return await self._update_ip_rel(server_id, old, new, 6)

    async def update_public_network_rel(self, server_id: str, attach: bool) -> None:
        try:
            public = await self._client.get_network_public()
        except Exception as exc:
            raise ReconciliationError("look up the public network", server_id, None, exc) from exc
        if attach:
            await self._apply(
                "attach public network",
                server_id,
                public.object_uuid,
                lambda: self._client.link_network(
                    server_id, public.object_uuid, False, FirewallRules()
                ),
            )
        else:
            await self._unlink(
                "detach public network",
                server_id,
                public.object_uuid,
                lambda: self._client.unlink_network(server_id, public.object_uuid),
            )

    async def update_other_network_rel(
        self,
        server_id: str,
        old: Sequence[NetworkAttachment],
        new: Sequence[NetworkAttachment],
    ) -> None:
        """Unlink networks only in ``old``, then link networks only in ``new``."""
        to_unlink, to_link = diff_by_uuid(old, new)
        for network in to_unlink:
            await self._unlink(
                "detach network",
                server_id,
                network.object_uuid,
                lambda n=network: self._client.unlink_network(server_id, n.object_uuid),
            )
        for network in boot_first(to_link):
            await self._link_network(server_id, network)

    async def update_storage_rel(
        self,
        server_id: str,
        old: Sequence[StorageAttachment],
        new: Sequence[StorageAttachment],
    ) -> None:
        """Unlink storages only in ``old``, then link storages only in ``new``."""
        to_unlink, to_link = diff_by_uuid(old, new)
        for storage in to_unlink:
            await self._unlink(
                "detach storage",
                server_id,
                storage.object_uuid,
                lambda s=storage: self._client.unlink_storage(server_id, s.object_uuid),
            )
        await self.link_storages(server_id, to_link)
