"""
Status poller: turns asynchronous remote provisioning into a blocking wait.

Mutating remote calls return before the object is ready; lifecycle handlers
call ``wait_until_active`` / ``wait_until_deleted`` to block until the remote
status settles or the deadline passes.
"""

import logging
from collections.abc import Awaitable, Callable

from cloudprovider.config import settings
from cloudprovider.core.exceptions import PollTimeoutError, StatusPollError, is_not_found
from cloudprovider.core.retry import RetryableError, retry_until
from cloudprovider.domain.kinds import ResourceKind
from cloudprovider.infra.cloud.base import CloudClientBase, ObjectRecord

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
PROVISIONING_STATUS = "in-provisioning"


# Snapshots live under their storage: (storage id, snapshot id)
_ID_ARITY: dict[ResourceKind, int] = {kind: 1 for kind in ResourceKind}
_ID_ARITY[ResourceKind.SNAPSHOT] = 2


class StatusPoller:
    def __init__(self, client: CloudClientBase, delay: float | None = None) -> None:
        self._client = client
        self._delay = settings.poll_delay_seconds if delay is None else delay

    def _fetcher(self, kind: ResourceKind) -> Callable[..., Awaitable[ObjectRecord]]:
        fetchers: dict[ResourceKind, Callable[..., Awaitable[ObjectRecord]]] = {
            ResourceKind.LOADBALANCER: self._client.get_loadbalancer,
            ResourceKind.IP: self._client.get_ip,
            ResourceKind.NETWORK: self._client.get_network,
            ResourceKind.SERVER: self._client.get_server,
            ResourceKind.SSH_KEY: self._client.get_sshkey,
            ResourceKind.STORAGE: self._client.get_storage,
            ResourceKind.ISO_IMAGE: self._client.get_isoimage,
            ResourceKind.PAAS: self._client.get_paas_service,
            ResourceKind.SECURITY_ZONE: self._client.get_security_zone,
            ResourceKind.SNAPSHOT: self._client.get_storage_snapshot,
        }
        return fetchers[kind]

    @staticmethod
    def _check_ids(kind: ResourceKind, ids: tuple[str, ...]) -> None:
        if len(ids) != _ID_ARITY[kind]:
            raise ValueError(
                f"invalid number of ids for {kind.value}: "
                f"expected {_ID_ARITY[kind]}, got {len(ids)}"
            )

    async def wait_until_active(
        self, kind: ResourceKind, *ids: str, timeout: float | None = None
    ) -> ObjectRecord:
        """Block until the object's status is ``active``.

        Fetch errors are not retried. ``timeout=None`` leaves the deadline to
        the caller's enclosing ``asyncio.timeout`` scope.
        """
        self._check_ids(kind, ids)
        fetch = self._fetcher(kind)

        async def step() -> ObjectRecord:
            try:
                obj = await fetch(*ids)
            except Exception as exc:
                raise StatusPollError(kind.value, ids, exc) from exc
            if obj.status != ACTIVE_STATUS:
                raise RetryableError(f"Status of {kind.value} {ids[-1]} is {obj.status}")
            return obj

        logger.debug("Waiting for object to become active", extra={"kind": kind.value, "ids": ids})
        try:
            return await retry_until(step, delay=self._delay, timeout=timeout, delay_first=True)
        except TimeoutError as exc:
            raise PollTimeoutError(kind.value, ids, ACTIVE_STATUS) from exc

    async def wait_until_deleted(
        self, kind: ResourceKind, *ids: str, timeout: float | None = None
    ) -> None:
        """Block until fetching the object fails with not-found."""
        self._check_ids(kind, ids)
        fetch = self._fetcher(kind)

        async def step() -> None:
            try:
                await fetch(*ids)
            except Exception as exc:
                if is_not_found(exc):
                    return
                raise StatusPollError(kind.value, ids, exc) from exc
            raise RetryableError(f"{kind.value} ({', '.join(ids)}) still exists")

        logger.debug("Waiting for object to be deleted", extra={"kind": kind.value, "ids": ids})
        try:
            await retry_until(step, delay=self._delay, timeout=timeout)
        except TimeoutError as exc:
            raise PollTimeoutError(kind.value, ids, "deleted") from exc
