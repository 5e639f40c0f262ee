"""
Shared fixtures for all tests.

Uses an in-memory SQLite database for the emulated cloud so tests are
isolated and fast, and a recording fake client for tests that count the
remote calls the reconciler makes.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cloudprovider.core.exceptions import RemoteNotFoundError
from cloudprovider.db.base import Base
from cloudprovider.db.session import get_db
from cloudprovider.dependencies import get_server_service
from cloudprovider.domain.kinds import ResourceKind
from cloudprovider.domain.server import FirewallRules
from cloudprovider.infra.cloud.base import (
    CloudClientBase,
    IPRecord,
    NetworkRecord,
    ObjectRecord,
    ServerRecord,
)
from cloudprovider.infra.cloud.mock_client import MockCloudClient
from cloudprovider.services.server_dependencies import ServerDependencyReconciler
from cloudprovider.services.server_service import ServerService
from cloudprovider.services.status_poller import StatusPoller

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PUBLIC_NETWORK_UUID = "public-net"


class RecordingCloudClient(CloudClientBase):
    """In-memory fake that records every mutating call in ``calls``.

    ``ip_versions`` maps IP uuids to their family. ``errors`` maps a method
    name to an exception raised on every call to it. ``statuses`` maps an id
    tuple to the statuses returned by successive fetches; the last one
    sticks, and ids without an entry answer 404.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.ip_versions: dict[str, int] = {}
        self.errors: dict[str, Exception] = {}
        self.statuses: dict[tuple[str, ...], list[str]] = {}
        self.fetches: list[tuple[str, ...]] = []
        self.power = False

    def _record(self, name: str, *args: object) -> None:
        if name in self.errors:
            raise self.errors[name]
        self.calls.append((name, *args))

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def _fetch(self, *ids: str) -> ObjectRecord:
        self.fetches.append(ids)
        if "fetch" in self.errors:
            raise self.errors["fetch"]
        statuses = self.statuses.get(ids)
        if not statuses:
            raise RemoteNotFoundError(f"Object {ids[-1]} not found")
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        return ObjectRecord(object_uuid=ids[-1], name="", status=status)

    async def get_server(self, server_id: str) -> ServerRecord:
        obj = self._fetch(server_id)
        return ServerRecord(
            object_uuid=server_id,
            name="fake",
            status=obj.status,
            cores=1,
            memory=1,
            power=self.power,
            legacy=False,
            hardware_profile="default",
            location_uuid="",
        )

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
        self._record("create_server", name)
        self.statuses[("srv-1",)] = ["active"]
        return "srv-1"

    async def update_server(
        self,
        server_id: str,
        name: str,
        cores: int,
        memory: int,
        availability_zone: str | None = None,
        labels: list[str] | None = None,
    ) -> None:
        self._record("update_server", server_id, name, cores, memory)

    async def delete_server(self, server_id: str) -> None:
        self._record("delete_server", server_id)
        self.statuses.pop((server_id,), None)

    async def start_server(self, server_id: str) -> None:
        self._record("start_server", server_id)
        self.power = True

    async def stop_server(self, server_id: str) -> None:
        self._record("stop_server", server_id)
        self.power = False

    async def shutdown_server(self, server_id: str) -> None:
        self._record("shutdown_server", server_id)
        self.power = False

    async def link_storage(self, server_id: str, storage_id: str, bootdevice: bool) -> None:
        self._record("link_storage", server_id, storage_id, bootdevice)

    async def unlink_storage(self, server_id: str, storage_id: str) -> None:
        self._record("unlink_storage", server_id, storage_id)

    async def link_network(
        self,
        server_id: str,
        network_id: str,
        bootdevice: bool = False,
        firewall: FirewallRules | None = None,
    ) -> None:
        self._record("link_network", server_id, network_id, bootdevice, firewall)

    async def unlink_network(self, server_id: str, network_id: str) -> None:
        self._record("unlink_network", server_id, network_id)

    async def link_ip(self, server_id: str, ip_id: str) -> None:
        self._record("link_ip", server_id, ip_id)

    async def unlink_ip(self, server_id: str, ip_id: str) -> None:
        self._record("unlink_ip", server_id, ip_id)

    async def link_isoimage(self, server_id: str, isoimage_id: str) -> None:
        self._record("link_isoimage", server_id, isoimage_id)

    async def unlink_isoimage(self, server_id: str, isoimage_id: str) -> None:
        self._record("unlink_isoimage", server_id, isoimage_id)

    async def get_network_public(self) -> NetworkRecord:
        return NetworkRecord(PUBLIC_NETWORK_UUID, "Public Network", "active", public=True)

    async def get_ip_version(self, ip_id: str) -> int:
        if ip_id not in self.ip_versions:
            raise RemoteNotFoundError(f"IP {ip_id} not found")
        return self.ip_versions[ip_id]

    async def get_ip(self, ip_id: str) -> IPRecord:
        obj = self._fetch(ip_id)
        return IPRecord(obj.object_uuid, "", obj.status, family=self.ip_versions.get(ip_id, 4))

    async def get_network(self, network_id: str) -> NetworkRecord:
        obj = self._fetch(network_id)
        return NetworkRecord(obj.object_uuid, "", obj.status)

    async def get_storage(self, storage_id: str) -> ObjectRecord:
        return self._fetch(storage_id)

    async def get_storage_snapshot(self, storage_id: str, snapshot_id: str) -> ObjectRecord:
        return self._fetch(storage_id, snapshot_id)

    async def get_isoimage(self, isoimage_id: str) -> ObjectRecord:
        return self._fetch(isoimage_id)

    async def get_loadbalancer(self, loadbalancer_id: str) -> ObjectRecord:
        return self._fetch(loadbalancer_id)

    async def get_sshkey(self, sshkey_id: str) -> ObjectRecord:
        return self._fetch(sshkey_id)

    async def get_paas_service(self, service_id: str) -> ObjectRecord:
        return self._fetch(service_id)

    async def get_security_zone(self, zone_id: str) -> ObjectRecord:
        return self._fetch(zone_id)


# --- Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    import cloudprovider.models  # noqa: F401

    engine = create_async_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def cloud(test_session: AsyncSession) -> MockCloudClient:
    return MockCloudClient(test_session)


@pytest.fixture
def recording_client() -> RecordingCloudClient:
    return RecordingCloudClient()


@pytest.fixture
def reconciler(recording_client: RecordingCloudClient) -> ServerDependencyReconciler:
    return ServerDependencyReconciler(recording_client)


@pytest.fixture
def make_service():
    """Build a ServerService over any client with zero polling and retry delays."""

    def _make(client: CloudClientBase) -> ServerService:
        return ServerService(client, poller=StatusPoller(client, delay=0), retry_delay=0)

    return _make


@pytest_asyncio.fixture(scope="function")
async def seeded(cloud: MockCloudClient) -> dict[str, str]:
    """Objects a server can be linked to in the emulated cloud."""
    return {
        "storage_boot": await cloud.add_object(ResourceKind.STORAGE, name="boot"),
        "storage_data": await cloud.add_object(ResourceKind.STORAGE, name="data"),
        "storage_extra": await cloud.add_object(ResourceKind.STORAGE, name="extra"),
        "network_a": await cloud.add_object(ResourceKind.NETWORK, name="net-a"),
        "network_b": await cloud.add_object(ResourceKind.NETWORK, name="net-b"),
        "ipv4": await cloud.add_object(ResourceKind.IP, family=4, ip="185.201.147.10"),
        "ipv4_other": await cloud.add_object(ResourceKind.IP, family=4, ip="185.201.147.11"),
        "ipv6": await cloud.add_object(ResourceKind.IP, family=6, ip="2a06:2380:0:1::10"),
        "isoimage": await cloud.add_object(ResourceKind.ISO_IMAGE, name="rescue"),
        "isoimage_other": await cloud.add_object(ResourceKind.ISO_IMAGE, name="installer"),
    }


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    make_service,
    seeded: dict[str, str],
) -> AsyncGenerator[AsyncClient, None]:
    """Return an HTTPX AsyncClient wired to the test app with an in-memory DB."""
    from cloudprovider.main import create_app

    test_app = create_app()

    # Override DB session dependency
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield test_session

    # No type annotations to avoid FastAPI inspection
    async def override_get_server_service():  # type: ignore[no-untyped-def]
        return make_service(MockCloudClient(test_session))

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_server_service] = override_get_server_service

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac

    test_app.dependency_overrides.clear()
