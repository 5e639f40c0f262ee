from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cloudprovider.config import settings
from cloudprovider.db.session import get_db
from cloudprovider.infra.cloud.base import CloudClientBase
from cloudprovider.infra.cloud.http_client import HttpCloudClient
from cloudprovider.infra.cloud.mock_client import MockCloudClient
from cloudprovider.services.server_service import ServerService


async def get_cloud_client(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> AsyncGenerator[CloudClientBase, None]:
    """Dependency that yields the configured remote API client."""
    if settings.use_mock_cloud:
        yield MockCloudClient(session)
        return
    client = HttpCloudClient.from_settings()
    try:
        yield client
    finally:
        await client.aclose()


async def get_server_service(
    client: Annotated[CloudClientBase, Depends(get_cloud_client)],
) -> ServerService:
    return ServerService(client)
