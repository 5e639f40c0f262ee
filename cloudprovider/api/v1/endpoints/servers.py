from typing import Annotated

from fastapi import APIRouter, Depends, status

from cloudprovider.dependencies import get_server_service
from cloudprovider.schemas.adapter import record_to_state
from cloudprovider.schemas.common import ErrorResponse
from cloudprovider.schemas.server import ServerConfig, ServerState, ServerUpdate
from cloudprovider.services.server_service import ServerService

router = APIRouter(
    prefix="/servers",
    tags=["servers"],
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
        status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
    },
)


@router.post(
    "",
    response_model=ServerState,
    status_code=status.HTTP_201_CREATED,
    summary="Create a server and link its storages, IPs, ISO image and networks",
)
async def create_server(
    payload: ServerConfig,
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerState:
    record = await service.create(payload)
    return record_to_state(record)


@router.get(
    "/{server_id}",
    response_model=ServerState,
    summary="Read the current state of a server",
)
async def get_server(
    server_id: str,
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerState:
    record = await service.get(server_id)
    return record_to_state(record)


@router.put(
    "/{server_id}",
    response_model=ServerState,
    summary="Reconcile a server from its prior to its desired configuration",
)
async def update_server(
    server_id: str,
    payload: ServerUpdate,
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerState:
    record = await service.update(server_id, payload.prior, payload.desired)
    return record_to_state(record)


@router.delete(
    "/{server_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop and delete a server",
)
async def delete_server(
    server_id: str,
    service: Annotated[ServerService, Depends(get_server_service)],
) -> None:
    await service.delete(server_id)
