from fastapi import APIRouter

from cloudprovider.api.v1.endpoints import servers

router = APIRouter()

router.include_router(servers.router)
