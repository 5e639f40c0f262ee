from typing import Literal

from pydantic import BaseModel, Field

from cloudprovider.config import settings
from cloudprovider.domain.validation import MAX_NETWORKS_PER_SERVER, MAX_STORAGES_PER_SERVER


class FirewallRuleAttrs(BaseModel):
    order: int = Field(..., description="Rules are evaluated in ascending order")
    action: Literal["allow", "drop"]
    protocol: Literal["tcp", "udp"] | None = None
    dst_port: str = Field("", description="Single port or from:to range")
    src_port: str = Field("", description="Single port or from:to range")
    src_cidr: str = ""
    dst_cidr: str = ""
    comment: str = ""


class StorageAttrs(BaseModel):
    object_uuid: str = Field(..., min_length=1)
    bootdevice: bool = False


class NetworkAttrs(BaseModel):
    object_uuid: str = Field(..., min_length=1)
    bootdevice: bool = False
    rules_v4_in: list[FirewallRuleAttrs] = Field(default_factory=list)
    rules_v4_out: list[FirewallRuleAttrs] = Field(default_factory=list)
    rules_v6_in: list[FirewallRuleAttrs] = Field(default_factory=list)
    rules_v6_out: list[FirewallRuleAttrs] = Field(default_factory=list)


class ServerConfig(BaseModel):
    """Declarative server attributes as the host engine sends them."""

    name: str = Field(..., min_length=1, max_length=64)
    memory: int = Field(..., ge=1, description="Memory in GB")
    cores: int = Field(..., ge=1)
    location_uuid: str = Field(default_factory=lambda: settings.default_location_uuid)
    hardware_profile: str = "default"
    power: bool = False
    availability_zone: str | None = None
    storage: list[StorageAttrs] = Field(default_factory=list, max_length=MAX_STORAGES_PER_SERVER)
    network: list[NetworkAttrs] = Field(default_factory=list, max_length=MAX_NETWORKS_PER_SERVER)
    ipv4: str | None = None
    ipv6: str | None = None
    isoimage: str | None = None
    labels: list[str] = Field(default_factory=list)


class ServerUpdate(BaseModel):
    prior: ServerConfig = Field(..., description="State recorded after the last apply")
    desired: ServerConfig


class ServerState(ServerConfig):
    id: str
    status: str
    legacy: bool
    current_price: float
    auto_recovery: bool
    console_token: str
    usage_in_minutes_memory: int
    usage_in_minutes_cores: int
