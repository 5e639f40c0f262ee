import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cloudprovider.db.base import Base


class Server(Base):
    __tablename__ = "servers"

    object_uuid: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="in-provisioning")
    cores: Mapped[int] = mapped_column(Integer, nullable=False)
    memory: Mapped[int] = mapped_column(Integer, nullable=False)
    hardware_profile: Mapped[str] = mapped_column(String(32), nullable=False, default="default")
    legacy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    power: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    location_uuid: Mapped[str] = mapped_column(String(36), nullable=False)
    availability_zone: Mapped[str | None] = mapped_column(String(8), nullable=True)
    labels: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    console_token: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    current_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    auto_recovery: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    usage_in_minutes_memory: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_in_minutes_cores: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    relations: Mapped[list["ServerRelation"]] = relationship(  # noqa: F821
        "ServerRelation",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ServerRelation.id",
    )
