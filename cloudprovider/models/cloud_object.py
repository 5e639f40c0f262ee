import uuid

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cloudprovider.db.base import Base


class CloudObject(Base):
    """Any non-server object of the emulated API (storage, network, IP, ...)."""

    __tablename__ = "cloud_objects"

    object_uuid: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    # IP addresses
    family: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    # Networks
    public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Snapshots belong to a storage
    parent_uuid: Mapped[str | None] = mapped_column(String(36), nullable=True)
