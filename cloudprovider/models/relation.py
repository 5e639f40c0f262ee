from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cloudprovider.db.base import Base


class ServerRelation(Base):
    """A link between a server and a storage, network, IP address or ISO image."""

    __tablename__ = "server_relations"
    __table_args__ = (UniqueConstraint("server_uuid", "object_uuid"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_uuid: Mapped[str] = mapped_column(
        String(36), ForeignKey("servers.object_uuid", ondelete="CASCADE"), nullable=False
    )
    object_uuid: Mapped[str] = mapped_column(String(36), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    bootdevice: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Firewall rules of a network relation: direction -> list of rule dicts
    firewall: Mapped[dict | None] = mapped_column(JSON, nullable=True)
