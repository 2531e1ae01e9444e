"""System SSH key database model."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from .base import TimestampedModel


class SystemSshKeyModel(TimestampedModel):
    """Administrative SSH keypair with the private half encrypted."""
    __tablename__ = "system_ssh_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    key_type: Mapped[str] = mapped_column(String(50), nullable=False, default="admin", index=True)
    public_key: Mapped[str] = mapped_column(Text, nullable=False)
    private_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    fingerprint: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    algorithm: Mapped[str] = mapped_column(String(50), nullable=False, default="RSA")
    key_size: Mapped[int] = mapped_column(Integer, nullable=False, default=4096)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "LENGTH(name) >= 1 AND LENGTH(name) <= 255",
            name="system_ssh_key_name_length"
        ),
        CheckConstraint("version >= 1", name="system_ssh_key_version_positive"),
    )


Index(
    "uq_system_ssh_keys_active_name",
    SystemSshKeyModel.name,
    unique=True,
    sqlite_where=SystemSshKeyModel.is_active == true(),
    postgresql_where=SystemSshKeyModel.is_active == true(),
)
