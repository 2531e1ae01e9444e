from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keycustody.core.errors import ConfigurationError

ModulusBits = Literal[2048, 3072, 4096]

RECOMMENDED_SECRET_LENGTH = 32


@dataclass(frozen=True)
class KeyCustodyConfig:
    """Fixed configuration handed to the rotation coordinator."""

    modulus_bits: int
    encryption_secret: str
    comment: str

    def __repr__(self) -> str:
        return (
            f"KeyCustodyConfig(modulus_bits={self.modulus_bits}, "
            f"encryption_secret='***', comment={self.comment!r})"
        )

    @property
    def secret_is_weak(self) -> bool:
        return 0 < len(self.encryption_secret) < RECOMMENDED_SECRET_LENGTH


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    app_name: str = Field(default="keycustody", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment mode"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    database_url: str = Field(
        default="sqlite:///./keycustody.db", description="Key store database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Key custody
    ssh_key_encryption_secret: str = Field(
        default="", description="Secret the admin private key is encrypted under"
    )
    ssh_key_previous_secrets: List[str] = Field(
        default_factory=list,
        description="Earlier encryption secrets tried during secret rotation (JSON list)",
    )
    admin_key_name: str = Field(
        default="default-admin-key", description="Name of the admin key record"
    )
    admin_key_type: str = Field(default="admin", description="Key type of the admin record")
    modulus_bits: ModulusBits = Field(default=4096, description="RSA modulus size")
    key_comment: str = Field(
        default="system@keycustody", description="Comment appended to public key lines"
    )

    secrets_dir: Path = Field(
        default=Path("./secrets/ssh-keys"),
        description="Directory for key backups and exports",
    )
    key_backup_enabled: bool = Field(
        default=True, description="Write a 0600 backup of regenerated keys to secrets_dir"
    )

    ssh_keygen_path: str = Field(default="ssh-keygen", description="Path to ssh-keygen binary")
    validate_with_ssh_keygen: bool = Field(
        default=True, description="Validate generated public keys with ssh-keygen"
    )
    ssh_keygen_timeout_seconds: float = Field(
        default=10.0, description="Timeout for ssh-keygen validation"
    )
    keygen_max_workers: int = Field(
        default=1, description="Worker threads available for RSA generation"
    )

    enable_audit_log: bool = Field(default=True, description="Enable audit logging")
    audit_log_dir: Path = Field(
        default=Path("logs/audit"), description="Directory for audit log files"
    )
    enable_metrics: bool = Field(default=True, description="Enable Prometheus metrics")

    @field_validator("log_format", mode="before")
    @classmethod
    def validate_log_format(cls, v, info: ValidationInfo):
        if info.data.get("environment") == "production":
            return "json"
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def key_custody_config(self, secret: Optional[str] = None) -> KeyCustodyConfig:
        """Build the fixed coordinator configuration.

        Raises:
            ConfigurationError: if no encryption secret is configured
        """
        encryption_secret = secret if secret is not None else self.ssh_key_encryption_secret
        if not encryption_secret:
            raise ConfigurationError(
                "SSH_KEY_ENCRYPTION_SECRET is not configured",
                {"setting": "ssh_key_encryption_secret"},
            )
        return KeyCustodyConfig(
            modulus_bits=self.modulus_bits,
            encryption_secret=encryption_secret,
            comment=self.key_comment,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


settings = get_settings()
