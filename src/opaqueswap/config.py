"""Application configuration using pydantic-settings.

Covers the host platform (database, chain id, network keys), the relayer
service and the client-side decrypt policy.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Host platform
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Database holding ciphertexts, ACL, balances and events",
    )
    chain_id: int = Field(default=31337, description="Chain id bound into every signature")

    # ======================
    # Network keys (generated per process when unset)
    # ======================
    network_storage_key: Optional[str] = Field(
        default=None, description="Fernet key protecting stored ciphertexts"
    )
    network_private_key: Optional[str] = Field(
        default=None, description="X25519 private key (hex) inputs are sealed to"
    )
    coprocessor_signer_key: Optional[str] = Field(
        default=None, description="secp256k1 key (hex) attesting encrypted inputs"
    )
    input_verification_address: Optional[str] = Field(
        default=None, description="Verifying contract of the input-proof EIP-712 domain"
    )
    decryption_address: Optional[str] = Field(
        default=None, description="Verifying contract of the user-decrypt EIP-712 domain"
    )

    # ======================
    # Relayer
    # ======================
    relayer_url: str = Field(default="http://127.0.0.1:8100", description="Relayer base URL")
    relayer_host: str = Field(default="127.0.0.1", description="Relayer bind host")
    relayer_port: int = Field(default=8100, description="Relayer bind port")
    http_timeout: float = Field(default=30.0, description="HTTP timeout for relayer calls")

    # ======================
    # Client policy
    # ======================
    decrypt_duration_days: int = Field(
        default=10, description="Validity window of a user-decrypt authorization"
    )
    max_decrypt_duration_days: int = Field(
        default=365, description="Longest authorization window the relayer accepts"
    )
    decrypt_timeout_seconds: float = Field(
        default=30.0, description="Client-side timeout for one decrypt round trip"
    )
    operator_grant_days: int = Field(
        default=30, description="Default operator grant length offered to users"
    )
    token_decimals: int = Field(default=6, description="Decimals of both confidential assets")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_network_keys(self) -> bool:
        """Check if persistent network keys are configured."""
        return bool(
            self.network_storage_key and self.network_private_key and self.coprocessor_signer_key
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "database_url": self._redact_url(self.database_url),
            "chain_id": self.chain_id,
            "network_storage_key": "***" if self.network_storage_key else "(ephemeral)",
            "network_private_key": "***" if self.network_private_key else "(ephemeral)",
            "coprocessor_signer_key": "***" if self.coprocessor_signer_key else "(ephemeral)",
            "relayer": {
                "url": self.relayer_url,
                "host": self.relayer_host,
                "port": self.relayer_port,
            },
            "decrypt": {
                "duration_days": self.decrypt_duration_days,
                "max_duration_days": self.max_decrypt_duration_days,
                "timeout_seconds": self.decrypt_timeout_seconds,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
