"""Tests for configuration and network keys."""

from opaqueswap.config import Settings, get_settings
from opaqueswap.crypto import CiphertextVault, generate_keypair
from opaqueswap.fhe.keys import NetworkKeys


class TestConfig:
    """Tests for configuration module."""

    def test_get_settings(self):
        settings = get_settings()

        assert settings is get_settings()
        assert settings.environment == "test"
        assert settings.database_url.endswith(":memory:")

    def test_defaults(self):
        settings = Settings()

        assert settings.chain_id == 31337
        assert settings.decrypt_duration_days == 10
        assert settings.operator_grant_days == 30
        assert settings.token_decimals == 6

    def test_settings_safe_dict_redacts_keys(self):
        keypair = generate_keypair()
        settings = Settings(
            network_private_key=keypair.private_key,
            database_url="postgresql+asyncpg://swap:hunter2@db/opaqueswap",
        )
        safe = settings.get_safe_dict()

        assert safe["network_private_key"] == "***"
        assert safe["network_storage_key"] == "(ephemeral)"
        assert "hunter2" not in safe["database_url"]
        assert keypair.private_key not in str(safe)


class TestNetworkKeys:
    """Tests for network key loading."""

    def test_generated_when_missing(self):
        keys = NetworkKeys.from_settings(Settings())

        assert len(keys.public_key) == 64
        assert keys.coprocessor_address.startswith("0x")

    def test_loaded_from_settings(self):
        keypair = generate_keypair()
        storage_key = CiphertextVault.generate_key()
        settings = Settings(
            network_storage_key=storage_key,
            network_private_key=keypair.private_key,
            coprocessor_signer_key="0x" + "11" * 32,
        )

        keys = NetworkKeys.from_settings(settings)

        assert keys.public_key == keypair.public_key
        assert keys.storage_key == storage_key
        assert keys.vault().decrypt(keys.vault().encrypt(7)) == 7

    def test_repr_hides_secrets(self):
        keys = NetworkKeys.generate()

        assert keys.private_key not in repr(keys)
        assert keys.storage_key not in repr(keys)
