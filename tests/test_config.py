"""Tests for settings loading and startup validation."""

from pathlib import Path

import pytest

from salesbot.config import (
    AppSettings,
    ChainSettings,
    DiscordSettings,
    MetadataSettings,
    PriceSettings,
    load_transform,
    validate_settings,
)
from salesbot.exceptions import FatalConfigError
from salesbot.main import load_settings
from salesbot.sales.metadata import identity_transform

CONTRACT_A = "0x" + "aa" * 20
CONTRACT_B = "0x" + "bb" * 20


class TestChainSettings:
    def test_comma_separated_contracts_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHAIN_CONTRACT_ADDRESSES", f"{CONTRACT_A.upper()}, {CONTRACT_B}")
        settings = ChainSettings()
        assert settings.contract_addresses == [CONTRACT_A.lower(), CONTRACT_B]

    def test_json_list_contracts_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHAIN_CONTRACT_ADDRESSES", f'["{CONTRACT_A}", "{CONTRACT_B}"]')
        assert ChainSettings().contract_addresses == [CONTRACT_A, CONTRACT_B]

    def test_wrapped_address_lowercased(self) -> None:
        settings = ChainSettings(wrapped_currency_address="0x" + "AB" * 20)
        assert settings.wrapped_currency_address == "0x" + "ab" * 20


class TestValidateSettings:
    def test_valid_settings_pass(self, mock_settings: AppSettings) -> None:
        validate_settings(mock_settings)

    def test_missing_rpc_uri(self, mock_settings: AppSettings) -> None:
        mock_settings.chain.rpc_uri = ""
        with pytest.raises(FatalConfigError, match="CHAIN_RPC_URI"):
            validate_settings(mock_settings)

    def test_unsupported_scheme(self, mock_settings: AppSettings) -> None:
        mock_settings.chain.rpc_uri = "ipc:///tmp/geth.ipc"
        with pytest.raises(FatalConfigError, match="scheme"):
            validate_settings(mock_settings)

    def test_no_contracts(self, mock_settings: AppSettings) -> None:
        mock_settings.chain.contract_addresses = []
        with pytest.raises(FatalConfigError, match="No contract"):
            validate_settings(mock_settings)

    def test_malformed_contract(self, mock_settings: AppSettings) -> None:
        mock_settings.chain.contract_addresses = ["0x1234"]
        with pytest.raises(FatalConfigError, match="Invalid address"):
            validate_settings(mock_settings)

    def test_missing_discord_token(self) -> None:
        settings = AppSettings(
            chain=ChainSettings(rpc_uri="https://node.example", contract_addresses=[CONTRACT_A]),
            discord=DiscordSettings(channel_id="1"),
        )
        with pytest.raises(FatalConfigError, match="DISCORD_BOT_TOKEN"):
            validate_settings(settings)

    def test_missing_channel(self, mock_settings: AppSettings) -> None:
        mock_settings.discord.channel_id = " "
        with pytest.raises(FatalConfigError, match="DISCORD_CHANNEL_ID"):
            validate_settings(mock_settings)

    def test_non_positive_freshness(self, mock_settings: AppSettings) -> None:
        mock_settings.price = PriceSettings(freshness_minutes=0)
        with pytest.raises(FatalConfigError, match="FRESHNESS"):
            validate_settings(mock_settings)

    def test_bad_transform(self, mock_settings: AppSettings) -> None:
        mock_settings.metadata = MetadataSettings(transform="no_such_module_xyz:fn")
        with pytest.raises(FatalConfigError, match="Cannot import"):
            validate_settings(mock_settings)


class TestLoadTransform:
    def test_loads_callable(self) -> None:
        assert load_transform("salesbot.sales.metadata:identity_transform") is identity_transform

    @pytest.mark.parametrize("path", ["salesbot.sales.metadata", ":fn", "mod:"])
    def test_malformed_path(self, path: str) -> None:
        with pytest.raises(FatalConfigError, match="module:function"):
            load_transform(path)

    def test_not_callable(self) -> None:
        with pytest.raises(FatalConfigError, match="not callable"):
            load_transform("salesbot.config:DEFAULT_WRAPPED_CURRENCY_ADDRESS")


class TestDotEnvFile:
    ENV_KEYS = (
        "CHAIN_RPC_URI",
        "CHAIN_CONTRACT_ADDRESSES",
        "DISCORD_BOT_TOKEN",
        "DISCORD_CHANNEL_ID",
        "PRICE_FRESHNESS_MINUTES",
        "LOG_LEVEL",
    )

    def test_section_keys_loaded_from_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for key in self.ENV_KEYS:
            monkeypatch.delenv(key, raising=False)
        (tmp_path / ".env").write_text(
            "CHAIN_RPC_URI=https://node.example\n"
            f"CHAIN_CONTRACT_ADDRESSES={CONTRACT_A},{CONTRACT_B}\n"
            "DISCORD_BOT_TOKEN=dotenv-token\n"
            "DISCORD_CHANNEL_ID=987\n"
            "PRICE_FRESHNESS_MINUTES=15\n"
            "LOG_LEVEL=WARNING\n",
            encoding="utf-8",
        )
        monkeypatch.chdir(tmp_path)

        settings = load_settings()

        assert settings.chain.rpc_uri == "https://node.example"
        assert settings.chain.contract_addresses == [CONTRACT_A, CONTRACT_B]
        assert settings.discord.bot_token.get_secret_value() == "dotenv-token"
        assert settings.discord.channel_id == "987"
        assert settings.price.freshness_minutes == 15
        assert settings.log_level == "WARNING"

    def test_unknown_keys_ignored(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("UNRELATED_SETTING=1\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert AppSettings().dedupe_capacity == 10000

    def test_negative_retry_interval_rejected(self, mock_settings: AppSettings) -> None:
        mock_settings.price = PriceSettings(retry_seconds=-1)
        with pytest.raises(FatalConfigError, match="RETRY"):
            validate_settings(mock_settings)
