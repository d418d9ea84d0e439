"""Tests for entry-point wiring and settings loading."""

import pytest

from salesbot.chain.listener import TransferListener
from salesbot.chain.web3_client import Web3ChainClient
from salesbot.config import AppSettings
from salesbot.exceptions import FatalConfigError
from salesbot.main import _build_components, load_settings
from salesbot.notify.discord import DiscordNotifier
from salesbot.pipeline import SalesPipeline


class TestBuildComponents:
    def test_all_components_built(self, mock_settings: AppSettings) -> None:
        components = _build_components(mock_settings)

        assert isinstance(components["chain_client"], Web3ChainClient)
        assert isinstance(components["notifier"], DiscordNotifier)
        assert isinstance(components["pipeline"], SalesPipeline)
        assert isinstance(components["listener"], TransferListener)

    def test_listener_attached_to_pipeline(self, mock_settings: AppSettings) -> None:
        components = _build_components(mock_settings)
        status = components["pipeline"].get_status()
        assert status["running"] is False
        assert status["price_state"] == "empty"
        assert "next_block" in status


class TestLoadSettings:
    def test_loads_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHAIN_RPC_URI", "https://node.example")
        monkeypatch.setenv("CHAIN_CONTRACT_ADDRESSES", "0x" + "44" * 20)
        monkeypatch.setenv("DISCORD_BOT_TOKEN", "abc")
        monkeypatch.setenv("DISCORD_CHANNEL_ID", "42")

        settings = load_settings()

        assert settings.chain.contract_addresses == ["0x" + "44" * 20]
        assert settings.discord.bot_token.get_secret_value() == "abc"

    def test_missing_config_is_fatal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CHAIN_RPC_URI", raising=False)
        monkeypatch.chdir("/")
        with pytest.raises(FatalConfigError):
            load_settings()
