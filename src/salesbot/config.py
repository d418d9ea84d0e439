"""Configuration system using pydantic-settings with environment variable loading."""

import importlib
import re
from collections.abc import Callable
from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from salesbot.exceptions import FatalConfigError

# Mainnet WETH
DEFAULT_WRAPPED_CURRENCY_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_SUPPORTED_SCHEMES = ("ws://", "wss://", "http://", "https://")


class ChainSettings(BaseSettings):
    """Chain RPC connection and watched contracts."""

    model_config = SettingsConfigDict(
        env_prefix="CHAIN_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    rpc_uri: str = ""
    contract_addresses: Annotated[list[str], NoDecode] = []
    wrapped_currency_address: str = DEFAULT_WRAPPED_CURRENCY_ADDRESS
    poll_interval: float = 4.0  # seconds between new-block checks
    reconnect_delay: float = 5.0  # first backoff after a transport failure
    reconnect_max_delay: float = 300.0
    start_block: int | None = None  # None = start at the chain head

    @field_validator("contract_addresses", mode="before")
    @classmethod
    def _split_addresses(cls, value: Any) -> Any:
        """Accept a comma-separated string or a JSON-style list."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                value = value.strip("[]").replace('"', "").replace("'", "")
            return [part.strip().lower() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return [str(part).strip().lower() for part in value if str(part).strip()]
        return value

    @field_validator("wrapped_currency_address")
    @classmethod
    def _lower_wrapped(cls, value: str) -> str:
        return value.strip().lower()


class DiscordSettings(BaseSettings):
    """Discord channel that receives sale notifications."""

    model_config = SettingsConfigDict(
        env_prefix="DISCORD_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    bot_token: SecretStr = SecretStr("")
    channel_id: str = ""
    api_base: str = "https://discord.com/api/v10"
    marketplace_url: str = "https://opensea.io/assets"
    request_timeout: float = 15.0


class PriceSettings(BaseSettings):
    """Native-to-USD quote source and cache window."""

    model_config = SettingsConfigDict(
        env_prefix="PRICE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    quote_url: str = "https://min-api.cryptocompare.com/data/price?fsym=ETH&tsyms=USD"
    quote_field: str = "USD"
    freshness_minutes: float = 60.0
    retry_seconds: float = 60.0  # wait after a failed refresh while serving a stale rate
    request_timeout: float = 10.0


class MetadataSettings(BaseSettings):
    """Token metadata fetching."""

    model_config = SettingsConfigDict(
        env_prefix="METADATA_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ipfs_gateway: str | None = None  # e.g. "https://ipfs.io/ipfs"
    request_timeout: float = 20.0
    transform: str | None = None  # "package.module:function"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"
    dedupe_capacity: int = 10000
    chain: ChainSettings = Field(default_factory=ChainSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    price: PriceSettings = Field(default_factory=PriceSettings)
    metadata: MetadataSettings = Field(default_factory=MetadataSettings)


def load_transform(path: str) -> Callable[[dict[str, Any]], Any]:
    """Import a metadata transform given as ``"package.module:function"``.

    Raises:
        FatalConfigError: If the path is malformed, the module cannot be
            imported, or the attribute is not callable.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise FatalConfigError(
            f"Metadata transform must look like 'module:function', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise FatalConfigError(f"Cannot import metadata transform module {module_name!r}") from e
    transform = getattr(module, attr, None)
    if not callable(transform):
        raise FatalConfigError(f"Metadata transform {path!r} is not callable")
    return transform


def validate_settings(settings: AppSettings) -> None:
    """Check everything the bot needs before it connects to anything.

    Raises:
        FatalConfigError: On the first problem found.
    """
    chain = settings.chain
    if not chain.rpc_uri:
        raise FatalConfigError("CHAIN_RPC_URI is not set")
    if not chain.rpc_uri.startswith(_SUPPORTED_SCHEMES):
        raise FatalConfigError(f"Unsupported RPC URI scheme: {chain.rpc_uri!r}")
    if not chain.contract_addresses:
        raise FatalConfigError("No contract addresses configured (CHAIN_CONTRACT_ADDRESSES)")
    for address in [*chain.contract_addresses, chain.wrapped_currency_address]:
        if not _ADDRESS_RE.match(address):
            raise FatalConfigError(f"Invalid address: {address!r}")

    if not settings.discord.bot_token.get_secret_value().strip():
        raise FatalConfigError("DISCORD_BOT_TOKEN is not set")
    if not settings.discord.channel_id.strip():
        raise FatalConfigError("DISCORD_CHANNEL_ID is not set")

    if settings.price.freshness_minutes <= 0:
        raise FatalConfigError("PRICE_FRESHNESS_MINUTES must be positive")
    if settings.price.retry_seconds < 0:
        raise FatalConfigError("PRICE_RETRY_SECONDS must not be negative")

    if settings.metadata.transform:
        load_transform(settings.metadata.transform)
