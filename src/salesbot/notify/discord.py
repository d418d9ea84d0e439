"""Discord notifier -- posts sale embeds to a channel via the REST API."""

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import aiohttp

from salesbot.chain.units import format_amount
from salesbot.exceptions import FatalConfigError, NotificationError
from salesbot.logging import get_logger
from salesbot.models import SaleRecord
from salesbot.notify.sink import NotificationSink

logger = get_logger(__name__)

EMBED_COLOR = 0x66FF82
_TITLE_LIMIT = 256
_CENT = Decimal("0.01")


def format_usd(amount: Decimal) -> str:
    """Format a USD amount with thousands separators and two decimals."""
    return f"{amount.quantize(_CENT, rounding=ROUND_HALF_UP):,.2f}"


def render_sale_embed(
    record: SaleRecord,
    marketplace_url: str = "https://opensea.io/assets",
    currency_symbol: str = "ETH",
) -> dict[str, Any]:
    """Build the Discord embed object for a sale."""
    name = record.metadata.name or f"#{record.token_id}"
    title = f"{name} sold!"
    if len(title) > _TITLE_LIMIT:
        title = title[: _TITLE_LIMIT - 1] + "…"

    embed: dict[str, Any] = {
        "title": title,
        "color": EMBED_COLOR,
        "url": f"{marketplace_url.rstrip('/')}/{record.contract_address}/{record.token_id}",
        "fields": [
            {
                "name": "Price:",
                "value": f"{format_amount(record.amount_native)} {currency_symbol}",
                "inline": True,
            },
            {"name": "Price USD:", "value": f"${format_usd(record.amount_usd)}", "inline": True},
            {"name": "Buyer:", "value": record.buyer, "inline": False},
            {"name": "Seller:", "value": record.seller, "inline": False},
        ],
        "timestamp": datetime.fromtimestamp(record.block_timestamp, tz=timezone.utc).isoformat(),
    }
    if record.metadata.image:
        embed["image"] = {"url": record.metadata.image}
    return embed


class DiscordNotifier(NotificationSink):
    """Posts sale embeds to a single Discord channel as a bot user.

    Args:
        bot_token: Discord bot token.
        channel_id: Target text channel ID.
        api_base: Discord REST API base URL.
        marketplace_url: Prefix for the embed link (``/<contract>/<tokenId>`` appended).
        session: Optional aiohttp session. Created lazily otherwise.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        api_base: str = "https://discord.com/api/v10",
        marketplace_url: str = "https://opensea.io/assets",
        session: aiohttp.ClientSession | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._bot_token = bot_token.strip()
        self._channel_id = channel_id.strip()
        self._api_base = api_base.rstrip("/")
        self._marketplace_url = marketplace_url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self._bot_token}",
            "User-Agent": "DiscordBot (https://github.com/salesbot, 1.0)",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def connect(self) -> None:
        """Check the token can see the channel.

        Raises:
            FatalConfigError: On 401, 403 or 404. Other failures are logged
                and left for ``send`` to surface.
        """
        url = f"{self._api_base}/channels/{self._channel_id}"
        try:
            session = await self._get_session()
            async with session.get(url, headers=self._headers) as response:
                if response.status in (401, 403, 404):
                    raise FatalConfigError(
                        f"Discord rejected channel {self._channel_id} (HTTP {response.status})"
                    )
                if response.status != 200:
                    logger.warning("discord_channel_check_failed", status=response.status)
                    return
                channel = await response.json()
        except FatalConfigError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("discord_channel_check_failed", error=str(e))
            return
        logger.info(
            "discord_connected",
            channel_id=self._channel_id,
            channel_name=channel.get("name") if isinstance(channel, dict) else None,
        )

    async def send(self, record: SaleRecord) -> None:
        embed = render_sale_embed(record, self._marketplace_url)
        url = f"{self._api_base}/channels/{self._channel_id}/messages"
        try:
            session = await self._get_session()
            async with session.post(
                url, json={"embeds": [embed]}, headers=self._headers
            ) as response:
                if response.status == 429:
                    body = await response.json(content_type=None)
                    retry_after = body.get("retry_after") if isinstance(body, dict) else None
                    raise NotificationError(f"Discord rate limited (retry_after={retry_after})")
                if response.status not in (200, 201):
                    text = await response.text()
                    raise NotificationError(f"Discord returned HTTP {response.status}: {text[:200]}")
        except NotificationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise NotificationError(f"Discord request failed: {e}") from e
        logger.info(
            "notification_sent",
            tx_hash=record.transaction_hash,
            token_id=record.token_id,
        )

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
