"""Gold market feed fetcher.

Endpoint: https://canlipiyasalar.haremaltin.com/tmp/altin.json?dil_kodu=tr
Payload: {"meta": {...}, "data": {"ALTIN": {"code": "ALTIN", "alis": "...", "satis": "..."}, ...}}
Rate Limit: Aggressive (HTTP 429 under load, retried with backoff)
"""

import logging

from ..errors import ParseError
from ..normalizer import coerce_quotes
from ..RateRecord import IncomingQuote
from .base import BaseFetcher, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class GoldFeedFetcher(BaseFetcher):
    """Fetcher for the gold/currency market JSON feed.

    Quotes use Turkish field names ("alis" = buy, "satis" = sell) and carry no
    display name, so names come from DISPLAY_NAMES with the code as fallback.
    The data section is an object keyed by code, or a list on older feeds.
    """

    name = "goldfeed"
    REFERER = "https://canlipiyasalar.haremaltin.com/"

    DISPLAY_NAMES = {
        "ALTIN": "Has Altın",
        "ONS": "Ons",
        "KULCEALTIN": "Gram Altın",
        "CEYREK_YENI": "Çeyrek Altın",
        "YARIM_YENI": "Yarım Altın",
        "TEK_YENI": "Tam Altın",
        "ATA_YENI": "Ata Altın",
        "AYAR22": "22 Ayar",
        "AYAR14": "14 Ayar",
        "GUMUSTRY": "Gümüş",
        "USDTRY": "Dolar",
        "EURTRY": "Euro",
        "GBPTRY": "Sterlin",
    }

    async def fetch_quotes(self) -> list[IncomingQuote]:
        """Fetch quotes from the gold feed.

        :returns: Quotes with buy=alis and sell=satis.
        :raises FetchError: If the feed cannot be reached.
        :raises ParseError: If the payload has no data section.
        """
        payload = await self._get_json(self.url)
        if not isinstance(payload, dict) or "data" not in payload:
            raise ParseError("[goldfeed] Payload has no 'data' section")

        quotes = coerce_quotes(
            payload["data"], name_key=None, buy_key="alis", sell_key="satis"
        )
        if not quotes:
            raise ParseError("[goldfeed] No quotes in payload")

        logger.debug(f"[goldfeed] Received {len(quotes)} quotes")
        return [
            IncomingQuote(
                code=q.code,
                name=self.DISPLAY_NAMES.get(q.code, q.code),
                buy=q.buy,
                sell=q.sell,
            )
            for q in quotes
        ]
