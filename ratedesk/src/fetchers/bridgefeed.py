"""Bridge feed fetcher.

Endpoint: configured via BRIDGE_FEED_URL
Payload: [{"code": "USD", "name": "...", "buy": "...", "sell": "..."}, ...]
         or the same list/object wrapped in {"data": ...}
Names: upstream double-encodes UTF-8, repaired via SourceConfig.fix_names
"""

import logging

from ..errors import ParseError
from ..normalizer import coerce_quotes
from ..RateRecord import IncomingQuote
from .base import BaseFetcher, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BridgeFeedFetcher(BaseFetcher):
    """Fetcher for the internal bridge service that relays exchange quotes."""

    name = "bridgefeed"

    async def fetch_quotes(self) -> list[IncomingQuote]:
        """Fetch quotes from the bridge service.

        :returns: Quotes in upstream order.
        :raises FetchError: If the service cannot be reached.
        :raises ParseError: If the payload is neither a list nor an object.
        """
        payload = await self._get_json(self.url)
        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        if not isinstance(payload, (list, dict)):
            raise ParseError(
                f"[bridgefeed] Unexpected payload type {type(payload).__name__}"
            )

        quotes = coerce_quotes(payload)
        logger.debug(f"[bridgefeed] Received {len(quotes)} quotes")
        return quotes
