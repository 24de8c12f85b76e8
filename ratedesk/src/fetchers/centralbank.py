"""Central bank daily rates fetcher.

Endpoint: https://www.tcmb.gov.tr/kurlar/today.xml
Payload: XML, <Tarih_Date><Currency CurrencyCode="USD"><Isim>ABD DOLARI</Isim>
         <ForexBuying>..</ForexBuying><ForexSelling>..</ForexSelling>...</Currency>
Update cadence: Once per business day (~15:30 local time)
"""

import logging

from bs4 import BeautifulSoup

from ..errors import ParseError
from ..RateRecord import IncomingQuote
from .base import BaseFetcher, register_fetcher

logger = logging.getLogger(__name__)


def _child_text(node, *names: str) -> str | None:
    """Return the first non-empty text among the named child elements."""
    for name in names:
        child = node.find(name)
        if child is not None:
            text = child.get_text(strip=True)
            if text:
                return text
    return None


@register_fetcher
class CentralBankFetcher(BaseFetcher):
    """Fetcher for the central bank's indicative exchange rates.

    Forex rates are preferred; banknote rates are used for currencies that
    publish no forex rate (e.g. some cross rates).
    """

    name = "centralbank"
    REFERER = "https://www.tcmb.gov.tr/"

    def parse(self, content: bytes | str) -> list[IncomingQuote]:
        """Parse the XML document into quotes.

        :param content: Raw XML body.
        :returns: One quote per Currency element with a code.
        :raises ParseError: If the document has no Tarih_Date root.
        """
        soup = BeautifulSoup(content, "xml")
        root = soup.find("Tarih_Date")
        if root is None:
            raise ParseError("[centralbank] Missing Tarih_Date element")

        quotes: list[IncomingQuote] = []
        for currency in root.find_all("Currency"):
            code = currency.get("CurrencyCode") or currency.get("Kod")
            if not code:
                continue
            quotes.append(
                IncomingQuote(
                    code=code.strip(),
                    name=_child_text(currency, "Isim", "CurrencyName") or "",
                    buy=_child_text(currency, "ForexBuying", "BanknoteBuying"),
                    sell=_child_text(currency, "ForexSelling", "BanknoteSelling"),
                )
            )
        return quotes

    async def fetch_quotes(self) -> list[IncomingQuote]:
        """Fetch and parse today's rates.

        :raises FetchError: If the endpoint cannot be reached.
        :raises ParseError: If the XML is not a rates document.
        """
        response = await self._get(
            self.url, headers={"Accept": "application/xml,text/xml,*/*"}
        )
        quotes = self.parse(response.content)
        logger.debug(f"[centralbank] Received {len(quotes)} quotes")
        return quotes
