"""RateRecord: Per-code quote state kept for each source.

A record carries the current buy/sell values, the time each one last changed
and, once a real value has been replaced, the value and time immediately
before the latest change.

.. code-block:: python

    >>> record = RateRecord("USD", "US Dollar", buy="31.10", buy_updated_at="01.01.2024 10:00:00")
    >>> list(record.to_dict())
    ['code', 'name', 'buy', 'buyUpdatedAt', 'sell', 'sellUpdatedAt']
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Mapping

# Canonical "no real price known" value.
SENTINEL = "0"

# Local-time format used for every per-field timestamp.
TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M:%S"


def now_timestamp(tz: tzinfo | None = None) -> str:
    """Format the current time for buyUpdatedAt/sellUpdatedAt fields.

    :param tz: Timezone to render in, or None for the system local time.
    :returns: Timestamp like "01.01.2024 10:00:00".
    """
    if tz is None:
        return datetime.now().strftime(TIMESTAMP_FORMAT)
    return datetime.now(tz).strftime(TIMESTAMP_FORMAT)


def utc_now_iso() -> str:
    """Return the current UTC time as ISO-8601 with a trailing Z."""
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp written by utc_now_iso().

    :returns: Aware datetime, or None if the value is missing or malformed.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class IncomingQuote:
    """One quote as delivered by a source adapter.

    buy and sell are raw upstream values (str, number or None); the
    normalizer decides what they mean.
    """

    code: str
    name: str = ""
    buy: Any = None
    sell: Any = None


@dataclass
class RateRecord:
    """Persisted state for one code within one source.

    buy/sell are None only for records read from files that never stored
    them; such records serialize with the sentinel.

    :ivar code: Stable identifier, unique within a source.
    :ivar name: Display name.
    :ivar buy: Canonical buy value.
    :ivar buy_updated_at: When buy last changed.
    :ivar sell: Canonical sell value.
    :ivar sell_updated_at: When sell last changed.
    :ivar previous_buy: buy value before the latest change.
    :ivar previous_buy_at: Timestamp of previous_buy.
    :ivar previous_sell: sell value before the latest change.
    :ivar previous_sell_at: Timestamp of previous_sell.
    """

    code: str
    name: str = ""
    buy: str | None = None
    buy_updated_at: str | None = None
    sell: str | None = None
    sell_updated_at: str | None = None
    previous_buy: str | None = None
    previous_buy_at: str | None = None
    previous_sell: str | None = None
    previous_sell_at: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Serialize in canonical field order.

        previousX keys appear only once a transition has been recorded.
        """
        data: dict[str, str] = {
            "code": self.code,
            "name": self.name,
            "buy": self.buy if self.buy is not None else SENTINEL,
            "buyUpdatedAt": self.buy_updated_at or "",
            "sell": self.sell if self.sell is not None else SENTINEL,
            "sellUpdatedAt": self.sell_updated_at or "",
        }
        if self.previous_buy is not None:
            data["previousBuy"] = self.previous_buy
            data["previousBuyAt"] = self.previous_buy_at or ""
        if self.previous_sell is not None:
            data["previousSell"] = self.previous_sell
            data["previousSellAt"] = self.previous_sell_at or ""
        return data

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], code: str | None = None
    ) -> RateRecord | None:
        """Build a record from its serialized form.

        :param data: Mapping using the camelCase keys of to_dict().
        :param code: Fallback code (e.g. the map key) if data has none.
        :returns: The record, or None if no usable code is present.
        """
        raw_code = data.get("code") or code
        if raw_code is None or not str(raw_code).strip():
            return None

        def _opt(key: str) -> str | None:
            value = data.get(key)
            return None if value is None else str(value)

        return cls(
            code=str(raw_code).strip(),
            name=str(data.get("name") or ""),
            buy=_opt("buy"),
            buy_updated_at=_opt("buyUpdatedAt"),
            sell=_opt("sell"),
            sell_updated_at=_opt("sellUpdatedAt"),
            previous_buy=_opt("previousBuy"),
            previous_buy_at=_opt("previousBuyAt"),
            previous_sell=_opt("previousSell"),
            previous_sell_at=_opt("previousSellAt"),
        )
