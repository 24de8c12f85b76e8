"""Value normalization for upstream quotes.

Upstreams report "no price" in many ways (missing key, null, "", "0", 0,
"-"). All of them collapse to the "0" sentinel so that the reconciler only
ever compares canonical strings.

.. code-block:: python

    >>> normalize(None), normalize(""), normalize(" 0 "), normalize(0)
    ('0', '0', '0', '0')
    >>> normalize(" 31.15 ")
    '31.15'
    >>> fix_encoding("TÃ¼rk LirasÄ±")
    'Türk Lirası'
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from .RateRecord import SENTINEL, IncomingQuote

# Placeholders some feeds use instead of leaving the field empty.
_EMPTY_MARKERS = frozenset({"-", "--", "null", "none", "undefined", "nan", "n/a"})

# UTF-8 bytes that were decoded as CP1252 upstream.
_MOJIBAKE: dict[str, str] = {
    "Ã‡": "Ç",
    "Ã§": "ç",
    "Äž": "Ğ",
    "ÄŸ": "ğ",
    "Ä°": "İ",
    "Ä±": "ı",
    "Ã–": "Ö",
    "Ã¶": "ö",
    "Åž": "Ş",
    "ÅŸ": "ş",
    "Ãœ": "Ü",
    "Ã¼": "ü",
    "Ã‚": "Â",
    "Ã¢": "â",
    "Ã©": "é",
    "Ã¨": "è",
    "Ã¤": "ä",
}


def normalize(raw: Any) -> str:
    """Map a raw upstream price to its canonical string.

    :param raw: Any str/number/None representing a price.
    :returns: "0" when the value is absent, empty or zero, else the trimmed
        string form.
    """
    if raw is None or isinstance(raw, bool):
        return SENTINEL
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw) or raw == 0:
            return SENTINEL
        return repr(raw)
    if isinstance(raw, int):
        return SENTINEL if raw == 0 else str(raw)

    text = str(raw).strip()
    if not text or text.lower() in _EMPTY_MARKERS:
        return SENTINEL
    try:
        if Decimal(text.replace(",", ".")) == 0:
            return SENTINEL
    except InvalidOperation:
        pass
    return text


def is_sentinel(value: str | None) -> bool:
    """Check whether a stored value means "no real price known"."""
    return value is None or normalize(value) == SENTINEL


def fix_encoding(name: str | None) -> str:
    """Repair display names whose UTF-8 bytes were read as CP1252.

    Already-correct text passes through unchanged.
    """
    if not name:
        return ""
    fixed = str(name)
    for broken, good in _MOJIBAKE.items():
        if broken in fixed:
            fixed = fixed.replace(broken, good)
    return fixed


def coerce_quotes(
    payload: Any,
    *,
    code_key: str = "code",
    name_key: str | None = "name",
    buy_key: str = "buy",
    sell_key: str = "sell",
) -> list[IncomingQuote]:
    """Convert an upstream array or object of quotes into IncomingQuotes.

    Feeds deliver either ``[{code, ...}, ...]`` or ``{code: {...}, ...}``.
    For the object shape the map key is used when an entry has no code.
    Entries that are not objects are ignored.

    :param payload: Decoded JSON payload.
    :param code_key: Key holding the code inside each entry.
    :param name_key: Key holding the display name, or None if the feed has none.
    :param buy_key: Key holding the buy value.
    :param sell_key: Key holding the sell value.
    :returns: Quotes in upstream order.
    """
    entries: Iterable[tuple[Any, Any]]
    if isinstance(payload, Mapping):
        entries = payload.items()
    elif isinstance(payload, (list, tuple)):
        entries = ((None, item) for item in payload)
    else:
        return []

    quotes: list[IncomingQuote] = []
    for key, item in entries:
        if not isinstance(item, Mapping):
            continue
        code = item.get(code_key) or key
        if code is None:
            continue
        name = item.get(name_key) if name_key else None
        quotes.append(
            IncomingQuote(
                code=str(code).strip(),
                name="" if name is None else str(name).strip(),
                buy=item.get(buy_key),
                sell=item.get(sell_key),
            )
        )
    return quotes
