"""RateReconciler: Non-destructive merge of one source's quotes into its records.

Algorithm, per incoming quote (empty codes are skipped, and for duplicate
codes the last quote in the batch wins):
    1. Normalize the incoming and stored buy/sell values
    2. For buy and sell independently, if the value differs or was never set:
       move a real (non-sentinel) stored value and its timestamp into
       previousX/previousXAt, then store the new value with the current time
    3. Refresh code and name (name repaired when fix_names is set)

Records whose code is absent from the batch are carried over unchanged, so
replaying the same batch is a no-op.

A change from a real value to "0" is recorded as a transition. A change from
"0" to a real value is a first observation and creates no previousX.

.. code-block:: python

    >>> reconciler = RateReconciler(clock=lambda: "01.01.2024 10:05:00")
    >>> existing = {"USD": RateRecord("USD", "US Dollar", buy="31.10",
    ...     buy_updated_at="01.01.2024 10:00:00", sell="31.30",
    ...     sell_updated_at="01.01.2024 10:00:00")}
    >>> result = reconciler.reconcile(
    ...     [IncomingQuote("USD", "US Dollar", "31.15", "31.30")], existing)
    >>> record = result.records["USD"]
    >>> record.buy, record.previous_buy, record.previous_sell
    ('31.15', '31.10', None)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Mapping

from .normalizer import fix_encoding, is_sentinel, normalize
from .RateRecord import IncomingQuote, RateRecord, now_timestamp


@dataclass
class ReconcileResult:
    """Merged records plus what happened to each incoming code.

    :ivar records: Complete code -> RateRecord map for the source.
    :ivar created: Codes seen for the first time.
    :ivar changed: Existing codes whose buy or sell moved.
    :ivar unchanged: Existing codes re-confirmed with the same values.
    """

    records: dict[str, RateRecord]
    created: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def touched(self) -> int:
        """Number of codes present in the incoming batch."""
        return len(self.created) + len(self.changed) + len(self.unchanged)


class RateReconciler:
    """Merges incoming quotes into a source's existing records.

    :ivar clock: Callable returning the timestamp written for changes.
    """

    def __init__(self, clock: Callable[[], str] | None = None) -> None:
        """Initialize the reconciler.

        :param clock: Timestamp source (default: local time in TIMESTAMP_FORMAT).
        """
        self.clock = clock or now_timestamp

    def reconcile(
        self,
        incoming: Iterable[IncomingQuote],
        existing: Mapping[str, RateRecord],
        *,
        fix_names: bool = False,
    ) -> ReconcileResult:
        """Merge one fetch of a source into its stored records.

        The existing mapping and its records are not modified.

        :param incoming: Quotes from the source adapter.
        :param existing: Previously saved code -> RateRecord map.
        :param fix_names: Repair mis-encoded display names.
        :returns: ReconcileResult with the merged map in deterministic order:
            existing codes in their stored order, then new codes in batch order.
        """
        now = self.clock()

        latest: dict[str, IncomingQuote] = {}
        for quote in incoming:
            code = (quote.code or "").strip()
            if not code:
                continue
            latest[code] = quote

        result = ReconcileResult(records={})
        merged: dict[str, RateRecord] = {}
        for code, quote in latest.items():
            previous = existing.get(code)
            record, moved = self._merge(code, quote, previous, now, fix_names)
            merged[code] = record
            if previous is None:
                result.created.append(code)
            elif moved:
                result.changed.append(code)
            else:
                result.unchanged.append(code)

        for code, record in existing.items():
            result.records[code] = merged.pop(code, record)
        result.records.update(merged)
        return result

    def _merge(
        self,
        code: str,
        quote: IncomingQuote,
        previous: RateRecord | None,
        now: str,
        fix_names: bool,
    ) -> tuple[RateRecord, bool]:
        """Build the updated record for one code.

        :returns: Tuple of (record, whether buy or sell changed).
        """
        record = replace(previous) if previous is not None else RateRecord(code)

        name = quote.name or record.name
        record.code = code
        record.name = fix_encoding(name) if fix_names else (name or "")

        moved = False
        for side in ("buy", "sell"):
            if self._merge_side(record, side, getattr(quote, side), now):
                moved = True
        return record, moved

    @staticmethod
    def _merge_side(record: RateRecord, side: str, raw: object, now: str) -> bool:
        """Apply the change rule to record.buy or record.sell in place.

        :returns: True if the value was set or changed.
        """
        new_value = normalize(raw)
        old_value = getattr(record, side)
        old_at = getattr(record, f"{side}_updated_at")

        if old_value is not None and normalize(old_value) == new_value:
            setattr(record, side, new_value)
            if not old_at:
                setattr(record, f"{side}_updated_at", now)
            return False

        if not is_sentinel(old_value):
            setattr(record, f"previous_{side}", normalize(old_value))
            setattr(record, f"previous_{side}_at", old_at or now)

        setattr(record, side, new_value)
        setattr(record, f"{side}_updated_at", now)
        return True
