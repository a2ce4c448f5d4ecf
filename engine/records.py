"""
Trade records and the versioned RecordSet the memoizer keys its cache on.

A RecordSet carries an ``identity`` string (``<set id>:<version>``).  Every
insert/update/delete bumps the version and notifies listeners with the old
identity, which is how cached aggregates computed against stale data are
dropped.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterable, Iterator, Mapping

from engine.criteria import KNOWN_EMOTIONS, Market, Side
from utils.strings import parse_number

logger = logging.getLogger(__name__)


def parse_emotions(raw: Any) -> tuple[str, ...]:
    """Normalize an emotional-state value into known upper-case tags.

    Accepts a list, a JSON array string, a JSON string, or a bare tag.
    Unknown tags are dropped; order of first appearance is kept.
    """
    if raw is None:
        return ()
    tags: list[str] = []
    if isinstance(raw, (list, tuple, set, frozenset)):
        tags = [t for t in raw if isinstance(t, str)]
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return ()
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = text
        if isinstance(parsed, list):
            tags = [t for t in parsed if isinstance(t, str)]
        elif isinstance(parsed, str):
            tags = [parsed]
    seen: list[str] = []
    for tag in tags:
        upper = tag.strip().upper()
        if upper in KNOWN_EMOTIONS and upper not in seen:
            seen.append(upper)
    return tuple(seen)


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None


def _parse_enum(enum_cls, raw: Any):
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class TradeRecord:
    """One journal trade, as seen by the filter engine."""

    id: int
    trade_date: date | None
    symbol: str
    market: Market | None = None
    side: Side | None = None
    pnl: float | None = None
    emotions: tuple[str, ...] = ()
    strategy_id: str | None = None
    entry_time: str | None = None
    exit_time: str | None = None

    @property
    def pnl_value(self) -> float:
        """P&L with missing values treated as zero."""
        return self.pnl if self.pnl is not None else 0.0

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "TradeRecord":
        """Build a record from a database row or API payload."""
        strategy = row.get("strategy_id")
        return cls(
            id=int(row["id"]),
            trade_date=_parse_date(row.get("trade_date")),
            symbol=str(row.get("symbol") or "").strip().upper(),
            market=_parse_enum(Market, row.get("market")),
            side=_parse_enum(Side, row.get("side")),
            pnl=parse_number(row.get("pnl")),
            emotions=parse_emotions(row.get("emotional_state", row.get("emotions"))),
            strategy_id=str(strategy) if strategy not in (None, "") else None,
            entry_time=row.get("entry_time") or None,
            exit_time=row.get("exit_time") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trade_date": self.trade_date.isoformat() if self.trade_date else None,
            "symbol": self.symbol,
            "market": self.market.value if self.market else None,
            "side": self.side.value if self.side else None,
            "pnl": self.pnl,
            "emotions": list(self.emotions),
            "strategy_id": self.strategy_id,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
        }


Listener = Callable[[str], None]


@dataclass
class RecordSet:
    """An ordered collection of trades with a version-stamped identity.

    ``identity`` is ``"<set_id>:<version>"`` and keys cached aggregates, so a
    caller-supplied ``set_id`` must not be shared by two live sets; the
    memoizer rejects the second one.  Omit it to get a random id.
    """

    records: tuple[TradeRecord, ...] = ()
    set_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    version: int = 0
    _listeners: list[Listener] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], set_id: str | None = None,
                  version: int = 0) -> "RecordSet":
        records = tuple(TradeRecord.from_mapping(r) for r in rows)
        if set_id is None:
            return cls(records=records, version=version)
        return cls(records=records, set_id=set_id, version=version)

    @property
    def identity(self) -> str:
        return f"{self.set_id}:{self.version}"

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[TradeRecord]:
        return iter(self.records)

    def __getitem__(self, index: int) -> TradeRecord:
        return self.records[index]

    def subscribe(self, listener: Listener) -> None:
        """Call *listener(old_identity)* after every mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── mutations ─────────────────────────────────────────────────────────

    def insert(self, record: TradeRecord) -> None:
        if any(r.id == record.id for r in self.records):
            raise ValueError(f"Trade {record.id} already exists")
        self._commit(self.records + (record,))

    def update(self, record: TradeRecord) -> None:
        if not any(r.id == record.id for r in self.records):
            raise KeyError(record.id)
        self._commit(tuple(record if r.id == record.id else r for r in self.records))

    def delete(self, record_id: int) -> None:
        remaining = tuple(r for r in self.records if r.id != record_id)
        if len(remaining) == len(self.records):
            raise KeyError(record_id)
        self._commit(remaining)

    def replace_all(self, records: Iterable[TradeRecord]) -> None:
        self._commit(tuple(records))

    def _commit(self, records: tuple[TradeRecord, ...]) -> None:
        old_identity = self.identity
        self.records = records
        self.version += 1
        logger.debug("record set %s -> %s (%d trades)", old_identity, self.identity, len(records))
        for listener in list(self._listeners):
            listener(old_identity)
