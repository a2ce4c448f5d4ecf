"""
Memoized summary statistics for the filtered trade list.

``AggregationMemoizer.compute(records, criteria, sort)`` returns a
``Statistics`` value, computing it at most once per fingerprint.  A
fingerprint is the SHA-256 of the canonical JSON of (record-set identity,
criteria, sort).  Because a RecordSet's identity changes on every mutation,
a stale entry can never be served; the memoizer additionally subscribes to
each set it has seen and drops that set's entries as soon as it mutates,
so the bounded LRU cache does not fill up with dead results.

Emotion distribution
--------------------
Each known emotion tag gets a bucket with buy/sell/unknown counts, its share
of all tag occurrences (percent), a signed leaning ``(buy - sell) / total *
100`` and a display value on a 10-100 scale (the share, clamped).  When two
buckets' base display values are within ``NEAR_EQUAL_THRESHOLD`` points of
each other they are spread apart by ``leaning * LEANING_WEIGHT`` plus a per-label
offset taken from a SHA-256 of the label, staying between the neighbouring
buckets that were not moved.  Each moved bucket then takes the nearest free
slot on a ``COLLISION_STEP`` grid, in label order, so no two display values
end up closer than half a step.  No randomness is involved, so identical
inputs always give identical display values.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import weakref
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from engine import filtering
from engine.criteria import KNOWN_EMOTIONS, FilterCriteria, Side, SortSpec
from engine.records import RecordSet, TradeRecord
from utils.cache import LRUCache
from utils.patterns import CLOCK_TIME

logger = logging.getLogger(__name__)

PROFIT_FACTOR_CAP = 999.0
LEANING_THRESHOLD = 15.0
NEAR_EQUAL_THRESHOLD = 1.0
LEANING_WEIGHT = 0.15
HASH_STEP = 1.5
COLLISION_STEP = 0.5
DISPLAY_MIN = 10.0
DISPLAY_MAX = 100.0


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EmotionBucket:
    label: str
    buy_count: int
    sell_count: int
    unknown_count: int
    share: float
    leaning: float
    leaning_label: str
    display_value: float

    @property
    def total(self) -> int:
        return self.buy_count + self.sell_count + self.unknown_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "unknown_count": self.unknown_count,
            "total": self.total,
            "share": self.share,
            "leaning": self.leaning,
            "leaning_label": self.leaning_label,
            "display_value": self.display_value,
        }


@dataclass(frozen=True)
class Statistics:
    """Aggregates over every record matching a filter (not just one page)."""

    trade_count: int = 0
    total_pnl: float = 0.0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    profit_factor: float = 0.0
    avg_hold_minutes: float = 0.0
    sharpe_ratio: float = 0.0
    cumulative_pnl: tuple[float, ...] = ()
    side_counts: tuple[tuple[str, int], ...] = ()
    market_counts: tuple[tuple[str, int], ...] = ()
    emotions: tuple[EmotionBucket, ...] = ()

    def emotion(self, label: str) -> EmotionBucket | None:
        for bucket in self.emotions:
            if bucket.label == label:
                return bucket
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_count": self.trade_count,
            "total_pnl": self.total_pnl,
            "win_count": self.win_count,
            "loss_count": self.loss_count,
            "win_rate": self.win_rate,
            "gross_profit": self.gross_profit,
            "gross_loss": self.gross_loss,
            "profit_factor": self.profit_factor,
            "avg_hold_minutes": self.avg_hold_minutes,
            "sharpe_ratio": self.sharpe_ratio,
            "cumulative_pnl": list(self.cumulative_pnl),
            "side_counts": dict(self.side_counts),
            "market_counts": dict(self.market_counts),
            "emotions": [b.to_dict() for b in self.emotions],
        }


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    record_identity: str
    statistics: Statistics
    indices: tuple[int, ...] | None = None


# ── Pure computation ──────────────────────────────────────────────────────────


def _clock_minutes(value: str | None) -> int | None:
    if not value:
        return None
    m = CLOCK_TIME.match(value.strip())
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def hold_minutes(record: TradeRecord) -> int | None:
    """Minutes between entry and exit clock times, wrapping past midnight."""
    entry = _clock_minutes(record.entry_time)
    exit_ = _clock_minutes(record.exit_time)
    if entry is None or exit_ is None:
        return None
    return (exit_ - entry) % (24 * 60)


def _label_offset(label: str) -> float:
    digest = hashlib.sha256(label.encode("utf-8")).hexdigest()
    return (int(digest, 16) % 10) * HASH_STEP


def _clamp(value: float, low: float = DISPLAY_MIN, high: float = DISPLAY_MAX) -> float:
    return max(low, min(high, value))


def _leaning_label(leaning: float) -> str:
    if leaning > LEANING_THRESHOLD:
        return "Buy Leaning"
    if leaning < -LEANING_THRESHOLD:
        return "Sell Leaning"
    return "Balanced"


def _free_slot(target: float, low: float, high: float, taken: list[float]) -> float | None:
    """Closest value to *target* on a COLLISION_STEP grid within [low, high] clear of *taken*."""
    for n in range(int((high - low) / COLLISION_STEP) + 1):
        for candidate in (target + n * COLLISION_STEP, target - n * COLLISION_STEP):
            candidate = round(candidate, 2)
            if low <= candidate <= high and \
                    all(abs(candidate - t) >= COLLISION_STEP / 2 for t in taken):
                return candidate
    return None


def emotion_buckets(records: Iterable[TradeRecord]) -> tuple[EmotionBucket, ...]:
    """Per-emotion distribution, ordered by the known-emotion vocabulary."""
    counts: dict[str, list[int]] = {}
    for record in records:
        for tag in record.emotions:
            c = counts.setdefault(tag, [0, 0, 0])
            if record.side is Side.BUY:
                c[0] += 1
            elif record.side is Side.SELL:
                c[1] += 1
            else:
                c[2] += 1
    occurrences = sum(sum(c) for c in counts.values())
    if not occurrences:
        return ()

    raw: list[dict[str, Any]] = []
    for label in KNOWN_EMOTIONS:
        if label not in counts:
            continue
        buy, sell, unknown = counts[label]
        total = buy + sell + unknown
        leaning = max(-100.0, min(100.0, (buy - sell) / total * 100))
        share = total / occurrences * 100
        raw.append({"label": label, "counts": (buy, sell, unknown), "share": share,
                    "leaning": leaning, "display": _clamp(share)})

    # Spread buckets whose base display values sit within the near-equal
    # threshold (this includes small shares that all clamp to the minimum).
    by_base = sorted(raw, key=lambda b: (b["display"], b["label"]))
    crowded: set[str] = set()
    for prev, cur in zip(by_base, by_base[1:]):
        if cur["display"] - prev["display"] < NEAR_EQUAL_THRESHOLD:
            crowded.update((prev["label"], cur["label"]))

    # Buckets that are not crowded keep their value and bound the others, so
    # a shifted bucket never passes one that kept its value.
    anchors = [round(b["display"], 2) for b in raw if b["label"] not in crowded]
    taken = list(anchors)
    for b in sorted((b for b in raw if b["label"] in crowded), key=lambda b: b["label"]):
        base = b["display"]
        low = max((a + COLLISION_STEP for a in anchors if a < base), default=DISPLAY_MIN)
        high = min((a - COLLISION_STEP for a in anchors if a > base), default=DISPLAY_MAX)
        target = min(max(base + b["leaning"] * LEANING_WEIGHT + _label_offset(b["label"]),
                         low), high)
        value = _free_slot(target, low, high, taken)
        if value is None:
            value = _free_slot(target, DISPLAY_MIN, DISPLAY_MAX, taken)
        taken.append(value)
        b["display"] = value

    return tuple(
        EmotionBucket(
            label=b["label"],
            buy_count=b["counts"][0],
            sell_count=b["counts"][1],
            unknown_count=b["counts"][2],
            share=round(b["share"], 2),
            leaning=round(b["leaning"], 2),
            leaning_label=_leaning_label(b["leaning"]),
            display_value=round(b["display"], 2),
        )
        for b in raw
    )


def _counts(values: Iterable[Any]) -> tuple[tuple[str, int], ...]:
    tally: dict[str, int] = {}
    for v in values:
        if v is not None:
            tally[v.value] = tally.get(v.value, 0) + 1
    return tuple(sorted(tally.items()))


def compute_statistics(records: Sequence[TradeRecord]) -> Statistics:
    """Aggregate *records* directly, with no caching."""
    if not records:
        return Statistics()

    pnls = [r.pnl_value for r in records]
    count = len(pnls)
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    gross_profit = math.fsum(wins)
    gross_loss = abs(math.fsum(losses))
    if gross_loss == 0:
        profit_factor = PROFIT_FACTOR_CAP if gross_profit > 0 else 0.0
    else:
        profit_factor = min(gross_profit / gross_loss, PROFIT_FACTOR_CAP)

    holds = [h for h in (hold_minutes(r) for r in records) if h is not None]
    mean = math.fsum(pnls) / count
    variance = math.fsum((p - mean) ** 2 for p in pnls) / count
    std = math.sqrt(variance)

    running = 0.0
    cumulative = []
    for r in sorted(records, key=lambda r: (r.trade_date is not None,
                                            r.trade_date.toordinal() if r.trade_date else 0,
                                            r.id)):
        running += r.pnl_value
        cumulative.append(round(running, 10))

    return Statistics(
        trade_count=count,
        total_pnl=math.fsum(pnls),
        win_count=len(wins),
        loss_count=len(losses),
        win_rate=len(wins) / count * 100,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        profit_factor=profit_factor,
        avg_hold_minutes=sum(holds) / len(holds) if holds else 0.0,
        sharpe_ratio=mean / std if std else 0.0,
        cumulative_pnl=tuple(cumulative),
        side_counts=_counts(r.side for r in records),
        market_counts=_counts(r.market for r in records),
        emotions=emotion_buckets(records),
    )


def fingerprint(record_identity: str, criteria: FilterCriteria, sort: SortSpec) -> str:
    """Stable cache key for (record identity, criteria, sort)."""
    canonical = json.dumps(
        {"records": record_identity, "criteria": criteria.to_dict(), "sort": sort.to_token()},
        sort_keys=True, separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ── Memoizer ─────────────────────────────────────────────────────────────────


@dataclass
class AggregationMemoizer:
    """Fingerprint-keyed LRU cache of Statistics and filtered index lists."""

    maxsize: int = 64
    computations: int = 0
    _cache: LRUCache = field(init=False, repr=False)
    _watched: weakref.WeakValueDictionary = field(
        default_factory=weakref.WeakValueDictionary, init=False, repr=False)

    def __post_init__(self) -> None:
        self._cache = LRUCache(maxsize=self.maxsize)

    def lookup(self, record_identity: str, criteria: FilterCriteria,
               sort: SortSpec) -> CacheEntry | None:
        return self._cache.get(fingerprint(record_identity, criteria, sort))

    def store(self, record_identity: str, criteria: FilterCriteria, sort: SortSpec,
              statistics: Statistics, indices: Sequence[int] | None = None) -> CacheEntry:
        """Cache *statistics* for an externally computed result set."""
        key = fingerprint(record_identity, criteria, sort)
        entry = CacheEntry(key, record_identity, statistics,
                           tuple(indices) if indices is not None else None)
        self._cache.set(key, entry)
        return entry

    def _entry(self, records: RecordSet, criteria: FilterCriteria, sort: SortSpec) -> CacheEntry:
        self.watch(records)
        key = fingerprint(records.identity, criteria, sort)
        entry = self._cache.get(key)
        if entry is not None:
            return entry
        indices = filtering.apply(records.records, criteria, sort)
        statistics = compute_statistics([records[i] for i in indices])
        self.computations += 1
        logger.debug("computed statistics for %s (%d matching)", key[:12], len(indices),
                     extra={"fingerprint": key})
        entry = CacheEntry(key, records.identity, statistics, tuple(indices))
        self._cache.set(key, entry)
        return entry

    def compute(self, records: RecordSet, criteria: FilterCriteria, sort: SortSpec) -> Statistics:
        """Statistics for the records matching *criteria*; cached per fingerprint."""
        return self._entry(records, criteria, sort).statistics

    def filtered_indices(self, records: RecordSet, criteria: FilterCriteria,
                         sort: SortSpec) -> tuple[int, ...]:
        """Matching record indices in sort order; shares the cache with compute()."""
        return self._entry(records, criteria, sort).indices

    def watch(self, records: RecordSet) -> None:
        """Drop cached entries for *records* whenever it mutates.

        Raises ValueError when another live RecordSet already uses the same
        ``set_id``; the two would otherwise share cache entries.
        """
        current = self._watched.get(records.set_id)
        if current is records:
            return
        if current is not None:
            raise ValueError(f"set_id {records.set_id!r} is already used by another record set")
        # Entries left by an earlier, collected set with this id are stale
        self._cache.discard_where(
            lambda _k, e: e.record_identity.rsplit(":", 1)[0] == records.set_id)
        records.subscribe(self.invalidate)
        self._watched[records.set_id] = records

    def invalidate(self, record_identity: str) -> int:
        """Remove every entry computed against *record_identity*."""
        removed = self._cache.discard_where(lambda _k, e: e.record_identity == record_identity)
        if removed:
            logger.debug("invalidated %d cached aggregate(s) for %s", removed, record_identity)
        return removed

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def cache_stats(self) -> dict[str, int]:
        stats = self._cache.stats()
        stats["computations"] = self.computations
        return stats
