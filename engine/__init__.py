"""Filter/sort/pagination state engine for the trade journal.

Typical wiring::

    from engine import (InMemoryRecordSource, QueryOrchestrator, RecordSet,
                        UrlSynchronizer, InMemoryHistory)

    source = InMemoryRecordSource(RecordSet.from_rows(rows))
    orch = QueryOrchestrator.from_url(source, "?symbols=BTC,ETH&side=Buy",
                                      url_sync=UrlSynchronizer(InMemoryHistory()))
    orch.start()
    await orch.wait_idle()
    orch.view.statistics.total_pnl
"""

from engine.errors import (
    EngineError,
    ValidationError,
    FetchError,
    StaleResponseError,
    StorageError,
    QuotaExceededError,
)
from engine.criteria import (
    Market,
    Side,
    Outcome,
    SortField,
    SortDirection,
    KNOWN_EMOTIONS,
    ALLOWED_PAGE_SIZES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    FilterCriteria,
    SortSpec,
    PageState,
    QueryState,
)
from engine.records import TradeRecord, RecordSet, parse_emotions
from engine.validator import (
    Reason,
    ValidationIssue,
    Validated,
    validate_criteria,
    validate_sort,
    validate_page,
    validate_state,
)
from engine.url_sync import (
    encode,
    encode_state,
    decode,
    carries_filters,
    build_shareable_url,
    InMemoryHistory,
    UrlSynchronizer,
)
from engine.persistence import (
    MemoryStorage,
    JsonFileStorage,
    PersistenceStore,
)
from engine.pagination import PageWindow, paginate, clamp_page
from engine.aggregation import (
    EmotionBucket,
    Statistics,
    CacheEntry,
    AggregationMemoizer,
    compute_statistics,
    fingerprint,
)
from engine.scheduling import AsyncioScheduler, ManualScheduler
from engine.sources import (
    RecordPage,
    InMemoryRecordSource,
    SqliteRecordSource,
    HttpRecordSource,
)
from engine.orchestrator import (
    Status,
    ViewSnapshot,
    QueryOrchestrator,
    resolve_initial_state,
)

__all__ = [
    "EngineError", "ValidationError", "FetchError", "StaleResponseError",
    "StorageError", "QuotaExceededError",
    "Market", "Side", "Outcome", "SortField", "SortDirection",
    "KNOWN_EMOTIONS", "ALLOWED_PAGE_SIZES", "DEFAULT_PAGE_SIZE", "DEFAULT_SORT",
    "FilterCriteria", "SortSpec", "PageState", "QueryState",
    "TradeRecord", "RecordSet", "parse_emotions",
    "Reason", "ValidationIssue", "Validated",
    "validate_criteria", "validate_sort", "validate_page", "validate_state",
    "encode", "encode_state", "decode", "carries_filters", "build_shareable_url",
    "InMemoryHistory", "UrlSynchronizer",
    "MemoryStorage", "JsonFileStorage", "PersistenceStore",
    "PageWindow", "paginate", "clamp_page",
    "EmotionBucket", "Statistics", "CacheEntry", "AggregationMemoizer",
    "compute_statistics", "fingerprint",
    "AsyncioScheduler", "ManualScheduler",
    "RecordPage", "InMemoryRecordSource", "SqliteRecordSource", "HttpRecordSource",
    "Status", "ViewSnapshot", "QueryOrchestrator", "resolve_initial_state",
]
