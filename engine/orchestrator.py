"""
Query orchestrator: the single owner of the trade list's query state.

UI intents (filter, sort, page changes) arrive as method calls.  Each
intent produces a new immutable QueryState, bumps a monotonically
increasing sequence number and (re)starts a debounce timer::

    IDLE/READY/ERROR --intent--> DEBOUNCING --quiet period--> FETCHING
    DEBOUNCING --intent--> DEBOUNCING        (timer restarted)
    FETCHING --intent--> DEBOUNCING          (in-flight result will be discarded)
    FETCHING --success--> READY
    FETCHING --failure--> ERROR              (last good view kept)

When the quiet period elapses the state is written to the URL (replace) and
to persistent storage, then one page is fetched from the record source.
Every await is followed by a sequence check; a response whose sequence
number is no longer current is discarded, so an older response can never
overwrite a newer view.

Free-text edits use a longer quiet period than discrete toggles.  Timers
come from an injectable scheduler, so tests can drive the clock by hand.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Mapping

from engine.aggregation import AggregationMemoizer, Statistics, compute_statistics
from engine.criteria import DEFAULT_SORT, FilterCriteria, PageState, QueryState, SortSpec
from engine.errors import FetchError, StaleResponseError
from engine.pagination import PageWindow, paginate
from engine.persistence import PersistenceStore
from engine.records import TradeRecord
from engine.scheduling import AsyncioScheduler, Scheduler
from engine.sources import RecordSource
from engine.url_sync import UrlSynchronizer, carries_filters, decode
from engine.validator import Validated, ValidationIssue, validate_criteria, validate_page, validate_sort
from utils.config import EngineConfig

logger = logging.getLogger(__name__)


class Status(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ViewSnapshot:
    """What the trade list shows after a successful fetch."""

    state: QueryState
    records: tuple[TradeRecord, ...]
    window: PageWindow
    statistics: Statistics
    dataset_version: str
    seq: int


Listener = Callable[["QueryOrchestrator"], None]


def resolve_initial_state(query: str | None,
                          persistence: PersistenceStore | None = None) -> Validated[QueryState]:
    """Starting state from the address bar and saved filters.

    If the URL sets any filter or sort parameter it wins outright for
    criteria and sort; otherwise the saved filters are used.  The page
    always comes from the URL since it is never persisted.
    """
    query = query or ""
    decoded = decode(query)
    state = decoded.value
    if persistence is not None and not carries_filters(query):
        saved = persistence.load()
        if saved is not None:
            criteria, sort = saved
            state = state.replace(criteria=criteria, sort=sort)
    return Validated(state, decoded.issues)


class QueryOrchestrator:
    """Coordinates validation, debounce, URL/persistence sync, fetch and stats."""

    def __init__(
        self,
        source: RecordSource,
        *,
        initial_state: QueryState | None = None,
        memoizer: AggregationMemoizer | None = None,
        url_sync: UrlSynchronizer | None = None,
        persistence: PersistenceStore | None = None,
        scheduler: Scheduler | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.source = source
        # Share the source's memoizer when it has one so index lists and
        # statistics come from the same cache entry.
        self.memoizer = memoizer or getattr(source, "memoizer", None) \
            or AggregationMemoizer(maxsize=self.config.cache_size)
        self.url_sync = url_sync
        self.persistence = persistence
        self.scheduler = scheduler or AsyncioScheduler()

        self.state: QueryState = initial_state or QueryState()
        self.status = Status.IDLE
        self.seq = 0
        self.view: ViewSnapshot | None = None
        self.error: FetchError | None = None
        self.issues: tuple[ValidationIssue, ...] = ()
        self.fetch_count = 0

        self._timer = None
        self._navigate_pending = False
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    @classmethod
    def from_url(cls, source: RecordSource, query: str | None, *,
                 persistence: PersistenceStore | None = None, **kwargs: Any) -> "QueryOrchestrator":
        resolved = resolve_initial_state(query, persistence)
        orchestrator = cls(source, initial_state=resolved.value, persistence=persistence, **kwargs)
        orchestrator.issues = resolved.issues
        if orchestrator.url_sync is not None:
            orchestrator.url_sync.read(query or "")
        return orchestrator

    # ── observation ────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener(self)* after every status change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set_status(self, status: Status) -> None:
        if status is self.status:
            return
        previous, self.status = self.status, status
        logger.debug("seq %d: %s -> %s", self.seq, previous.value, status.value,
                     extra={"seq": self.seq, "status_from": previous.value, "status_to": status.value})
        for listener in list(self._listeners):
            listener(self)

    @property
    def busy(self) -> bool:
        return self.status in (Status.DEBOUNCING, Status.FETCHING)

    # ── intents ────────────────────────────────────────────────────────────

    def set_filters(self, criteria: FilterCriteria | Mapping[str, Any],
                    text_input: bool = False) -> bool:
        """Replace the criteria.  Raw mappings are validated; bad fields are dropped."""
        if not isinstance(criteria, FilterCriteria):
            result = validate_criteria(criteria)
            self._record_issues(result.issues)
            criteria = result.value
        return self._intent(self.state.replace(criteria=criteria), text_input)

    def update_filters(self, text_input: bool = False, **changes: Any) -> bool:
        """Change individual criteria fields, e.g. ``update_filters(symbols=["BTC"])``.

        The merged fields are validated like ``set_filters``; a bad value
        drops that field and is reported in ``issues``.
        """
        merged = {**self.state.criteria.to_dict(), **changes}
        return self.set_filters(merged, text_input)

    def set_sort(self, sort: SortSpec | str | Mapping[str, Any]) -> bool:
        if not isinstance(sort, SortSpec):
            result = validate_sort(sort)
            self._record_issues(result.issues)
            sort = result.value
        return self._intent(self.state.replace(sort=sort))

    def set_page(self, page: int | str) -> bool:
        result = validate_page(page, self.state.page.page_size)
        self._record_issues(result.issues)
        if result.issues:
            return False
        return self._intent(self.state.replace(page=result.value))

    def set_page_size(self, page_size: int | str) -> bool:
        """Change the page size; the list returns to page 1."""
        result = validate_page(1, page_size)
        self._record_issues(result.issues)
        if result.issues:
            return False
        return self._intent(self.state.replace(page=result.value))

    def reset_filters(self) -> bool:
        """Clear criteria and sort and forget the saved filters."""
        if self.persistence is not None:
            self.persistence.clear()
        return self._intent(QueryState(sort=DEFAULT_SORT,
                                       page=PageState(page_size=self.state.page.page_size)))

    def navigate(self, query: str) -> bool:
        """Deliberate navigation: adopt *query* and push a new history entry."""
        result = decode(query)
        self._record_issues(result.issues)
        if result.value == self.state:
            return False
        self.state = result.value
        self.seq += 1
        self._cancel_timer()
        self._navigate_pending = True
        self._commit(self.seq)
        return True

    def retry(self) -> bool:
        """Re-issue the fetch for the current state after an error."""
        if self.status is not Status.ERROR:
            return False
        self.seq += 1
        self._begin_fetch(self.seq)
        return True

    def start(self) -> None:
        """Fetch the initial state immediately, without a debounce."""
        self.seq += 1
        self._cancel_timer()
        if self.url_sync is not None:
            self.url_sync.sync(self.state)
        self._begin_fetch(self.seq)

    def _record_issues(self, issues: tuple[ValidationIssue, ...]) -> None:
        self.issues = issues
        for issue in issues:
            logger.info("dropped %s (%s): %r", issue.field, issue.reason.value, issue.value)

    def _intent(self, next_state: QueryState, text_input: bool = False) -> bool:
        if next_state == self.state:
            return False
        self.state = next_state
        self.seq += 1
        self._cancel_timer()
        delay = self.config.text_debounce if text_input else self.config.discrete_debounce
        self._timer = self.scheduler.call_later(delay, partial(self._commit, self.seq))
        self._set_status(Status.DEBOUNCING)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── fetch cycle ────────────────────────────────────────────────────────

    def _commit(self, seq: int) -> None:
        """Quiet period over: record the state, then fetch it."""
        if seq != self.seq:
            return
        self._timer = None
        navigate, self._navigate_pending = self._navigate_pending, False
        if self.url_sync is not None:
            self.url_sync.sync(self.state, navigate=navigate)
        if self.persistence is not None:
            self.persistence.save(self.state.criteria, self.state.sort)
        self._begin_fetch(seq)

    def _begin_fetch(self, seq: int) -> None:
        self._set_status(Status.FETCHING)
        task = asyncio.get_running_loop().create_task(self._fetch(seq, self.state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _check(self, seq: int) -> None:
        if seq != self.seq:
            raise StaleResponseError(seq, self.seq)

    async def _fetch(self, seq: int, state: QueryState) -> None:
        try:
            view = await self._load(seq, state)
        except StaleResponseError as exc:
            logger.debug("discarding stale response: %s", exc)
            return
        except FetchError as exc:
            if seq == self.seq:
                logger.warning("fetch #%d failed: %s", seq, exc, extra={"seq": seq})
                self.error = exc
                self._set_status(Status.ERROR)
            return
        except Exception as exc:
            if seq == self.seq:
                logger.exception("fetch #%d failed unexpectedly", seq, extra={"seq": seq})
                self.error = FetchError(f"unexpected error: {exc}")
                self._set_status(Status.ERROR)
            return

        if self.view is not None and self.view.dataset_version != view.dataset_version:
            self.memoizer.invalidate(self.view.dataset_version)
        self.view = view
        self.error = None
        logger.info("fetch #%d: %d of %d trades", seq, len(view.records), view.window.total_count,
                    extra={"seq": seq, "total": view.window.total_count})
        self._set_status(Status.READY)

    async def _load(self, seq: int, state: QueryState) -> ViewSnapshot:
        criteria, sort = state.criteria, state.sort
        self.fetch_count += 1
        page = await self.source.fetch_page(criteria, sort, state.page)
        self._check(seq)

        window = paginate(page.total_count, state.page)
        if window.effective_page != state.page.page:
            # The filtered set shrank under the requested page.
            state = state.replace(page=state.page.with_page(window.effective_page))
            self.state = state
            if self.url_sync is not None:
                self.url_sync.sync(state)
            if page.total_count > 0:
                self.fetch_count += 1
                page = await self.source.fetch_page(criteria, sort, state.page)
                self._check(seq)
                window = paginate(page.total_count, state.page)

        entry = self.memoizer.lookup(page.dataset_version, criteria, sort)
        if entry is not None:
            statistics = entry.statistics
        else:
            matching = await self.source.fetch_matching(criteria, sort)
            self._check(seq)
            statistics = compute_statistics(matching)
            self.memoizer.store(page.dataset_version, criteria, sort, statistics)

        return ViewSnapshot(
            state=state,
            records=page.records,
            window=window,
            statistics=statistics,
            dataset_version=page.dataset_version,
            seq=seq,
        )

    async def wait_idle(self, poll: float = 0.005) -> None:
        """Wait until no debounce timer or fetch is outstanding.

        With a ManualScheduler, advance the clock first; a pending timer
        there never fires on its own.
        """
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            elif self.status is Status.DEBOUNCING:
                await asyncio.sleep(poll)
            else:
                return

    # ── convenience ────────────────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready summary of the current status and view."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "seq": self.seq,
            "criteria": self.state.criteria.to_dict(),
            "sort": self.state.sort.to_token(),
            "active_filters": self.state.criteria.active_filter_count(),
            "error": str(self.error) if self.error else None,
            "issues": [i.to_dict() for i in self.issues],
        }
        if self.view is not None:
            data["page"] = self.view.window.to_dict()
            data["items"] = [r.to_dict() for r in self.view.records]
            data["statistics"] = self.view.statistics.to_dict()
        return data
