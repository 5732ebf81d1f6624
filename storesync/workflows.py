"""High-level sync workflow.

One run resolves the build token, fetches every configured category,
normalizes products in category order (first sighting wins), and hands the
accumulated batch to the SyncEngine.
"""

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests  # type: ignore[import-untyped]

from storesync.bootstrap import get_build_id
from storesync.config import CATEGORIES, DB_PATH, FETCH_WORKERS, WRITE_BATCH_SIZE
from storesync.db import CatalogStore
from storesync.dedup import Deduplicator, SeenProducts
from storesync.errors import BootstrapError, CategoryFetchError, PersistenceError
from storesync.fetcher import fetch_category, iter_products
from storesync.http_client import create_session
from storesync.logging_config import get_logger, log_sync_event
from storesync.models import SyncBatch
from storesync.sync import SyncEngine

__all__ = [
    "RunStatus",
    "RunSummary",
    "fetch_all_categories",
    "collect_batch",
    "run_sync",
]

logger = get_logger("workflows")


class RunStatus(str, Enum):
    SUCCESS = "success"
    NOOP = "noop"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Outcome of one sync pass."""

    status: RunStatus
    started_at: str
    finished_at: Optional[str] = None
    reason: Optional[str] = None
    counts: Dict[str, int] = field(default_factory=dict)
    category_counts: Dict[str, int] = field(default_factory=dict)
    failed_categories: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def exit_code(self) -> int:
        return 1 if self.status == RunStatus.FAILED else 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "counts": dict(self.counts),
            "category_counts": dict(self.category_counts),
            "failed_categories": list(self.failed_categories),
            "dry_run": self.dry_run,
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def fetch_all_categories(
    build_id: str,
    categories: List[str],
    session: Optional[requests.Session] = None,
    workers: int = FETCH_WORKERS,
    failed: Optional[List[str]] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Fetch every category, concurrently when ``workers`` > 1.

    Returns subcategory lists keyed by category slug. Failed categories map
    to an empty list and are appended to ``failed``.

    Without ``session`` every worker thread gets its own session from
    create_session(). A session passed in is shared by all workers.
    """
    lock = threading.Lock()
    local = threading.local()

    def on_error(error: CategoryFetchError) -> None:
        if failed is not None:
            with lock:
                failed.append(error.category)

    def worker_session() -> requests.Session:
        if session is not None:
            return session
        if getattr(local, "session", None) is None:
            local.session = create_session()
        return local.session

    def fetch(slug: str) -> List[Dict[str, Any]]:
        return fetch_category(build_id, slug, session=worker_session(), on_error=on_error)

    if workers <= 1 or len(categories) <= 1:
        return {slug: fetch(slug) for slug in categories}

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(fetch, categories))
    if failed is not None:
        # Report failures in configured order regardless of completion order
        failed.sort(key=categories.index)
    return dict(zip(categories, results))


def collect_batch(
    listings: Dict[str, List[Dict[str, Any]]],
    categories: List[str],
    now: str,
    deduplicator: Optional[Deduplicator] = None,
) -> Tuple[SyncBatch, Dict[str, int]]:
    """Normalize fetched products in configured category order.

    Returns the accumulated batch and the number of products attributed to
    each category.
    """
    dedup = deduplicator or Deduplicator()
    batch = SyncBatch()
    category_counts: Dict[str, int] = {}

    for slug in categories:
        count = 0
        for raw in iter_products(listings.get(slug, [])):
            normalized = dedup.normalize(raw, slug, now)
            if normalized is None:
                continue
            batch.add(normalized)
            count += 1
        category_counts[slug] = count

    return batch, category_counts


def _log_summary(summary: RunSummary) -> None:
    level = logging.ERROR if summary.status == RunStatus.FAILED else logging.INFO
    logger.info("=" * 50)
    logger.info("Run summary:")
    for key, value in summary.counts.items():
        logger.info(f"  {key.replace('_', ' ').capitalize()}: {value}")
    if summary.failed_categories:
        logger.warning(f"  Failed categories: {', '.join(summary.failed_categories)}")
    status_line = f"Status: {summary.status.value}"
    if summary.reason:
        status_line += f" ({summary.reason})"
    logger.log(level, status_line)
    logger.info("=" * 50)
    log_sync_event("run_complete", summary.as_dict(), level=level, logger_name="workflows")


def run_sync(
    categories: Optional[List[str]] = None,
    db_path: str = DB_PATH,
    store: Optional[CatalogStore] = None,
    session: Optional[requests.Session] = None,
    workers: int = FETCH_WORKERS,
    batch_size: int = WRITE_BATCH_SIZE,
    dry_run: bool = False,
    now: Optional[str] = None,
) -> RunSummary:
    """Run one full sync pass.

    Args:
        categories: Category slugs in attribution order (default: CATEGORIES)
        db_path: SQLite database path, used when ``store`` is not given
        store: Catalog store to write to
        session: HTTP session for every upstream request. Without one, the
            bootstrap and each fetch worker thread create their own
        workers: Category fetch pool size
        batch_size: Rows per write call
        dry_run: Fetch and normalize only; nothing is written
        now: Run timestamp (default: current UTC time)

    Returns:
        RunSummary. ``failed`` on bootstrap or persistence errors, ``noop``
        when no products were found, ``success`` otherwise.
    """
    categories = list(dict.fromkeys(categories if categories is not None else CATEGORIES))
    now = now or _utc_now()
    bootstrap_session = session or create_session()
    summary = RunSummary(status=RunStatus.SUCCESS, started_at=now, dry_run=dry_run)

    logger.info("=" * 50)
    logger.info(f"Catalog sync started at {now}")
    logger.info("=" * 50)
    log_sync_event(
        "run_start",
        {"categories": categories, "dry_run": dry_run, "workers": workers},
        logger_name="workflows",
    )

    try:
        build_id = get_build_id(session=bootstrap_session)
    except BootstrapError as e:
        logger.error(f"Bootstrap failed: {e}")
        summary.status = RunStatus.FAILED
        summary.reason = f"bootstrap: {e}"
        summary.finished_at = _utc_now()
        _log_summary(summary)
        return summary

    listings = fetch_all_categories(
        build_id, categories, session=session, workers=workers,
        failed=summary.failed_categories,
    )

    deduplicator = Deduplicator(SeenProducts())
    batch, summary.category_counts = collect_batch(listings, categories, now, deduplicator)
    summary.counts = batch.counts()
    summary.counts["skipped"] = deduplicator.skipped
    summary.counts["duplicates"] = deduplicator.duplicates

    if not batch.products:
        summary.status = RunStatus.NOOP
        summary.reason = "no products found"
    elif not dry_run:
        try:
            try:
                target = store or CatalogStore(db_path)
            except sqlite3.Error as e:
                raise PersistenceError("init", 0, e) from e
            result = SyncEngine(target, batch_size=batch_size).apply(batch, now)
        except PersistenceError as e:
            summary.status = RunStatus.FAILED
            summary.reason = f"persistence: {e}"
        else:
            summary.counts["history"] = result.history
            summary.counts["linked_products"] = result.linked_products

    summary.finished_at = _utc_now()
    _log_summary(summary)
    return summary
