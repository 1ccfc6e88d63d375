"""
High-level orchestration for a single crawl run.

The job validates the input, loads seeds, fetches each seed's detail page,
extracts the buyers graph with `parser.py`, persists it using the storage
layer, and finally exports the stored relationships to the output CSV.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .browser import DEFAULT_USER_AGENT, FetchConfig, FetchError, build_detail_url, fetch_html, request_session
from .document import Document
from .layout import PageLayout, get_default_layout
from .parser import extract_page
from .resolver import resolve
from .seeds import HeaderMapping, Seed, load_seeds, validate_paths
from .storage import (
    StorageError,
    UpsertOutcome,
    export_relationships,
    get_session_factory,
    upsert_relationship,
    upsert_system,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SETTINGS_PATH = PROJECT_ROOT / "config" / "settings.yaml"
DEFAULT_URL_TEMPLATE = (
    "https://dww2.tceq.texas.gov/DWW/JSP/WaterSystemDetail.jsp"
    "?tinwsys_is_number={is_number}&tinwsys_st_code={state_code}&wsnumber={ws_number}&DWWState={state_code}"
)

Fetcher = Callable[[str], str]


@dataclass
class JobStats:
    seeds_total: int = 0
    seeds_processed: int = 0
    seeds_failed: int = 0
    systems_inserted: int = 0
    systems_skipped: int = 0
    relationships_inserted: int = 0
    relationships_skipped: int = 0
    storage_errors: int = 0
    rows_exported: int = 0
    database_path: str = ""
    output_path: str = ""
    snapshots: List[Path] = field(default_factory=list)


class CrawlConfig(BaseModel):
    """Everything a run needs; built once at startup and passed in."""

    input_path: Path
    output_path: Path
    database_path: Path
    headers: HeaderMapping = Field(default_factory=HeaderMapping)
    url_template: str = DEFAULT_URL_TEMPLATE
    request_delay_seconds: float = Field(1.0, ge=0)
    timeout_ms: int = Field(15_000, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    save_snapshots: bool = False
    layout: PageLayout = Field(default_factory=get_default_layout)


def load_settings(settings_path: Path) -> Dict[str, Any]:
    with Path(settings_path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)["default"]


def build_crawl_config(
    settings: Dict[str, Any],
    input_path: Path,
    output_path: Path,
    header_overrides: Optional[Dict[str, str]] = None,
    database_path: Optional[Path] = None,
) -> CrawlConfig:
    """
    Merge settings.yaml values with command line arguments.

    A relative `database_path` in the settings is resolved against the
    project root.
    """
    headers = dict(settings.get("headers") or {})
    headers.update({key: value for key, value in (header_overrides or {}).items() if value})

    if database_path is None:
        database_path = PROJECT_ROOT / settings.get("database_path", "data/water_systems.db")

    values: Dict[str, Any] = {
        "input_path": input_path,
        "output_path": output_path,
        "database_path": database_path,
        "headers": headers,
    }
    for key in ("url_template", "request_delay_seconds", "timeout_ms", "user_agent", "save_snapshots", "layout"):
        if settings.get(key) is not None:
            values[key] = settings[key]
    return CrawlConfig(**values)


def run_once(config: CrawlConfig, fetcher: Optional[Fetcher] = None) -> JobStats:
    """
    Execute a single crawl over every seed in the input file.

    Configuration problems raise `ConfigurationError` before any request is
    made. Fetch and storage failures are logged per seed or per record and
    the run carries on. `fetcher` replaces the Playwright request context,
    mainly for tests.
    """
    input_path, output_path = validate_paths(config.input_path, config.output_path)
    seeds = load_seeds(input_path, config.headers)

    stats = JobStats(
        seeds_total=len(seeds),
        database_path=str(config.database_path),
        output_path=str(output_path),
    )
    SessionFactory = get_session_factory(str(config.database_path))
    batch_time = datetime.now()

    with ExitStack() as stack:
        if fetcher is None:
            context = stack.enter_context(
                request_session(FetchConfig(timeout_ms=config.timeout_ms, user_agent=config.user_agent))
            )
            fetcher = partial(fetch_html, context)

        with SessionFactory() as session:
            for position, seed in enumerate(seeds):
                if position and config.request_delay_seconds > 0:
                    time.sleep(config.request_delay_seconds)
                _crawl_seed(session, seed, fetcher, config, stats, batch_time)

            stats.rows_exported = export_relationships(session, output_path)

    return stats


def _crawl_seed(
    session: Session,
    seed: Seed,
    fetcher: Fetcher,
    config: CrawlConfig,
    stats: JobStats,
    batch_time: datetime,
) -> None:
    url = build_detail_url(config.url_template, seed.ws_number, seed.state_code, seed.is_number)
    logger.info(
        "Processing row %s: %s (%s/%s)",
        seed.row_number,
        seed.ws_number.strip(),
        stats.seeds_processed + stats.seeds_failed + 1,
        stats.seeds_total,
    )
    try:
        html = fetcher(url)
    except FetchError as exc:
        stats.seeds_failed += 1
        logger.error(
            "Row %s: request failed with %s %s for %s",
            seed.row_number,
            exc.status if exc.status is not None else "no response",
            exc.reason,
            exc.url,
        )
        return

    if config.save_snapshots:
        stats.snapshots.append(_save_snapshot(html, config.database_path.parent, seed, batch_time))

    extraction = extract_page(Document.from_html(html), config.layout)
    seller = seed.to_system(name=extraction.fields.get("name"))
    if seller.name is None:
        logger.warning("Row %s: no system name found on page for %s", seed.row_number, seller.ws_number)

    resolution = resolve(seller, extraction.rows)
    for system in resolution.systems:
        outcome = _persist(session, upsert_system, system, f"water system {system.ws_number}", stats)
        if outcome is UpsertOutcome.INSERTED:
            stats.systems_inserted += 1
        elif outcome is UpsertOutcome.ALREADY_EXISTS:
            stats.systems_skipped += 1

    for relationship in resolution.relationships:
        label = f"relationship {relationship.seller} -> {relationship.buyer}"
        outcome = _persist(session, upsert_relationship, relationship, label, stats)
        if outcome is UpsertOutcome.INSERTED:
            stats.relationships_inserted += 1
        elif outcome is UpsertOutcome.ALREADY_EXISTS:
            stats.relationships_skipped += 1

    stats.seeds_processed += 1
    logger.info(
        "Row %s: %s (%s) sells to %s systems",
        seed.row_number,
        seller.ws_number,
        seller.name or "unnamed",
        len(resolution.relationships),
    )


def _persist(session: Session, upsert, record, label: str, stats: JobStats) -> Optional[UpsertOutcome]:
    try:
        outcome = upsert(session, record)
    except StorageError as exc:
        stats.storage_errors += 1
        logger.error("Could not store %s: %s", label, exc)
        return None
    if outcome is UpsertOutcome.ALREADY_EXISTS:
        logger.info("Skipped %s - already exists", label)
    else:
        logger.info("Inserted %s", label)
    return outcome


def _save_snapshot(html: str, data_dir: Path, seed: Seed, batch_time: datetime) -> Path:
    """
    Persist the fetched HTML to data/snapshots for auditing.
    """
    snapshots_dir = data_dir / "snapshots"
    snapshots_dir.mkdir(parents=True, exist_ok=True)

    timestamp = batch_time.strftime("%Y%m%dT%H%M%S")
    filename = f"{timestamp}_{seed.row_number:04d}_{seed.ws_number.strip()}.html"
    snapshot_path = snapshots_dir / filename
    snapshot_path.write_text(html, encoding="utf-8")
    return snapshot_path
