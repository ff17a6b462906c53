from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

import httpx

from .config import AppConfig
from .federal_register import fetch_federal_register_opportunities
from .fema import fetch_fema_opportunities
from .grants_gov import fetch_grants_gov_opportunities
from .models import Opportunity, SourceQuery, SourceReport
from .nih import fetch_nih_opportunities
from .nsf import fetch_nsf_opportunities
from .usaspending import fetch_usaspending_opportunities

logger = logging.getLogger(__name__)

Fetcher = Callable[[httpx.Client, AppConfig, SourceQuery], list[Opportunity]]


@dataclass(slots=True, frozen=True)
class Source:
    name: str
    label: str
    fetch: Fetcher
    historical: bool = False


# Registry order doubles as source priority when picking a duplicate winner.
SOURCES: tuple[Source, ...] = (
    Source("grants_gov", "Grants.gov", fetch_grants_gov_opportunities),
    Source("nih_reporter", "NIH RePORTER", fetch_nih_opportunities),
    Source("nsf_awards", "NSF Awards", fetch_nsf_opportunities),
    Source("federal_register", "Federal Register", fetch_federal_register_opportunities),
    Source("fema", "FEMA Disasters", fetch_fema_opportunities),
    Source("usa_spending", "USASpending.gov", fetch_usaspending_opportunities, historical=True),
)

SOURCE_PRIORITY: dict[str, int] = {source.name: idx for idx, source in enumerate(SOURCES)}

_CONFIG_SECTIONS = {
    "grants_gov": "grants_gov",
    "nih_reporter": "nih",
    "nsf_awards": "nsf",
    "federal_register": "federal_register",
    "fema": "fema",
    "usa_spending": "usa_spending",
}

_ALIASES = {"nih": "nih_reporter", "nsf": "nsf_awards", "usaspending": "usa_spending"}


@dataclass(slots=True)
class CollectResult:
    opportunities: list[Opportunity] = field(default_factory=list)
    reports: list[SourceReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timed_out: bool = False


def select_sources(
    config: AppConfig,
    names: Iterable[str] | None = None,
    include_historical: bool = False,
    sources: Iterable[Source] = SOURCES,
) -> list[Source]:
    wanted = {_ALIASES.get(name.strip().lower(), name.strip().lower()) for name in names or ()}
    wanted.discard("")
    select_all = not wanted or "all" in wanted

    selected: list[Source] = []
    for source in sources:
        section = _CONFIG_SECTIONS.get(source.name)
        if section and not getattr(config, section).enabled:
            continue
        if source.historical and not include_historical:
            continue
        if select_all or source.name in wanted:
            selected.append(source)
    return selected


def collect_opportunities(
    config: AppConfig,
    query: SourceQuery,
    sources: list[Source],
    client: httpx.Client,
    deadline: float | None = None,
) -> CollectResult:
    """Run every source in parallel and join, abandoning any still running at ``deadline``.

    ``deadline`` is a ``time.monotonic()`` timestamp. Results are concatenated in
    registry order, not completion order.
    """
    result = CollectResult()
    if not sources:
        return result

    executor = ThreadPoolExecutor(max_workers=len(sources), thread_name_prefix="source")
    futures: list[tuple[Source, Future]] = [
        (source, executor.submit(_run_source, source, client, config, query)) for source in sources
    ]
    timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
    try:
        wait([future for _, future in futures], timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for source, future in futures:
        if not future.done():
            message = f"{source.label}: timed out"
            logger.warning("Abandoning source %s after deadline", source.name)
            result.timed_out = True
            result.errors.append(message)
            result.reports.append(SourceReport(name=source.label, count=0, error="timed out"))
            continue
        opportunities, error = future.result()
        result.opportunities.extend(opportunities)
        result.reports.append(SourceReport(name=source.label, count=len(opportunities), error=error))
        if error:
            result.errors.append(f"{source.label}: {error}")

    return result


def _run_source(
    source: Source, client: httpx.Client, config: AppConfig, query: SourceQuery
) -> tuple[list[Opportunity], str | None]:
    started = time.perf_counter()
    try:
        opportunities = source.fetch(client, config, query)
    except Exception as exc:
        logger.warning("Source %s failed: %s", source.name, exc)
        return [], str(exc) or exc.__class__.__name__
    logger.info(
        "Source %s returned %d opportunities in %.0fms",
        source.name,
        len(opportunities),
        (time.perf_counter() - started) * 1000,
    )
    return opportunities, None
