from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Sequence

from .foundation.config import FetchConfig, UnifiedConfig
from .runtime.io.audit_fetcher import HttpAuditLogFetcher
from .runtime.sdk import metrics as sdk_metrics
from .runtime.sdk.configuration import get_runtime_config
from .runtime.sdk.coverage import total_duration
from .runtime.sdk.events import EventRecord
from .runtime.sdk.exceptions import QueryDeadlineExceeded, TrailCacheError
from .runtime.sdk.filters import (
    apply_filters,
    ignore_list_filter,
    include_exclude,
    is_forbidden_event,
    region_filter,
    validate_filters,
)
from .runtime.sdk.interval import Interval, tolerance_from_seconds
from .runtime.sdk.orchestrator import QueryOrchestrator
from .runtime.sdk.printer import render_events, render_table, validate_format
from .runtime.sdk.store import IntervalStore
from .runtime.sdk.timerange import parse_start_end_time

logger = logging.getLogger(__name__)

PERMISSION_DENIED_NAMESPACE = "permission-denied"
PERMISSION_DENIED_SINCE = "5m"


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-u", "--url", action="store_true", help="Print console links")
    parser.add_argument(
        "-r", "--raw", "--raw-event", action="store_true", help="Print raw event JSON"
    )
    parser.add_argument(
        "--table", action="store_true", help="Print events as a table"
    )
    parser.add_argument(
        "--print-format", help="Comma-separated columns, e.g. event,time,username"
    )
    parser.add_argument(
        "--deadline", type=float, default=None, help="Query budget in seconds"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trailcache")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-C", "--cluster-id", dest="key", required=True, help="Cache key (cluster ID)"
    )
    common.add_argument("--config", help="Path to trailcache.yml")
    common.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="cmd", required=True)
    p_events = sub.add_parser(
        "write-events",
        parents=[common],
        help="Print write events, fetching only ranges missing from the cache",
    )
    p_events.add_argument("--after", help="Start time (YYYY-MM-DD,HH:MM:SS)")
    p_events.add_argument("--until", help="End time (YYYY-MM-DD,HH:MM:SS)")
    p_events.add_argument("--since", help="Duration of lookup, e.g. 2h or 1d (default 1h)")
    p_events.add_argument(
        "--include", action="append", default=[], help="Keep events matching key=value"
    )
    p_events.add_argument(
        "--exclude", action="append", default=[], help="Drop events matching key=value"
    )
    p_events.add_argument(
        "-A", "--all", action="store_true", help="Do not apply the ignore list"
    )
    p_events.add_argument("--region", help="Keep only events recorded in this region")
    _add_output_args(p_events)

    p_denied = sub.add_parser(
        "permission-denied-events",
        parents=[common],
        help="Print events that failed with an unauthorized-operation error",
    )
    p_denied.add_argument(
        "--since",
        default=PERMISSION_DENIED_SINCE,
        help=f"Duration of lookup ending now (default {PERMISSION_DENIED_SINCE})",
    )
    _add_output_args(p_denied)

    p_coverage = sub.add_parser(
        "coverage", parents=[common], help="Show the time ranges cached for a key"
    )
    p_coverage.add_argument(
        "--permission-denied",
        action="store_true",
        help="Inspect the permission-denied cache instead of write events",
    )
    return parser


def _open_store(cfg: UnifiedConfig, namespace: str | None = None) -> IntervalStore:
    return IntervalStore(
        cfg.cache.cache_dir,
        namespace=namespace or cfg.cache.namespace,
        tolerance=tolerance_from_seconds(cfg.cache.adjacency_tolerance_seconds),
    )


def _missing_base_url(cfg: UnifiedConfig) -> bool:
    if cfg.fetch.base_url:
        return False
    print(
        "error: fetch.base_url is not configured (set TRAILCACHE_FETCH_URL)",
        file=sys.stderr,
    )
    return True


def _output_fields(args: argparse.Namespace) -> list[str] | None:
    return validate_format(args.print_format.split(",")) if args.print_format else None


async def _query(
    args: argparse.Namespace,
    store: IntervalStore,
    fetch_cfg: FetchConfig,
    interval: Interval,
) -> list[EventRecord]:
    async with HttpAuditLogFetcher(fetch_cfg) as fetcher:
        orchestrator = QueryOrchestrator(store, fetcher, store.tolerance)
        try:
            return await orchestrator.query(args.key, interval, deadline_s=args.deadline)
        except QueryDeadlineExceeded as exc:
            logger.warning("%s; printing %d event(s) gathered so far", exc, len(exc.events))
            return exc.events


def _print_events(
    events: Sequence[EventRecord],
    args: argparse.Namespace,
    fields: Sequence[str] | None,
) -> None:
    if args.table and not args.raw:
        print(render_table(events, fields))
        return
    for line in render_events(events, fields, print_url=args.url, raw=args.raw):
        print(line)


async def _write_events(args: argparse.Namespace, cfg: UnifiedConfig) -> int:
    if _missing_base_url(cfg):
        return 2
    interval = parse_start_end_time(args.after, args.until, args.since)
    include = [*cfg.filters.include, *args.include]
    exclude = [*cfg.filters.exclude, *args.exclude]
    validate_filters([*include, *exclude])
    fields = _output_fields(args)

    logger.info("checking write events for %s in %s", args.key, interval)
    events = await _query(args, _open_store(cfg), cfg.fetch, interval)

    predicates = []
    if not args.all and cfg.filters.ignore_patterns:
        predicates.append(ignore_list_filter(cfg.filters.ignore_patterns))
    if args.region:
        predicates.append(region_filter(args.region))
    events = include_exclude(apply_filters(events, *predicates), include, exclude)

    _print_events(events, args, fields)
    return 0


async def _permission_denied_events(args: argparse.Namespace, cfg: UnifiedConfig) -> int:
    if _missing_base_url(cfg):
        return 2
    interval = parse_start_end_time(None, None, args.since)
    fields = _output_fields(args)

    logger.info("checking permission denied events for %s in %s", args.key, interval)
    fetch_cfg = dataclasses.replace(cfg.fetch, write_only=False)
    store = _open_store(cfg, PERMISSION_DENIED_NAMESPACE)
    events = apply_filters(await _query(args, store, fetch_cfg, interval), is_forbidden_event)

    _print_events(events, args, fields)
    return 0


def _coverage(args: argparse.Namespace, cfg: UnifiedConfig) -> int:
    namespace = PERMISSION_DENIED_NAMESPACE if args.permission_denied else None
    store = _open_store(cfg, namespace).load(args.key)
    for interval in store.coverage:
        print(interval)
    print(
        f"{len(store.coverage)} interval(s), {total_duration(store.coverage.intervals)} "
        f"covered, {len(store.events)} event(s) cached"
    )
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        cfg = get_runtime_config(args.config)
    except (OSError, TypeError, ValueError) as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 2

    if cfg.telemetry.prometheus_port:
        sdk_metrics.start_metrics_server(cfg.telemetry.prometheus_port)

    try:
        if args.cmd == "write-events":
            return asyncio.run(_write_events(args, cfg))
        if args.cmd == "permission-denied-events":
            return asyncio.run(_permission_denied_events(args, cfg))
        return _coverage(args, cfg)
    except TrailCacheError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
