from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .audit import AuditResult, audit_html, audit_url
from .config import Settings
from .demo import DEMO_SOURCE, audit_demo
from .errors import ConfigError, FetchError
from .events import Event
from .monitor import ContentMonitor
from .report import render_report
from .scheduler import CrawlScheduler, RunEntry
from .store import JsonFileSessionStore
from .utils import normalize_url

REPORT_NAME = "seo-audit-report.txt"
FINAL_RUN_EVENTS = {"completed", "error"}
CHECK_EVENTS = {"baseline", "no-change", "change", "error"}


def print_audit(result: AuditResult) -> None:
    snap = result.snapshot
    print(f"SEO Health Score: {result.score}/100")
    print(f"URL: {result.url}")
    print(f"  Title: {snap.title or '(missing)'}")
    print(f"  Description: {snap.description or '(missing)'}")
    print(f"  Canonical: {snap.canonical or '(missing)'}")
    print(f"  Word count: {snap.word_count}")
    print(
        f"  Issues: {len(result.issues)} "
        f"({result.auto_fix_count} auto-fix, {result.escalate_count} escalate)"
    )
    for issue in result.issues:
        print(f"    - [{issue.severity.value}] {issue.rule} -> {issue.action.value}")

    tags = result.tags
    print("\nGenerated tags:")
    print(f"  Title: {tags.title}")
    print(f"  Description: {tags.description}")
    print(f"  Keywords: {', '.join(tags.keywords) or '(none)'}")
    if tags.tips:
        print("\nRanking tips:")
        for tip in tags.tips:
            print(f"  - [{tip.priority}] {tip.message}")


def print_run(entry: RunEntry) -> None:
    print(
        f"Run #{entry.id} {entry.timestamp}: {entry.pages_audited} page(s), "
        f"avg score {entry.avg_score}/100, {entry.total_issues} issues "
        f"({entry.auto_fixed} auto-fix, {entry.escalated} escalate) in {entry.elapsed}s"
    )
    for page in entry.pages:
        print(f"  {page.score:>3}/100  {page.url}")


def print_event(event: Event) -> None:
    data = event.to_dict()["data"]
    if event.kind == "change":
        kinds = ", ".join(d["type"] for d in data["diff"])
        print(f"[change] {event.source}: {kinds} (new score {data['audit']['score']}/100)")
    elif event.kind == "error":
        print(f"[error] {event.source}: {data.get('error')}", file=sys.stderr)
    else:
        detail = ", ".join(f"{k}={v}" for k, v in data.items() if k not in {"entry", "audit"})
        print(f"[{event.kind}] {event.source} {detail}".rstrip())


async def crawl(
    url: str, settings: Settings, interval: float, runs: int, quiet: bool = False
) -> Optional[RunEntry]:
    store = JsonFileSessionStore(settings.store_path) if settings.store_path else None
    scheduler = CrawlScheduler(store=store, settings=settings)
    queue = scheduler.events.subscribe()
    last: Optional[RunEntry] = None
    finished = 0
    try:
        await scheduler.start(url, interval)
        while True:
            event = await queue.get()
            if event.kind == "completed":
                last = event.data["entry"]
                if not quiet:
                    print_run(last)
            elif event.kind == "error":
                print_event(event)
            if event.kind in FINAL_RUN_EVENTS:
                finished += 1
                if finished >= runs:
                    break
    finally:
        scheduler.stop()
    return last


async def watch(url: str, settings: Settings, interval: float, checks: Optional[int]) -> int:
    monitor = ContentMonitor(settings=settings)
    queue = monitor.events.subscribe()
    done = 0
    try:
        await monitor.start(url, interval)
        while checks is None or done < checks:
            event = await queue.get()
            print_event(event)
            if event.kind in CHECK_EVENTS:
                done += 1
    finally:
        monitor.stop()
    return monitor.changes_detected


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="seo-agent",
        description="Audit pages for on-page SEO, generate optimized tags, crawl and watch sites.",
    )
    parser.add_argument("url", nargs="?", help="Page URL to audit (e.g., https://example.com)")
    parser.add_argument("--demo", action="store_true", help=f"Audit the bundled sample page as {DEMO_SOURCE}")
    parser.add_argument("--html-file", help="Audit this local HTML file instead of fetching the URL")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output JSON to stdout")
    parser.add_argument("--save-report", action="store_true", help=f"Write {REPORT_NAME} to the output directory")
    parser.add_argument("--out-dir", default=".", help="Directory to write outputs (default: current directory)")
    parser.add_argument("--crawl", action="store_true", help="Audit the page and up to 9 same-site pages it links to")
    parser.add_argument("--runs", type=int, default=1, help="Number of scheduled crawl runs (default: 1)")
    parser.add_argument("--watch", action="store_true", help="Watch the page for content changes")
    parser.add_argument("--checks", type=int, default=None, help="Stop watching after N checks (default: forever)")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between crawl runs or watch checks")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)
    if not args.url and not args.demo:
        parser.error("a URL is required unless --demo is given")
    if args.demo and (args.crawl or args.watch):
        parser.error("--demo cannot be combined with --crawl or --watch")

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env()
        if args.watch:
            interval = args.interval or settings.monitor_interval
            changes = asyncio.run(watch(args.url, settings, interval, args.checks))
            print(f"Changes detected: {changes}")
            return 0

        if args.crawl:
            interval = args.interval or settings.scheduler_interval
            entry = asyncio.run(crawl(args.url, settings, interval, max(1, args.runs), quiet=args.as_json))
            if entry is None:
                return 1
            if args.as_json:
                print(json.dumps(entry.to_dict(), indent=2))
            return 0

        if args.demo:
            result = audit_demo()
        elif args.html_file:
            html = Path(args.html_file).read_text(encoding="utf-8", errors="replace")
            result = audit_html(normalize_url(args.url), html)
        else:
            result = audit_url(args.url, settings)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except FetchError as exc:
        print(f"Could not fetch {exc.url}: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130

    if args.save_report:
        out_dir = Path(args.out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / REPORT_NAME).write_text(render_report(result), encoding="utf-8")

    if args.as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    print_audit(result)
    if args.save_report:
        print("\nSaved report to:", str(Path(args.out_dir) / REPORT_NAME))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
