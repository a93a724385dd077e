from __future__ import annotations

import argparse
import asyncio
import logging
import threading
from collections import deque
from concurrent.futures import Future
from textwrap import dedent
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, TypeVar

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .audit import Fetcher, audit_html, audit_url
from .config import Settings, validate_interval, validate_target_url
from .demo import audit_demo
from .errors import FetchError
from .events import Event, EventChannel
from .monitor import ContentMonitor
from .report import render_report
from .scheduler import CrawlScheduler
from .store import JsonFileSessionStore, MemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECENT_EVENTS = 200
MAX_HISTORY_ITEMS = 50


class AgentRuntime:
    """Background event loop hosting the scheduler and the per-URL monitors.

    Flask views run on worker threads; everything that touches a monitor or
    the scheduler is marshalled onto the runtime's own loop thread.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[Fetcher] = None,
        store: Optional[SessionStore] = None,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="seoagent-loop", daemon=True)
        self._thread.start()
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

        self.events = EventChannel()
        self.recent: Deque[Event] = deque(maxlen=RECENT_EVENTS)
        self.events.add_listener(self.recent.append)

        if store is None:
            store = JsonFileSessionStore(settings.store_path) if settings.store_path else MemorySessionStore()
        self.scheduler = CrawlScheduler(fetcher=fetcher, store=store, settings=settings, events=self.events)
        self.monitors: Dict[str, ContentMonitor] = {}

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro: Awaitable[Any]) -> Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._finished)
        return future

    def _finished(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error("Background task failed: %s", future.exception())

    def call(self, fn: Callable[[], T], timeout: Optional[float] = None) -> T:
        async def invoke() -> T:
            return fn()

        return asyncio.run_coroutine_threadsafe(invoke(), self.loop).result(timeout)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted task has finished."""
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout)

    def monitor_for(self, url: str) -> ContentMonitor:
        monitor = self.monitors.get(url)
        if monitor is None:
            monitor = ContentMonitor(fetcher=self.fetcher, settings=self.settings, events=self.events)
            self.monitors[url] = monitor
        return monitor

    def release_monitor(self, url: str) -> Optional[ContentMonitor]:
        """Stop the monitor for ``url`` and forget it."""
        monitor = self.monitors.pop(url, None)
        if monitor is not None:
            monitor.stop()
        return monitor

    def recent_events(self, limit: int = 50, source: Optional[str] = None) -> List[Dict[str, Any]]:
        items = [e for e in list(self.recent) if source is None or e.source == source]
        return [e.to_dict() for e in items[-limit:]]

    def shutdown(self) -> None:
        def stop_all() -> None:
            self.scheduler.stop()
            for monitor in self.monitors.values():
                monitor.stop()

        self.call(stop_all, timeout=5)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)


def _payload() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _int_arg(name: str, default: int, upper: int) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, upper))


def _audit_from_payload(payload: Dict[str, Any], settings: Settings):
    url = str(payload.get("url", "")).strip()
    html = payload.get("html")
    if isinstance(html, str) and html.strip():
        return audit_html(url, html)
    if not url:
        raise ValueError("Missing 'url'")
    return audit_url(validate_target_url(url), settings)


def create_app(settings: Optional[Settings] = None, runtime: Optional[AgentRuntime] = None) -> Flask:
    settings = settings or Settings.from_env()
    runtime = runtime or AgentRuntime(settings)

    app = Flask(__name__)
    app.config["SEOAGENT_RUNTIME"] = runtime

    @app.errorhandler(ValueError)
    def bad_request(exc: ValueError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(FetchError)
    def bad_gateway(exc: FetchError):
        return jsonify({"error": str(exc), "url": exc.url, "status_code": exc.status_code}), 502

    @app.errorhandler(Exception)
    def internal_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error in %s", request.path)
        return jsonify({"error": str(exc)}), 500

    @app.get("/")
    def index() -> Response:
        html = dedent(
            """
            <!doctype html>
            <html lang="en">
            <head>
              <meta charset="utf-8" />
              <meta name="viewport" content="width=device-width, initial-scale=1" />
              <title>SEO Agent</title>
              <style>
                body { margin: 24px; font: 14px/1.45 system-ui, -apple-system, Segoe UI, Roboto, sans-serif; }
                input { width: 420px; padding: 6px; }
                pre { background: #f4f4f5; padding: 12px; overflow: auto; }
              </style>
            </head>
            <body>
              <h1>SEO Agent</h1>
              <form id="f">
                <input id="url" placeholder="https://example.com" />
                <button>Audit</button>
              </form>
              <pre id="out"></pre>
              <script>
                document.getElementById('f').addEventListener('submit', async (e) => {
                  e.preventDefault();
                  const res = await fetch('/api/audit', {
                    method: 'POST',
                    headers: {'Content-Type': 'application/json'},
                    body: JSON.stringify({url: document.getElementById('url').value})
                  });
                  document.getElementById('out').textContent = JSON.stringify(await res.json(), null, 2);
                });
              </script>
            </body>
            </html>
            """
        ).strip()
        return Response(html, mimetype="text/html")

    @app.post("/api/audit")
    def api_audit():
        result = _audit_from_payload(_payload(), settings)
        return jsonify(result.to_dict())

    @app.get("/api/demo")
    def api_demo():
        return jsonify(audit_demo().to_dict())

    @app.post("/api/report")
    def api_report():
        payload = _payload()
        result = _audit_from_payload(payload, settings)
        source = payload.get("source") or (None if result.url else "Pasted HTML")
        return Response(render_report(result, source), mimetype="text/plain")

    @app.get("/api/scheduler")
    def scheduler_status():
        limit = _int_arg("limit", 10, MAX_HISTORY_ITEMS)
        status = runtime.call(runtime.scheduler.status)
        history = runtime.call(lambda: runtime.scheduler.history.entries(limit))
        status["history"] = [entry.to_dict() for entry in history]
        return jsonify(status)

    @app.post("/api/scheduler/start")
    def scheduler_start():
        payload = _payload()
        url = validate_target_url(str(payload.get("url", "")))
        interval = validate_interval(payload.get("interval", settings.scheduler_interval))
        runtime.submit(runtime.scheduler.start(url, interval))
        return jsonify({"started": True, "url": url, "interval": interval}), 202

    @app.post("/api/scheduler/stop")
    def scheduler_stop():
        runtime.call(runtime.scheduler.stop)
        return jsonify(runtime.call(runtime.scheduler.status))

    @app.post("/api/scheduler/run")
    def scheduler_run():
        if not runtime.call(lambda: runtime.scheduler.active):
            return jsonify({"error": "Scheduler is not running"}), 409
        runtime.submit(runtime.scheduler.run_once())
        return jsonify({"queued": True}), 202

    @app.get("/api/monitor")
    def monitor_status():
        statuses = runtime.call(lambda: [m.status() for m in runtime.monitors.values()])
        return jsonify({"monitors": statuses})

    @app.post("/api/monitor/start")
    def monitor_start():
        payload = _payload()
        url = validate_target_url(str(payload.get("url", "")))
        interval = validate_interval(payload.get("interval", settings.monitor_interval))
        monitor = runtime.call(lambda: runtime.monitor_for(url))
        runtime.submit(monitor.start(url, interval))
        return jsonify({"watching": True, "url": url, "interval": interval}), 202

    @app.post("/api/monitor/stop")
    def monitor_stop():
        url = validate_target_url(str(_payload().get("url", "")))
        monitor = runtime.call(lambda: runtime.release_monitor(url))
        if monitor is None:
            return jsonify({"error": f"Not monitoring {url}"}), 404
        return jsonify(runtime.call(monitor.status))

    @app.get("/api/events")
    def api_events():
        limit = _int_arg("limit", 50, RECENT_EVENTS)
        source = request.args.get("source") or None
        return jsonify({"events": runtime.recent_events(limit, source)})

    return app


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the SEO Agent web API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5173)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app()
    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
