from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import os
import signal
import sys
from socketserver import ThreadingMixIn
from threading import Thread
from typing import Any, Coroutine, Optional
from urllib.parse import parse_qs
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import click
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

from .config import find_config_file, load_config_file, parse_listen_address, to_exporter_config
from .const import EXPORTER_VERSION
from .exceptions import AuthError, ConfigError, RemoteAPIError, ShapeMismatchError
from .service import NestService

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    allow_reuse_address = True


class QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        return


class LoopThread:
    """Run an asyncio event loop on a daemon thread for the WSGI workers."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = Thread(target=self._run, name="nest-exporter-loop", daemon=True)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> None:
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return fut.result(timeout)
        except concurrent.futures.TimeoutError:
            fut.cancel()
            raise

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5.0)
        if not self.loop.is_running():
            self.loop.close()


class ExporterCollector:
    def __init__(self, service: NestService) -> None:
        self.service = service

    def collect(self):
        svc = self.service
        scrapes = CounterMetricFamily("nest_exporter_scrapes_total", "Total /devices scrapes.")
        errors = CounterMetricFamily("nest_exporter_scrape_errors_total", "Total /devices scrapes that failed.")
        duration = GaugeMetricFamily("nest_exporter_last_scrape_duration_seconds", "Duration of the last /devices scrape.")
        refreshes = CounterMetricFamily("nest_exporter_token_refreshes_total", "Successful access token refreshes.")
        token_valid = GaugeMetricFamily("nest_exporter_token_valid", "Whether an access token is held (1) or not (0).")
        build = GaugeMetricFamily("nest_exporter_build_info", "Exporter build information.", labels=["version", "python"])

        with svc.lock:
            scrapes.add_metric([], float(svc.scrapes_total))
            errors.add_metric([], float(svc.scrape_errors_total))
            duration.add_metric([], float(svc.last_scrape_duration))

        cache = svc.token_cache
        refreshes.add_metric([], float(cache.refreshes_total) if cache is not None else 0.0)
        token_valid.add_metric([], 1.0 if svc.is_ready() else 0.0)
        build.add_metric([EXPORTER_VERSION, sys.version.split()[0]], 1.0)

        yield scrapes
        yield errors
        yield duration
        yield refreshes
        yield token_valid
        yield build


def setup_logging(level: str) -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format="%(asctime)s %(levelname)s %(message)s")


def _text(start_response, status: str, body: str, content_type: str = "text/plain; charset=utf-8"):
    start_response(status, [("Content-Type", content_type)])
    return [body.encode("utf-8")]


def make_app(registry: CollectorRegistry, service: NestService, runner: LoopThread, scrape_timeout: float):
    def app(environ, start_response):
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "")
        query = environ.get("QUERY_STRING", "")
        logger.info("%s %s%s", method, path, f"?{query}" if query else "")

        if path == "/devices":
            target = parse_qs(query).get("target", [""])[0].strip()
            if not target:
                return _text(start_response, "400 Bad Request", "target parameter required")
            try:
                body = runner.run(service.scrape(target), timeout=scrape_timeout)
            except AuthError as e:
                logger.error("scrape target=%s failed: no access token: %s", target, e)
                return _text(start_response, "503 Service Unavailable", f"authentication failed: {e}")
            except (RemoteAPIError, ShapeMismatchError) as e:
                logger.error("scrape target=%s failed: %s", target, e)
                return _text(start_response, "502 Bad Gateway", f"upstream error: {e}")
            except concurrent.futures.TimeoutError:
                logger.error("scrape target=%s timed out after %.1fs", target, scrape_timeout)
                return _text(start_response, "504 Gateway Timeout", "scrape timed out")
            except Exception:
                logger.exception("scrape target=%s failed", target)
                return _text(start_response, "500 Internal Server Error", "internal error")
            return _text(start_response, "200 OK", body, CONTENT_TYPE_LATEST)

        if path == "/metrics":
            output = generate_latest(registry)
            start_response("200 OK", [("Content-Type", CONTENT_TYPE_LATEST)])
            return [output]

        if path in ("/-/healthy", "/healthz"):
            return _text(start_response, "200 OK", "ok")

        if path in ("/-/ready", "/readyz"):
            if service.is_ready():
                return _text(start_response, "200 OK", "ready")
            return _text(start_response, "503 Service Unavailable", "not_ready")

        return _text(start_response, "404 Not Found", "not found")

    return app


@click.command()
@click.argument("config", required=False)
@click.option("--config.file", "config_file", default=None, help="Path to the YAML or JSON config file.")
@click.option("--web.listen-address", "web_listen_address", default=None, help="Address to listen on, e.g. :9896.")
@click.option(
    "--log.level",
    "log_level",
    default=lambda: os.environ.get("LOG_LEVEL", "INFO"),
    help="Log level (DEBUG, INFO, WARNING, ERROR).",
)
def main(config, config_file, web_listen_address, log_level):
    setup_logging(log_level)

    cfg_path = find_config_file(config or config_file)
    if not cfg_path:
        raise SystemExit(
            "missing config file: pass PATH or --config.file=PATH, set NEST_EXPORTER_CONFIG=PATH, "
            "or place config.yml in the current directory or /config/config.yml"
        )

    try:
        exporter_cfg = to_exporter_config(load_config_file(cfg_path))
    except (ConfigError, OSError, ValueError) as e:
        logger.error("config_file=%s: %s", cfg_path, e)
        sys.exit(2)
    logger.info("config_file=%s", cfg_path)

    listen = web_listen_address or exporter_cfg.listen_address
    host, port = parse_listen_address(listen)
    # one token request plus one device request
    scrape_timeout = 2.0 * exporter_cfg.timeout_seconds + 5.0

    runner = LoopThread()
    runner.start()
    service = NestService(exporter_cfg)
    try:
        runner.run(service.start())
    except AuthError as e:
        logger.error("could not obtain an access token: %s", e.payload or e)
        runner.run(service.close())
        runner.stop()
        sys.exit(1)

    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    registry.register(ExporterCollector(service))

    app = make_app(registry, service, runner, scrape_timeout)
    httpd = make_server(
        host,
        port,
        app,
        server_class=ThreadingWSGIServer,
        handler_class=QuietHandler,
    )

    def _sig(*_):
        Thread(target=httpd.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _sig)
    signal.signal(signal.SIGINT, _sig)

    logger.info(
        "listening=%s:%s project=%s timeout=%.1fs refresh_margin=%.0fs",
        host if host else "0.0.0.0",
        port,
        exporter_cfg.device_access.project_id,
        exporter_cfg.timeout_seconds,
        exporter_cfg.refresh_margin_seconds,
    )
    try:
        httpd.serve_forever()
    finally:
        runner.run(service.close(), timeout=10.0)
        runner.stop()
        httpd.server_close()


if __name__ == "__main__":
    main()
