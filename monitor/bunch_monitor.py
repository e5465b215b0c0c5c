"""
Bus Bunching Monitor

Polls a GTFS-RT vehicle positions feed every REFRESH_INTERVAL seconds,
groups buses by route and flags pairs closer than BUNCHING_THRESHOLD_KM.

The latest result is served as JSON for the map front end:

    GET  /health         status + refresh stats
    GET  /api/buses      latest buses and bunching alerts
    GET  /api/bunching   latest bunching alerts only
    POST /api/refresh    run a tick now (409 if one is already running,
                         502 if the feed failed)
"""

import json
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from dotenv import load_dotenv

from feed_source import build_feed_source
from monitor_config import MonitorConfig
from refresh import RefreshController, TickStatus

logger = logging.getLogger(__name__)


def make_handler(controller: RefreshController, started_at: float):
    """Build a request handler class bound to one controller."""

    class _MonitorHandler(BaseHTTPRequestHandler):
        """JSON status/API handler. Reads controller.state, never mutates it."""

        def _send_json(self, status: int, payload: dict):
            body = json.dumps(payload).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            path = urlsplit(self.path).path
            if path == "/health" or path == "/":
                self._send_json(200, {
                    "status": "ok",
                    "uptime_hours": round((time.time() - started_at) / 3600, 2),
                    "stats": controller.stats_snapshot(),
                })
            elif path == "/api/buses":
                self._send_json(200, controller.state.to_dict())
            elif path == "/api/bunching":
                payload = controller.state.to_dict()
                self._send_json(200, {
                    "refreshedAt": payload["refreshedAt"],
                    "alertCount": payload["alertCount"],
                    "alerts": payload["alerts"],
                })
            else:
                self._send_json(404, {"error": "not found"})

        def do_POST(self):
            if urlsplit(self.path).path != "/api/refresh":
                self._send_json(404, {"error": "not found"})
                return
            try:
                outcome = controller.tick()
            except Exception as e:
                logger.exception("Manual refresh failed")
                self._send_json(500, {"refreshed": False, "error": f"{type(e).__name__}: {e}"})
                return

            if outcome.status is TickStatus.PUBLISHED:
                state = controller.state
                self._send_json(200, {
                    "refreshed": True,
                    "refreshedAt": state.refreshed_at.isoformat(),
                    "busCount": len(state.reports),
                    "alertCount": state.alert_count,
                })
            elif outcome.status is TickStatus.SKIPPED:
                self._send_json(409, {"refreshed": False, "error": "refresh already in progress"})
            else:
                self._send_json(502, {"refreshed": False, "error": outcome.error})

        def log_message(self, format, *args):
            pass  # suppress default access logs

    return _MonitorHandler


def start_http_server(controller: RefreshController, port: int, host: str = "0.0.0.0"):
    """Launch the status/API server in a daemon thread. Returns the server or None."""
    try:
        server = ThreadingHTTPServer((host, port), make_handler(controller, time.time()))
    except OSError as e:
        logger.warning(f"HTTP server failed to start on :{port}: {e}")
        return None
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"HTTP server: ✓ listening on :{server.server_address[1]}")
    return server


def run_monitor(config: MonitorConfig = None):
    """Main entry: configure, start the HTTP server, run the refresh loop."""
    config = config or MonitorConfig.from_env()

    logger.info("=" * 60)
    logger.info("BUS BUNCHING MONITOR")
    logger.info("=" * 60)
    logger.info(f"Feed: {config.feed_file or config.feed_url}")
    logger.info(f"Refresh Interval: {config.refresh_interval}s")
    logger.info(f"Bunching Threshold: {config.threshold_km} km")

    if not config.feed_file and not config.api_key:
        logger.error("TFN_API_KEY not set (and no FEED_FILE)! Exiting.")
        return

    controller = RefreshController(
        build_feed_source(config),
        threshold_km=config.threshold_km,
        interval_sec=config.refresh_interval,
    )
    server = start_http_server(controller, config.port)
    try:
        controller.run()
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()


def main():
    load_dotenv()
    config = MonitorConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    run_monitor(config)


if __name__ == '__main__':
    main()
