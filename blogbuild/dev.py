from __future__ import annotations

import datetime as dt
import functools
import queue
import threading
import time
import traceback
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .cli import run_build
from .config import SiteConfig

RELOAD_PATH = "/__reload__"
DEBOUNCE_SECONDS = 0.15
KEEPALIVE_SECONDS = 30.0
REBUILD_WAIT_SECONDS = 3.0
IGNORED_MARKERS = (".swp", ".tmp")

LIVE_RELOAD_SCRIPT = """
<script>
  (function() {
    var source;
    var attempts = 0;
    var reloading = false;
    function connect() {
      if (reloading || attempts >= 5) return;
      if (source) source.close();
      source = new EventSource('/__reload__');
      source.onopen = function() { attempts = 0; };
      source.onmessage = function() {
        reloading = true;
        source.close();
        location.reload();
      };
      source.onerror = function() {
        if (reloading) return;
        source.close();
        var delay = Math.min(1000 * Math.pow(2, attempts), 10000);
        attempts++;
        setTimeout(connect, delay);
      };
    }
    window.addEventListener('beforeunload', function() { if (source) source.close(); });
    connect();
  })();
</script>
"""


def inject_reload_script(html_text: str) -> str:
    return html_text.replace("</body>", f"{LIVE_RELOAD_SCRIPT}</body>", 1)


def log(message: str) -> None:
    stamp = dt.datetime.now().strftime("%H:%M:%S.%f")[:-3]
    print(f"[{stamp}] {message}", flush=True)


class ReloadHub:
    def __init__(self):
        self._clients: list[queue.Queue] = []
        self._lock = threading.Lock()

    def connect(self) -> queue.Queue:
        channel: queue.Queue = queue.Queue()
        with self._lock:
            self._clients.append(channel)
        return channel

    def disconnect(self, channel: queue.Queue) -> None:
        with self._lock:
            if channel in self._clients:
                self._clients.remove(channel)

    def notify(self) -> int:
        with self._lock:
            clients = list(self._clients)
        for channel in clients:
            channel.put("reload")
        return len(clients)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for channel in clients:
            channel.put(None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)


class Rebuilder:
    # ready is set whenever no build is running
    def __init__(
        self,
        build: Callable[[], object],
        on_success: Optional[Callable[[], object]] = None,
        quiet: float = DEBOUNCE_SECONDS,
    ):
        self.build = build
        self.on_success = on_success
        self.quiet = quiet
        self.ready = threading.Event()
        self.ready.set()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._pending = False

    def request(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.quiet, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            if self._running:
                self._pending = True
                return
            self._running = True
            self.ready.clear()
        while True:
            self._run_once()
            with self._lock:
                if not self._pending:
                    self._running = False
                    self.ready.set()
                    return
                self._pending = False

    def _run_once(self) -> None:
        log("Changes detected, rebuilding...")
        try:
            self.build()
        except Exception:
            log("Build failed; still serving the previous output.")
            traceback.print_exc()
            return
        if self.on_success is not None:
            self.on_success()


class DevRequestHandler(SimpleHTTPRequestHandler):
    hub: ReloadHub
    rebuilder: Rebuilder
    keepalive: float = KEEPALIVE_SECONDS
    rebuild_wait: float = REBUILD_WAIT_SECONDS

    def log_message(self, format: str, *args) -> None:
        log(format % args)

    def do_GET(self) -> None:
        if urlsplit(self.path).path == RELOAD_PATH:
            self.stream_reloads()
            return
        if not self.rebuilder.ready.wait(self.rebuild_wait):
            self.send_plain(HTTPStatus.SERVICE_UNAVAILABLE, "Server is rebuilding, please refresh")
            return
        self.serve_file()

    def send_plain(self, status: HTTPStatus, text: str, content_type: str = "text/plain") -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", f"{content_type}; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def serve_file(self) -> None:
        root = Path(self.directory)
        path = Path(self.translate_path(self.path))
        if path.is_dir():
            path = path / "index.html"
        if not path.is_file():
            not_found = root / "404.html"
            if not_found.is_file():
                html_text = inject_reload_script(not_found.read_text(encoding="utf-8"))
                self.send_plain(HTTPStatus.NOT_FOUND, html_text, "text/html")
            else:
                self.send_plain(HTTPStatus.NOT_FOUND, "<h1>404 Not Found</h1>", "text/html")
            return
        if path.suffix == ".html":
            html_text = inject_reload_script(path.read_text(encoding="utf-8"))
            self.send_plain(HTTPStatus.OK, html_text, "text/html")
            return
        super().do_GET()

    def stream_reloads(self) -> None:
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-cache")
        self.send_header("Connection", "keep-alive")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("X-Accel-Buffering", "no")
        self.end_headers()
        channel = self.hub.connect()
        log(f"SSE: new connection (total: {len(self.hub)})")
        try:
            self.wfile.write(b": connected\n\n")
            self.wfile.flush()
            while True:
                try:
                    message = channel.get(timeout=self.keepalive)
                except queue.Empty:
                    self.wfile.write(b": ping\n\n")
                    self.wfile.flush()
                    continue
                if message is None:
                    break
                self.wfile.write(f"data: {message}\n\n".encode("utf-8"))
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
            pass
        finally:
            self.hub.disconnect(channel)
            self.close_connection = True
            log(f"SSE: connection closed (remaining: {len(self.hub)})")


class ChangeHandler(FileSystemEventHandler):
    def __init__(self, rebuilder: Rebuilder):
        self.rebuilder = rebuilder

    def should_rebuild(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        name = Path(str(event.src_path)).name
        if name.startswith(".") or any(marker in name for marker in IGNORED_MARKERS):
            return False
        return True

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        if self.should_rebuild(event):
            log(f"Changed: {event.src_path}")
            self.rebuilder.request()


def make_server(config: SiteConfig, hub: ReloadHub, rebuilder: Rebuilder) -> ThreadingHTTPServer:
    handler_cls = type(
        "BoundDevRequestHandler",
        (DevRequestHandler,),
        {"hub": hub, "rebuilder": rebuilder},
    )
    handler = functools.partial(handler_cls, directory=str(config.output_dir))
    httpd = ThreadingHTTPServer(("localhost", config.port), handler)
    httpd.daemon_threads = True
    return httpd


def serve(config: SiteConfig) -> None:
    run_build(config)

    hub = ReloadHub()

    def on_success() -> None:
        # let the filesystem settle before browsers ask for the new files
        time.sleep(0.05)
        count = hub.notify()
        log(f"Notified {count} client(s) to reload.")

    rebuilder = Rebuilder(lambda: run_build(config), on_success=on_success)
    observer = Observer()
    observer.schedule(ChangeHandler(rebuilder), str(config.src_dir), recursive=True)
    httpd = make_server(config, hub, rebuilder)

    observer.start()
    print(f"\nDev server running at http://localhost:{config.port}")
    print("Watching for changes. Press Ctrl+C to stop.\n")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down dev server...")
    finally:
        rebuilder.cancel()
        observer.stop()
        observer.join()
        hub.close()
        httpd.server_close()
