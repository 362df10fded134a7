from __future__ import annotations

import http.client
import threading
import time
import urllib.error
import urllib.request

import pytest
from watchdog.events import DirModifiedEvent, FileClosedEvent, FileCreatedEvent, FileModifiedEvent

from blogbuild.dev import (
    LIVE_RELOAD_SCRIPT,
    ChangeHandler,
    DevRequestHandler,
    Rebuilder,
    ReloadHub,
    inject_reload_script,
    make_server,
)

from conftest import write


def test_inject_reload_script_before_first_body_close():
    html_text = "<html><body><p>x</p></body></html><!-- </body> -->"
    injected = inject_reload_script(html_text)

    assert injected.startswith(f"<html><body><p>x</p>{LIVE_RELOAD_SCRIPT}</body>")
    assert injected.endswith("<!-- </body> -->")
    assert inject_reload_script("<p>fragment</p>") == "<p>fragment</p>"


def test_reload_hub_fans_out_and_closes():
    hub = ReloadHub()
    first = hub.connect()
    second = hub.connect()

    assert hub.notify() == 2
    assert first.get_nowait() == "reload"
    assert second.get_nowait() == "reload"

    hub.disconnect(first)
    assert len(hub) == 1
    hub.close()
    assert second.get_nowait() is None
    assert len(hub) == 0
    assert hub.notify() == 0


def test_rebuilder_debounces_bursts():
    calls = []
    done = threading.Event()

    def build():
        calls.append(time.monotonic())
        done.set()

    rebuilder = Rebuilder(build, quiet=0.05)
    for _ in range(10):
        rebuilder.request()

    assert done.wait(2)
    assert rebuilder.ready.wait(2)
    time.sleep(0.2)
    assert len(calls) == 1


def test_rebuilder_coalesces_changes_during_build():
    calls = []
    started = threading.Event()
    release = threading.Event()

    def build():
        calls.append(len(calls))
        started.set()
        release.wait(2)

    rebuilder = Rebuilder(build)
    worker = threading.Thread(target=rebuilder._fire)
    worker.start()
    assert started.wait(2)
    assert not rebuilder.ready.is_set()

    rebuilder._fire()
    rebuilder._fire()
    release.set()
    worker.join(2)

    assert calls == [0, 1]
    assert rebuilder.ready.is_set()


def test_failed_build_skips_notification(capsys):
    notified = []

    def build():
        raise ValueError("bad template")

    rebuilder = Rebuilder(build, on_success=lambda: notified.append(True))
    rebuilder._fire()

    assert notified == []
    assert rebuilder.ready.is_set()
    captured = capsys.readouterr()
    assert "Build failed" in captured.out
    assert "bad template" in captured.err


def test_successful_build_notifies():
    notified = []
    rebuilder = Rebuilder(lambda: None, on_success=lambda: notified.append(True))
    rebuilder._fire()
    assert notified == [True]


class RecordingRebuilder:
    def __init__(self):
        self.requests = 0

    def request(self):
        self.requests += 1


@pytest.mark.parametrize(
    "event, expected",
    [
        (FileModifiedEvent("/site/src/pages/index.html"), 1),
        (FileCreatedEvent("/site/src/posts/new.md"), 1),
        (DirModifiedEvent("/site/src/pages"), 0),
        (FileModifiedEvent("/site/src/pages/.index.html.swp"), 0),
        (FileModifiedEvent("/site/src/pages/index.html.tmp"), 0),
        (FileClosedEvent("/site/src/pages/index.html"), 0),
    ],
)
def test_change_handler_filters_events(event, expected):
    rebuilder = RecordingRebuilder()
    ChangeHandler(rebuilder).on_any_event(event)
    assert rebuilder.requests == expected


@pytest.fixture
def dev_server(config):
    config.port = 0
    write(config.output_dir, "index.html", "<html><body><p>home</p></body></html>")
    write(config.output_dir, "docs/guide.html", "<html><body><p>guide</p></body></html>")
    write(config.output_dir, "styles/main.css", "body { color: red; }")
    hub = ReloadHub()
    rebuilder = Rebuilder(lambda: None)
    httpd = make_server(config, hub, rebuilder)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    host, port = httpd.server_address[:2]
    yield f"http://{host}:{port}", hub, rebuilder, config
    hub.close()
    httpd.shutdown()
    httpd.server_close()
    thread.join(2)


def fetch(url):
    with urllib.request.urlopen(url, timeout=5) as response:
        return response.status, response.headers, response.read().decode("utf-8")


def test_html_gets_reload_script(dev_server):
    base, _, _, _ = dev_server
    status, headers, body = fetch(base + "/")

    assert status == 200
    assert headers["Content-Type"].startswith("text/html")
    assert "<p>home</p>" in body
    assert "/__reload__" in body

    _, _, guide = fetch(base + "/docs/guide.html")
    assert "EventSource" in guide


def test_static_files_served_untouched(dev_server):
    base, _, _, _ = dev_server
    status, _, body = fetch(base + "/styles/main.css")
    assert status == 200
    assert body == "body { color: red; }"


def test_missing_path_is_404(dev_server):
    base, _, _, config = dev_server
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        fetch(base + "/nope.html")
    assert excinfo.value.code == 404
    assert "404 Not Found" in excinfo.value.read().decode("utf-8")

    write(config.output_dir, "404.html", "<html><body><h1>Lost</h1></body></html>")
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        fetch(base + "/nope.html")
    body = excinfo.value.read().decode("utf-8")
    assert "<h1>Lost</h1>" in body
    assert "EventSource" in body


def test_requests_during_rebuild_get_503(dev_server, monkeypatch):
    base, _, rebuilder, _ = dev_server
    monkeypatch.setattr(DevRequestHandler, "rebuild_wait", 0.1)
    rebuilder.ready.clear()

    with pytest.raises(urllib.error.HTTPError) as excinfo:
        fetch(base + "/")
    assert excinfo.value.code == 503
    assert "rebuilding" in excinfo.value.read().decode("utf-8")

    rebuilder.ready.set()
    assert fetch(base + "/")[0] == 200


def test_reload_stream_delivers_events(dev_server, monkeypatch):
    base, hub, _, _ = dev_server
    monkeypatch.setattr(DevRequestHandler, "keepalive", 0.1)
    host, port = base.removeprefix("http://").split(":")
    conn = http.client.HTTPConnection(host, int(port), timeout=5)
    try:
        conn.request("GET", "/__reload__")
        response = conn.getresponse()
        assert response.status == 200
        assert response.getheader("Content-Type") == "text/event-stream"

        assert response.fp.readline() == b": connected\n"
        assert response.fp.readline() == b"\n"
        assert response.fp.readline() == b": ping\n"
        assert response.fp.readline() == b"\n"

        assert hub.notify() == 1
        line = response.fp.readline()
        while line in (b": ping\n", b"\n"):
            line = response.fp.readline()
        assert line == b"data: reload\n"

        hub.close()
        deadline = time.monotonic() + 2
        while len(hub) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(hub) == 0
    finally:
        conn.close()
