"""Development server for SideGen.

Serves the built site with live reload for local authoring:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Exposes ``/_dev/status`` and ``/_dev/rebuild`` endpoints.
- Watches source folders and hands changes to the BuildOrchestrator.

Key classes:
- DevServer: Main class for running the development server.
- WebSocketBroadcaster: Tracks live-reload clients and fans messages out.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _ChangeHandler: File system event handler feeding the orchestrator.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import threading
import time
import webbrowser
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildResult, build_site
from .config import CONFIG_FILENAMES, load_config
from .orchestrator import BuildOrchestrator

logger = logging.getLogger(__name__)

IGNORED_PARTS = {"node_modules", ".git", "__pycache__"}
WATCHED_DIR_KEYS = ("input_dir", "templates_dir", "themes_dir", "assets_dir", "public_dir")
STATUS_PATH = "/_dev/status"
REBUILD_PATH = "/_dev/rebuild"
REBUILD_TIMEOUT = 300

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') {{
      location.reload();
    }} else if (data.type === 'error') {{
      console.error('[sidegen] Build failed:', data.message);
      let overlay = document.getElementById('sidegen-error-overlay');
      if (!overlay) {{
        overlay = document.createElement('pre');
        overlay.id = 'sidegen-error-overlay';
        overlay.style.cssText = 'position:fixed;inset:auto 1rem 1rem 1rem;padding:1rem;' +
          'background:#b91c1c;color:#fff;z-index:9999;white-space:pre-wrap;font-size:13px;';
        document.body.appendChild(overlay);
      }}
      overlay.textContent = 'Build failed: ' + data.message;
    }}
  }};
}})();
</script>
"""


class WebSocketBroadcaster:
    """Keeps the set of connected live-reload clients."""

    def __init__(self) -> None:
        self.clients: set = set()

    async def handler(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send ``message`` as JSON to every client, dropping clients that fail."""
        payload = json.dumps(message)
        stale = set()
        for ws in list(self.clients):
            try:
                await ws.send(payload)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self.clients.discard(ws)


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects the live reload script into HTML pages.

    Attributes:
        reload_script: Script appended before ``</body>`` (empty disables it).
        dev_server: DevServer answering the ``/_dev`` endpoints.
    """

    reload_script = ""
    dev_server: DevServer | None = None

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        route = urlsplit(self.path).path
        if route == STATUS_PATH:
            return self._send_json(self.dev_server.status() if self.dev_server else {})
        if route == REBUILD_PATH:
            if self.dev_server is None:
                return self._send_json({"success": False, "error": "No server"}, 503)
            return self._send_json(self.dev_server.request_rebuild())
        return super().do_GET()

    def _send_json(self, payload: dict[str, Any], status: int = 200) -> None:
        encoded = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _inject(self, content: str) -> str:
        if not self.reload_script:
            return content
        if "</body>" in content:
            return content.replace("</body>", f"{self.reload_script}</body>")
        return content + self.reload_script

    def _send_html(self, content: str, status: int) -> None:
        encoded = self._inject(content).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with the reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(error_page.read_text(encoding="utf-8"), 404)
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(path_obj.read_text(encoding="utf-8"), 200)
            return None
        return super().send_head()


class DevServer:
    """Development server with live reload.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration (reloaded on every rebuild).
        output_dir: Directory served over HTTP.
        host: Interface the HTTP and WebSocket servers bind to.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
        include_drafts: Draft override passed to every build.
        orchestrator: Rebuild state machine.
        broadcaster: Live-reload client registry.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        include_drafts: bool | None = None,
        config_path: Path | None = None,
    ):
        self.project_root = Path(project_root).resolve()
        self.config_path = config_path
        self.config = load_config(self.project_root, config_path)
        dev_config = self.config.get("dev_server") or {}
        self.output_dir = Path(self.config["output_dir"])
        self.host = dev_config.get("host") or "localhost"
        self.http_port = int(http_port or dev_config.get("port") or 3000)
        self.ws_port = int(ws_port or dev_config.get("ws_port") or self.http_port + 1)
        self.livereload = bool(dev_config.get("livereload", True))
        self.open_browser = bool(dev_config.get("open", False))
        self.include_drafts = include_drafts
        self._reload_script = (
            RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port) if self.livereload else ""
        )
        self._loop = asyncio.new_event_loop()
        self.broadcaster = WebSocketBroadcaster()
        self.orchestrator = BuildOrchestrator(
            self.build, broadcaster=self.broadcaster, loop=self._loop
        )
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None

    def build(self) -> BuildResult:
        """Reload the configuration and run a full build."""
        config = load_config(self.project_root, self.config_path)
        self.config = config
        return build_site(config, include_drafts=self.include_drafts)

    def status(self) -> dict[str, Any]:
        return {
            "status": self.orchestrator.state.value,
            "building": self.orchestrator.building,
            "title": self.config.get("title"),
            "last_error": self.orchestrator.last_error,
        }

    def request_rebuild(self) -> dict[str, Any]:
        """Run one rebuild on the server loop and wait for it (HTTP threads)."""
        future = asyncio.run_coroutine_threadsafe(self.orchestrator.rebuild(), self._loop)
        result = future.result(timeout=REBUILD_TIMEOUT)
        if self.orchestrator.last_error is not None:
            return {"success": False, "rebuilt": False, "error": self.orchestrator.last_error}
        return {"success": True, "rebuilt": result is not None}

    def make_handler(self):
        handler_cls = type(
            "_DevReloadHandler",
            (_ReloadHandler,),
            {"reload_script": self._reload_script, "dev_server": self},
        )
        return functools.partial(handler_cls, directory=str(self.output_dir))

    def start(self) -> None:  # pragma: no cover - integration path
        threading.Thread(target=self._run_loop, daemon=True).start()
        self.request_rebuild()
        threading.Thread(target=self._start_http, daemon=True).start()
        self._start_watcher()
        url = f"http://{self.host}:{self.http_port}"
        if self.open_browser:
            webbrowser.open(url)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.shutdown()
            self._httpd = None
        self._loop.call_soon_threadsafe(self.orchestrator.cancel)
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _run_loop(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        if self.livereload:
            self._loop.create_task(self._run_ws_server())
        self._loop.run_forever()

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        try:
            async with websockets.serve(self.broadcaster.handler, self.host, self.ws_port):
                await asyncio.Future()
        except OSError as exc:
            logger.error("WebSocket server failed to start (port %s): %s", self.ws_port, exc)

    def _start_http(self) -> None:  # pragma: no cover - integration path
        self._httpd = ThreadingHTTPServer((self.host, self.http_port), self.make_handler())
        logger.info("Serving %s at http://%s:%s", self.output_dir, self.host, self.http_port)
        self._httpd.serve_forever()

    def watch_paths(self) -> list[Path]:
        """Existing source directories to watch recursively."""
        paths = []
        for key in WATCHED_DIR_KEYS:
            path = Path(self.config[key])
            if path.is_dir() and path not in paths:
                paths.append(path)
        return paths

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for path in self.watch_paths():
            observer.schedule(handler, str(path), recursive=True)
        # Config files live at the project root.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def should_rebuild(self, path: Path) -> bool:
        """Decide whether a changed path affects the build."""
        if IGNORED_PARTS.intersection(path.parts):
            return False
        try:
            path.relative_to(self.output_dir)
            return False
        except ValueError:
            pass
        if path.parent == self.project_root:
            return path.name in CONFIG_FILENAMES
        return True


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if not self.server.should_rebuild(path):
            return
        self.server.orchestrator.notify_change_threadsafe(path)
