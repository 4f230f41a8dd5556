"""Watch mode and development server for Inkwell.

Serves the publish directory while watching the site tree:
- Writes and creates rebuild the site; renames are only logged.
- Changes inside the configuration directory rebuild the whole tree, other
  changes rebuild just the changed entry and re-run the render pass.
- HEAD and GET responses are emitted under the builder's lock, so a page is
  never served while the build is rewriting it.
- A reload script is injected into HTML responses; a websocket broadcast
  tells open pages to reload after each rebuild.

Key classes:
- DevServer: Runs the HTTP server, the websocket server and the watcher.
- _ReloadHandler: HTTP request handler with locking and script injection.
- _ChangeHandler: File system event handler driving rebuilds.
"""

from __future__ import annotations

import asyncio
import email.utils
import functools
import json
import threading
import time
import webbrowser
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import click
import websockets
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import Builder
from .errors import report_error
from .utils import is_within


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that serializes reads against the builder.

    Attributes:
        lock: Shared with the builder; held while a response is emitted.
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=8081)
    lock: threading.RLock = threading.RLock()

    def do_GET(self):
        with self.lock:
            super().do_GET()

    def do_HEAD(self):
        with self.lock:
            super().do_HEAD()

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):  # pragma: no cover - console noise
        pass

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                self.send_error(404, "File not found")
                return None
            path_obj = index_path
        elif not path_obj.exists():
            self.send_error(404, "File not found")
            return None

        if path_obj.suffix in (".html", ".htm"):
            content = path_obj.read_text(encoding="utf-8")
            if "</body>" in content:
                content = content.replace("</body>", f"{self.reload_script}</body>")
            else:
                content += self.reload_script
            encoded = content.encode("utf-8")
            mtime = path_obj.stat().st_mtime
            self.send_response(200)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.send_header("Last-Modified", email.utils.formatdate(mtime, usegmt=True))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(encoded)
            return None
        return super().send_head()


class DevServer:
    """Development server with rebuild-on-change and live reload.

    Attributes:
        builder: Builder whose publish directory is served.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
        open_browser: Open the site in a browser once serving.
    """

    def __init__(
        self,
        builder: Builder,
        http_port: int = 8080,
        ws_port: int | None = None,
        open_browser: bool = True,
    ):
        self.builder = builder
        self.http_port = http_port
        self.ws_port = ws_port if ws_port is not None else http_port + 1
        self.open_browser = open_browser
        self._reload_script = _ReloadHandler.reload_script_template.format(
            ws_port=self.ws_port
        )
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()

    def start(self) -> None:  # pragma: no cover - integration path
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        if self.open_browser:
            url = f"http://localhost:{self.http_port}"
            threading.Timer(1.0, webbrowser.open, args=(url,)).start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def handler_factory(self):
        """Request handler bound to this site's publish dir, lock and reload port."""
        handler_cls = type(
            "_ReloadHandlerForSite",
            (_ReloadHandler,),
            {"reload_script": self._reload_script, "lock": self.builder.lock},
        )
        return functools.partial(handler_cls, directory=str(self.builder.pub_dir))

    def _start_http(self) -> None:  # pragma: no cover - integration path
        httpd = ThreadingHTTPServer(("", self.http_port), self.handler_factory())
        click.echo(f"serving {self.builder.pub_dir} on port {self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            click.echo(f"WebSocket server failed to start (port {self.ws_port}): {exc}")

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self) -> None:
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str) -> None:
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self) -> None:
        observer = Observer()
        observer.schedule(_ChangeHandler(self), str(self.builder.site_root), recursive=True)
        observer.start()
        self._observer = observer

    def rebuild(self, path: Path) -> None:
        """Rebuild after path was written or created."""
        builder = self.builder
        try:
            if is_within(path, builder.conf_dir):
                builder.build_all()
            else:
                builder.build_path(path)
        except Exception as exc:
            # the watcher thread must outlive a failed rebuild
            report_error(exc, builder.color)
            return
        self._broadcast_reload()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def _ignored(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return True
        return is_within(Path(event.src_path), self.server.builder.pub_dir)

    def on_created(self, event: FileSystemEvent) -> None:
        if not self._ignored(event):
            click.echo(f"CREATE {event.src_path}")
            self.server.rebuild(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not self._ignored(event):
            click.echo(f"WRITE {event.src_path}")
            self.server.rebuild(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not self._ignored(event):
            click.echo(f"RENAME {event.src_path} -> {event.dest_path}")
