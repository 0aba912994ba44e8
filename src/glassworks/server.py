"""Preview HTTP server and live-reload channel."""

from __future__ import annotations

import asyncio
import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse
from loguru import logger

from .errors import ExternalToolFailure

LIVERELOAD_PROTOCOL = "http://livereload.com/protocols/official-7"

_SNIPPET = (
    "<script>(function(){{"
    "var ws=new WebSocket('ws://'+location.hostname+':{port}/livereload');"
    "ws.onopen=function(){{ws.send(JSON.stringify({{command:'hello',protocols:['{protocol}']}}));}};"
    "ws.onmessage=function(event){{var msg=JSON.parse(event.data);"
    "if(msg.command==='reload'){{location.reload();}}}};"
    "}})();</script>"
)


def livereload_snippet(port: int) -> str:
    return _SNIPPET.format(port=port, protocol=LIVERELOAD_PROTOCOL)


def inject_snippet(html: str, port: int) -> str:
    """Insert the live-reload client before ``</body>``, or append it."""

    snippet = livereload_snippet(port)
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + snippet
    return html[:index] + snippet + html[index:]


class LiveReloadHub:
    """Connected live-reload clients and the loop serving them."""

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._clients.add(websocket)
        logger.debug("Live reload client connected")
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    continue
                if isinstance(message, dict) and message.get("command") == "hello":
                    await websocket.send_json(
                        {
                            "command": "hello",
                            "protocols": [LIVERELOAD_PROTOCOL],
                            "serverName": "glassworks",
                        }
                    )
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.discard(websocket)
            logger.debug("Live reload client disconnected")

    async def broadcast(self, paths: Iterable[str]) -> int:
        delivered = 0
        for client in list(self._clients):
            try:
                for path in paths:
                    await client.send_json({"command": "reload", "path": path, "liveCSS": True})
            except (WebSocketDisconnect, RuntimeError):
                self._clients.discard(client)
            else:
                delivered += 1
        return delivered

    def notify(self, paths: Iterable[str], timeout: float = 5.0) -> int:
        """Send a reload to every client from any thread; return clients reached."""

        paths = list(paths)
        if self._loop is None or not self._clients:
            return 0
        future = asyncio.run_coroutine_threadsafe(self.broadcast(paths), self._loop)
        delivered = future.result(timeout=timeout)
        logger.info("Live reload sent to {} client(s): {}", delivered, ", ".join(paths))
        return delivered


def create_livereload_app(hub: LiveReloadHub) -> FastAPI:
    app = FastAPI(title="glassworks livereload")

    @app.websocket("/livereload")
    async def livereload(websocket: WebSocket) -> None:
        await hub.serve(websocket)

    @app.get("/")
    async def status() -> Dict[str, Any]:
        return {"tinylr": "Welcome", "clients": hub.client_count}

    return app


def create_preview_app(base: Path, livereload_port: Optional[int] = None) -> FastAPI:
    """Serve files under ``base``, injecting the live-reload client into HTML."""

    app = FastAPI(title="glassworks preview")
    base = base.resolve()

    @app.get("/{path:path}")
    async def serve_file(path: str):
        target = (base / path).resolve()
        if not target.is_relative_to(base):
            raise HTTPException(status_code=404, detail="Not found")
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            raise HTTPException(status_code=404, detail="Not found")
        if livereload_port and target.suffix.lower() in (".html", ".htm"):
            return HTMLResponse(inject_snippet(target.read_text(encoding="utf-8"), livereload_port))
        return FileResponse(target)

    return app


class ServerThread:
    """Run a uvicorn server on a daemon thread."""

    def __init__(self, app: FastAPI, host: str, port: int, name: str) -> None:
        self.name = name
        self.address = f"{host}:{port}"
        self.url = f"http://{host}:{port}/"
        self._server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._exit_code: Optional[int] = None

    def _serve(self) -> None:
        # uvicorn exits the thread via sys.exit when it cannot bind
        try:
            self._server.run()
        except SystemExit as exc:
            self._exit_code = exc.code if isinstance(exc.code, int) else 1

    def start(self, timeout: float = 10.0) -> None:
        self._thread.start()
        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise ExternalToolFailure(
                    f"{self.name} could not listen on {self.address}",
                    exit_code=self._exit_code or 1,
                )
            if time.monotonic() > deadline:
                self.stop()
                raise ExternalToolFailure(f"{self.name} did not start on {self.address} within {timeout}s")
            time.sleep(0.05)
        logger.info("Started {} on {}", self.name, self.url)

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        self._thread.join(timeout=timeout)
        logger.debug("Stopped {}", self.name)


__all__ = [
    "LiveReloadHub",
    "ServerThread",
    "create_livereload_app",
    "create_preview_app",
    "inject_snippet",
    "livereload_snippet",
]
