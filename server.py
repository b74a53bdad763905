import argparse
import logging
import threading
import time
import webbrowser

import uvicorn

from linkmanager.auth import ensure_session_secret
from linkmanager.config import get_settings
from linkmanager.storage import JsonFileStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def run_uvicorn(host: str, port: int):
    """
    Run the FastAPI app via uvicorn in this process
    (called in a background thread).
    """
    config = uvicorn.Config(
        "linkmanager.main:app",
        host=host,
        port=port,
        log_level="info",
        reload=False,
    )
    server = uvicorn.Server(config)
    server.run()


def open_browser_once(host: str, port: int):
    url = f"http://{host}:{port}/"
    print(f"[server] Opening {url}")
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        pass


def main():
    parser = argparse.ArgumentParser(description="Run the link manager server.")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--no-browser", action="store_true", help="don't open a browser tab")
    args = parser.parse_args()

    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port

    if not settings.secret_key:
        # one signing key for every worker thread, created before the first request
        ensure_session_secret(JsonFileStore(settings.data_dir))

    # start uvicorn in a separate thread
    t = threading.Thread(target=run_uvicorn, args=(host, port), daemon=True)
    t.start()

    if not args.no_browser:
        # give it a moment to boot before opening browser
        time.sleep(1.0)
        open_browser_once(host, port)

    print("[server] Running. Press Ctrl+C to quit.")
    try:
        while t.is_alive():
            t.join(timeout=1.0)
    except KeyboardInterrupt:
        print("\n[server] Shutting down.")


if __name__ == "__main__":
    main()
