"""Entry point for the web API."""

import logging

from .ui_web.app import create_app


def run(host: str = "127.0.0.1", port: int = 8080) -> int:
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    app.run(host=host, port=port)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(run())
