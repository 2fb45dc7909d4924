from __future__ import annotations

import argparse
from collections.abc import Sequence

import uvicorn

from cvmil.api.app import create_app
from cvmil.config import Settings
from cvmil.logging import get_logger, init_logging


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Serve the cvmil prediction API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=None, help="Overrides app.port from config")
    p.add_argument("--log-level", default="info")
    return p.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = Settings.load()
    init_logging()
    port = int(args.port) if args.port is not None else int(settings.app.port)
    get_logger().info(
        "serve_start host=%s port=%s space_id=%s", args.host, port, settings.remote.space_id
    )
    uvicorn.run(create_app(settings), host=args.host, port=port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
