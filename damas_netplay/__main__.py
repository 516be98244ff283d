import argparse
import logging

import uvicorn

from .config import load_settings
from .server import create_app


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="damas-relay", description="Checkers relay server")
    parser.add_argument("--host", help="bind address (default from DAMAS_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="listen port (default from DAMAS_PORT or 3000)")
    parser.add_argument("--settings", help="JSON settings file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING ...")
    args = parser.parse_args(argv)

    settings = load_settings(args.settings)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.log_level:
        settings.log_level = args.log_level.upper()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "[Relay] Listening on http://%s:%s (WebSocket on / and /ws)", settings.host, settings.port
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
