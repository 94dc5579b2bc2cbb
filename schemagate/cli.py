# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# COMMANDS:
# ---------
# 1. Run the HTTP gateway:
#    python -m schemagate.cli serve --port 9081
#
# 2. Allocate a database (generated name when omitted):
#    python -m schemagate.cli allocate shop
#
# 3. List collections of a database:
#    python -m schemagate.cli collections shop
#
# 4. Detect the schema of a collection:
#    python -m schemagate.cli detect shop orders --sample-size 500
#
# Commands 2-4 run in-process against the configured store
# (STORAGE_BACKEND / MONGO_* from the environment or .env) and
# print JSON to stdout.
#
# ==============================================

import argparse
import json
import sys
from typing import List, Optional

from schemagate.config import get_config
from schemagate.errors import GatewayError
from schemagate.gateway import Gateway
from schemagate.logging_config import setup_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schemagate", description="Dynamic schema gateway")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP gateway")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    allocate = sub.add_parser("allocate", help="allocate a database")
    allocate.add_argument("name", nargs="?", default=None)

    collections = sub.add_parser("collections", help="list collections of a database")
    collections.add_argument("database")

    detect = sub.add_parser("detect", help="detect the schema of a collection")
    detect.add_argument("database")
    detect.add_argument("collection")
    detect.add_argument("--sample-size", type=int, default=None)
    detect.add_argument("--refresh", action="store_true")
    detect.add_argument("--strict", action="store_true")

    return parser


def _serve(host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    from schemagate.api import create_app

    config = get_config()
    host = host or config.server.host
    port = port or config.server.port
    print(f"🚀 SchemaGate starting on {host}:{port}")
    uvicorn.run(create_app(config=config), host=host, port=port, log_config=None)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config.server.log_level)

    if args.command == "serve":
        return _serve(args.host, args.port)

    try:
        with Gateway(config) as gateway:
            if args.command == "allocate":
                result = gateway.allocate(args.name).to_dict()
            elif args.command == "collections":
                result = gateway.list_collections(args.database)
            else:
                shape = gateway.detect_schema(
                    args.database,
                    args.collection,
                    sample_size=args.sample_size,
                    refresh=args.refresh,
                    strict=args.strict,
                )
                result = shape.to_dict()
    except GatewayError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
