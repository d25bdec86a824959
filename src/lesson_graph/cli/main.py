from __future__ import annotations

import argparse
import asyncio

from lesson_graph.settings import settings


def _configure_logging() -> None:
    import logging

    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def cmd_version() -> int:
    from lesson_graph import __version__

    print(__version__)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    _configure_logging()
    from lesson_graph.service import server

    if args.host:
        settings.bind_host = args.host
    if args.port:
        settings.bind_port = args.port
    server.main()
    return 0


async def _ensure_schema() -> None:
    from lesson_graph.service.container import build_services

    # postgres schema is applied while the repository connects
    services = await build_services(settings)
    try:
        await services.graph_store.ensure_schema()
    finally:
        await services.aclose()


def cmd_ensure_schema(_args: argparse.Namespace) -> int:
    _configure_logging()
    asyncio.run(_ensure_schema())
    print("schema ok")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lesson-graph")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=lambda _a: cmd_version())

    serve = sub.add_parser("serve", help="Run the knowledge HTTP service")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    schema = sub.add_parser("ensure-schema", help="Create tables, constraints and indexes")
    schema.set_defaults(func=cmd_ensure_schema)

    return p


def app() -> None:
    parser = build_parser()
    args = parser.parse_args()
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
