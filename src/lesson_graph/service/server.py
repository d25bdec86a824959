from __future__ import annotations

import asyncio

import uvicorn

from ..settings import settings
from .app import create_app
from .container import build_services


async def _main() -> None:
    services = await build_services(settings)
    app = create_app(services, close_on_shutdown=False)

    config = uvicorn.Config(
        app,
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=(settings.log_level or "info").lower(),
        loop="uvloop",
        http="httptools",
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        await services.aclose()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
