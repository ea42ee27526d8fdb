from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront_checkout.adapters.inbound.web.fastapi_app import create_app
from storefront_checkout.adapters.outbound.asyncio_scheduler import AsyncioScheduler
from storefront_checkout.bootstrap import build_usecases
from storefront_checkout.config import get_settings
from storefront_checkout.logging_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level)

scheduler = AsyncioScheduler()
usecases = build_usecases(settings, scheduler=scheduler)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # debounced quote refreshes run on the server's loop
    scheduler.bind(asyncio.get_running_loop())
    yield


app = create_app(usecases.checkout, lifespan=lifespan)
