import logging

from fastapi import FastAPI

from dhamira.core.settings import settings
from dhamira.db.init_db import init_db
from dhamira.db.session import engine

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Back office starting environment=%s payment_rail=%s score_threshold=%s",
            settings.environment,
            settings.payment_rail,
            settings.credit_score_threshold,
        )
        if settings.seed_on_startup:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await engine.dispose()
        logger.info("Back office stopped")
