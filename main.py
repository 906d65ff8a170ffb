from __future__ import annotations

from loguru import logger

from santadraw.core.config import load_settings
from santadraw.core.logging import setup_logging
from santadraw.db import Base, init_engine
from santadraw.services import DrawOrchestrator


def bootstrap() -> DrawOrchestrator:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_path)
    engine = init_engine(settings.database_url)
    Base.metadata.create_all(engine)

    logger.info("draw engine ready")
    logger.info("Max attempts   - {attempts}", attempts=settings.draw_max_attempts)
    logger.info("Timeout        - {timeout}s", timeout=settings.draw_timeout_seconds)
    logger.info("Search budget  - {budget}", budget=settings.feasibility_search_budget)

    return DrawOrchestrator(settings=settings)


if __name__ == "__main__":
    bootstrap()
