import sys

import uvicorn
from loguru import logger

from saddle_serials.entrypoints.api import create_app
from saddle_serials.entrypoints.container import build_container
from saddle_serials.entrypoints.executor import Executor
from saddle_serials.entrypoints.settings import Config, get_config


def _configure_logging(config: Config) -> None:
    logger.remove()
    logger.add(sys.stderr, level=config.LOG_LEVEL.upper())


def main() -> None:
    """Serve the admin API and webhook receivers."""
    config = get_config()
    _configure_logging(config)

    container = build_container(config)
    try:
        uvicorn.run(
            create_app(container),
            host=config.HOST,
            port=config.PORT,
            log_level=config.LOG_LEVEL.lower(),
        )
    finally:
        container.close()


def sync() -> None:
    """Run one order sync: ``saddle-serials-sync [shop]`` (defaults to SHOPIFY_SHOP)."""
    config = get_config()
    _configure_logging(config)

    shop = sys.argv[1] if len(sys.argv) > 1 else config.SHOPIFY_SHOP
    if not shop:
        logger.error("No shop given and SHOPIFY_SHOP is not set.")
        raise SystemExit(2)

    container = build_container(config)
    try:
        result = Executor(container.sessions, container.sync_engine).run(shop)
    finally:
        container.close()
    raise SystemExit(0 if result.success else 1)


if __name__ == "__main__":
    main()
