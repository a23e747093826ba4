"""Main entry point for Query Workbench"""
import logging
from query_workbench.config import Settings, settings


def log_level(config: Settings) -> int:
    """DEBUG=true forces debug logging, otherwise LOG_LEVEL applies"""
    if config.debug:
        return logging.DEBUG
    return getattr(logging, config.log_level.upper(), logging.INFO)


# Configure root logger from LOG_LEVEL/DEBUG env vars before any other imports
logging.basicConfig(
    level=log_level(settings),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

from query_workbench.cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
