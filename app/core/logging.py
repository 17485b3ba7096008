import logging
import sys

from pythonjsonlogger import jsonlogger

from app.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    JSON logs on stdout for the API process and the sweep job.
    Every record carries the service name and environment; ids travel in `extra`.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # create_app / the sweep job may configure more than once per process
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"service": settings.app_name, "environment": settings.environment},
        )
    )
    root.addHandler(handler)

    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.log_sql else logging.WARNING
    )
