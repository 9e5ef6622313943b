import logging


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging defaults for the identity service."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Access logs carry verification/reset tokens in the path.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
