import logging


def init_logging(level: str = "INFO"):
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    logging.getLogger("newsletter_api").setLevel(
        getattr(logging, level.upper(), logging.INFO)
    )
