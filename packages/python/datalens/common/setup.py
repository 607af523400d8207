import logging
import os

from dotenv import load_dotenv

_configured = False


def setup() -> None:
    """
    Load .env (if present) and configure root logging. Safe to call more than once.
    """
    global _configured
    if _configured:
        return
    load_dotenv()
    level_name = os.getenv("DATALENS_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _configured = True
