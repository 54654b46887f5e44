import logging
import os


def get_logger(name="shopdesk", level=None):
    """
    Logger with one stream handler, configured once. Module loggers under
    "shopdesk." propagate to it. SHOPDESK_LOG_LEVEL overrides the default INFO.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = level or os.environ.get("SHOPDESK_LOG_LEVEL", "INFO")
        logger.setLevel(level.upper() if isinstance(level, str) else level)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger
