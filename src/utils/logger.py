import logging

from rich.logging import RichHandler

from utils.config import DEBUG


class CenteredFormatter(logging.Formatter):
    """Pads logger names to the widest one seen so messages line up."""

    longest_name_length = 12

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=12):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, initial_width
        )

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        short = record.name
        record.name = short.center(CenteredFormatter.longest_name_length)
        try:
            return super().format(record)
        finally:
            record.name = short


def get_logger(name=None) -> logging.Logger:
    """
    Logger writing through a RichHandler; DEBUG in the environment lowers the level.
    """
    logger = logging.getLogger(name or "gkp")
    log_level = logging.DEBUG if DEBUG else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(CenteredFormatter("[%(name)s]  %(message)s"))
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger '{logger.name}' ready.")

    return logger
