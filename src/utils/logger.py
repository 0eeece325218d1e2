import os
import sys

from loguru import logger

NO_RUN = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>run={extra[run_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)


def setup_logger(*, json_logs: bool = False, level: str = "INFO") -> None:
    """Configure loguru for pipeline runs.

    Console level controlled by LOG_LEVEL env (default: INFO).
    Every record carries ``extra["run_id"]``: the orchestrator binds the
    current run with ``logger.contextualize``, anything outside a run shows "-".
    File sink keeps DEBUG so a failed run can be traced by its id afterwards.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()
    logger.configure(extra={"run_id": NO_RUN})

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(sys.stdout, format=CONSOLE_FORMAT, level=console_level, colorize=True)

    logger.add(
        "logs/ship_radar_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | run={extra[run_id]} | {name}:{function} - {message}",
        rotation="50 MB",
        retention="14 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
