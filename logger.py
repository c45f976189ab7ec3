import os
import logging
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# ignore errors from these libs
import tomlkit, websockets, zeroconf

console = Console()

# libraries that log every frame / packet at debug
QUIET_LOGGERS = ("websockets", "zeroconf", "asyncio")


def setup_logging():
    FORMAT = "%(message)s"
    level = os.environ.get("LOGLEVEL", "INFO")
    logging_handler = RichHandler(
        level=level,
        console=console,
        rich_tracebacks=True,
        tracebacks_suppress=[tomlkit, websockets, zeroconf]
    )

    logging.basicConfig(
        level="NOTSET", format=FORMAT, datefmt="[%X]", handlers=[logging_handler]
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(os.environ.get("LIBRARY_LOGLEVEL", "WARNING"))

    install(
        console = console
    )
