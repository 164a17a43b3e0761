import os
import logging
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme
from rich.traceback import install

# ignore errors from these libs
import aiohttp, cryptography, tomlkit

SUPPRESSED_LIBRARIES = [aiohttp, cryptography, tomlkit]

console = Console(theme=Theme({
    "pin": "bold magenta",
    "host": "bold cyan",
}))

_print = print  # save python's print.

print = console.print  # raw print


def setup_logging(verbose: bool = False):
    FORMAT = "%(message)s"
    logging_handler = RichHandler(
        level="DEBUG" if verbose else os.environ.get("LOGLEVEL", "INFO"),
        console=console,
        rich_tracebacks=True,
        show_path=verbose,
        tracebacks_suppress=SUPPRESSED_LIBRARIES,
    )

    logging.basicConfig(
        level="NOTSET", format=FORMAT, datefmt="[%X]", handlers=[logging_handler]
    )
    # HttpClient logs every request itself, with secrets redacted
    for name in ("asyncio", "aiohttp.client", "aiohttp.internal"):
        logging.getLogger(name).setLevel(logging.WARNING)

    install(
        console=console,
        suppress=SUPPRESSED_LIBRARIES,
    )
