"""
Command line entry point of the simulator, used by `python -m s7client.server`
and installed as the `s7client-server` console script.
"""

import logging

try:
    import click
except ImportError as e:
    print(e)
    print("Try using 'pip install python-s7client[cli]'")
    exit()

from s7client import __version__
from s7client.server import mainloop

logger = logging.getLogger("S7Client.Server")


@click.command()
@click.option("-p", "--port", default=1102, help="Port the server will listen on.")
@click.option("-v", "--verbose", is_flag=True, help="Also print debug-output.")
@click.version_option(__version__)
@click.help_option("-h", "--help")
def main(port: int, verbose: bool) -> None:
    """Start a S7 dummy server with some default values."""

    # setup logging
    if verbose:
        logging.basicConfig(format="[%(levelname)s]: %(message)s", level=logging.DEBUG)
    else:
        logging.basicConfig(format="[%(levelname)s]: %(message)s", level=logging.INFO)

    # start the server mainloop
    mainloop(port, init_standard_values=True)


if __name__ == "__main__":
    main()
