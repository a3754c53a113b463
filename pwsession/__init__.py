from pwsession._version import __version__
from pwsession.logs import setup_logger

setup_logger()

__all__ = ["__version__"]
