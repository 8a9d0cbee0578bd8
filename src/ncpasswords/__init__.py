import logging
from importlib.metadata import version

__version__ = version("ncpasswords")

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")
