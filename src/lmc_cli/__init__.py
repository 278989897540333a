"""Little Man Computer command line tools"""

__version__ = "0.4.0"
