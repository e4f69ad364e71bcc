"""codescape: browse a codebase's files, symbols and calls as a live graph."""

__version__ = "0.1.0"
