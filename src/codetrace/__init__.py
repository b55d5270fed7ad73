"""codetrace — keyword search over municipal codes, zoning by-laws and planning policy."""

__version__ = "0.1.0"
