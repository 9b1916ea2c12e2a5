"""Organization structure import: spreadsheet rows to departments / positions."""

__version__ = "0.1.0"
