"""brisa: HTTP client for fetching and interacting with the invoice portal."""

__version__ = "0.1.0"
