"""ragdesk: grounded question answering over a private document set."""

__version__ = "0.1.0"
