"""Bill Scanner - recurring bill detection from Gmail.

This package scans a Gmail mailbox for invoices from known Argentine
service providers, discovers other recurring charges, and extracts
amounts, due dates and billing periods using Ollama with a regex fallback.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from bill_scanner.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
