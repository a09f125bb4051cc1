"""retrywise - retry with exponential backoff for unreliable backends"""

__version__ = "0.1.0"
