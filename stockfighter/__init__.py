"""Client library for the Stockfighter trading-simulation API."""

from .data import Order, StreamingSession, Venue, WireClient

__version__ = "0.1.0"

__all__ = ["Order", "StreamingSession", "Venue", "WireClient", "__version__"]
