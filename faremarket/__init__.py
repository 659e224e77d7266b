"""FareMarket: ride request, offer negotiation and ride lifecycle core."""

__version__ = "0.1.0"
