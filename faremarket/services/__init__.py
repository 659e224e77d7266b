"""Services implementing the FareMarket ride request, offer and ride lifecycle operations."""
