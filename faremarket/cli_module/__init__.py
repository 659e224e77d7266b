"""Click-based command line interface for FareMarket."""
