"""HTTP server for the FareMarket JSON store."""
