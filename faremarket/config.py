"""Runtime configuration for FareMarket, read from the environment."""

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Persistence collaborator (JSON store server)
    STORE_URL: str = os.getenv("FAREMARKET_STORE_URL", "http://localhost:3000").rstrip("/")
    STORE_TIMEOUT: float = float(os.getenv("FAREMARKET_STORE_TIMEOUT", "5"))
    DB_FILE: str = os.getenv("FAREMARKET_DB_FILE", os.path.join("data", "db.json"))

    # Ride request search window
    REQUEST_EXPIRY_MINUTES: int = int(os.getenv("FAREMARKET_REQUEST_EXPIRY_MINUTES", "15"))

    # Upper bound on projection staleness when polling
    POLL_INTERVAL_SECONDS: float = float(os.getenv("FAREMARKET_POLL_INTERVAL_SECONDS", "2"))

    # Identity collaborator
    JWT_SECRET: str = os.getenv("JWT_SECRET", "faremarket_secret_key")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

    # Shared secret required to register an admin account
    ADMIN_REGISTRATION_CODE: str = os.getenv("FAREMARKET_ADMIN_CODE", "faremarket-admin")

    LOG_LEVEL: str = os.getenv("FAREMARKET_LOG_LEVEL", "WARNING")


settings = Settings()

# Collections owned by the store
COLLECTIONS = ["users", "driver_applications", "ride_requests", "ride_offers", "rides"]
