"""Location value for the FareMarket application."""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class Location:
    """
    A pickup or dropoff point.

    Attributes:
        address: Free-text address as entered by the rider
        latitude: Latitude coordinate, if the geocoder resolved one
        longitude: Longitude coordinate, if the geocoder resolved one
    """
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def coordinates(self) -> Optional[tuple]:
        """Get the coordinates as a tuple, or None if unresolved."""
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    @classmethod
    def from_value(cls, value) -> Optional["Location"]:
        """Build a Location from a string, a dict or an existing Location."""
        if value is None:
            return None
        if isinstance(value, Location):
            return value
        if isinstance(value, str):
            return cls(address=value.strip())
        return cls(
            address=(value.get("address") or "").strip(),
            latitude=value.get("latitude", value.get("lat")),
            longitude=value.get("longitude", value.get("lng")),
        )

    def as_fields(self, prefix: str) -> Dict[str, Any]:
        """Flatten into `<prefix>_address`, `<prefix>_latitude`, `<prefix>_longitude`."""
        return {
            f"{prefix}_address": self.address,
            f"{prefix}_latitude": self.latitude,
            f"{prefix}_longitude": self.longitude,
        }
