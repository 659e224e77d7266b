"""Client for the FareMarket JSON store."""

import logging
from typing import Dict, Any, List, Optional

import requests

from faremarket.config import settings
from faremarket.services.errors import (
    CollaboratorUnavailableError,
    NotFoundError,
    StatusConflictError,
)

logger = logging.getLogger(__name__)


class StoreClient:
    """
    CRUD and conditional-update access to the store collections.

    Transport failures and server errors surface as
    CollaboratorUnavailableError so they are never mistaken for a
    business-rule rejection.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.STORE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Store unreachable on {method} {url}: {str(e)}")
            raise CollaboratorUnavailableError(f"Store request failed: {str(e)}")

        if response.status_code >= 500:
            logger.error(f"Store error {response.status_code} on {method} {url}")
            raise CollaboratorUnavailableError(
                f"Store returned {response.status_code} for {method} /{path}")
        return response

    def get(self, collection: str, item_id: str) -> Dict[str, Any]:
        """
        Fetch one record.

        Raises:
            NotFoundError: If the record does not exist
        """
        response = self._request("GET", f"{collection}/{item_id}")
        if response.status_code == 404:
            raise NotFoundError(f"{_label(collection)} with ID {item_id} not found")
        self._raise_for_status(response)
        return response.json()

    def find(self, collection: str, item_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one record, or None if it does not exist."""
        try:
            return self.get(collection, item_id)
        except NotFoundError:
            return None

    def query(self, collection: str, **filters) -> List[Dict[str, Any]]:
        """
        Return records whose fields equal the given filters.

        A list or tuple value matches any of its members.
        """
        params = []
        for key, value in filters.items():
            if value is None:
                continue
            values = value if isinstance(value, (list, tuple, set)) else [value]
            params.extend((key, str(v)) for v in values)
        response = self._request("GET", f"{collection}/query", params=params)
        if response.status_code == 404:
            return []
        self._raise_for_status(response)
        return response.json() or []

    def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a record.

        Raises:
            StatusConflictError: If a record with the same ID exists; carries that record
        """
        response = self._request("POST", collection, json=record)
        if response.status_code == 409:
            body = _json_or_empty(response)
            raise StatusConflictError(body.get("error", "Duplicate ID"), body.get("current"))
        self._raise_for_status(response)
        return response.json()

    def update(self, collection: str, item_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge fields into a record unconditionally."""
        return self.update_if(collection, item_id, {}, fields)

    def update_if_status(self, collection: str, item_id: str, expected_status,
                         fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge fields into a record only if its status is still the expected one.

        Args:
            collection: Collection name
            item_id: Record ID
            expected_status: A status, a list of statuses, or None for no condition
            fields: Fields to merge

        Returns:
            Dict: The updated record

        Raises:
            NotFoundError: If the record does not exist
            StatusConflictError: If the stored status differs
        """
        conditions = {} if expected_status is None else {"status": expected_status}
        return self.update_if(collection, item_id, conditions, fields)

    def update_if(self, collection: str, item_id: str, conditions: Dict[str, Any],
                  fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge fields into a record only if every condition field holds one of its expected values."""
        params = []
        for field, expected in conditions.items():
            values = expected if isinstance(expected, (list, tuple, set)) else [expected]
            params.extend((f"if_{field}", v) for v in values)

        response = self._request("PATCH", f"{collection}/{item_id}", params=params, json=fields)
        if response.status_code == 404:
            raise NotFoundError(f"{_label(collection)} with ID {item_id} not found")
        if response.status_code == 409:
            body = _json_or_empty(response)
            raise StatusConflictError(body.get("error", "Status conflict"), body.get("current"))
        self._raise_for_status(response)
        return response.json()

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise CollaboratorUnavailableError(f"Store rejected the request: {str(e)}")


def _label(collection: str) -> str:
    labels = {
        "ride_requests": "Ride request",
        "ride_offers": "Offer",
        "rides": "Ride",
        "users": "User",
        "driver_applications": "Driver application",
    }
    return labels.get(collection, collection)


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        return response.json()
    except ValueError:
        return {}
