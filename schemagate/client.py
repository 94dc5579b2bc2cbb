"""
==============================================
GatewayClient
==============================================

Thin HTTP client for a running gateway, one method per endpoint.

USAGE EXAMPLES:

1. Allocate a database and write to it:
    from schemagate.client import GatewayClient

    client = GatewayClient("http://localhost:9081")
    client.allocate("shop")
    entry = client.create_entry("shop", "orders", {"item": "pen", "qty": 3})

2. Inspect what a collection looks like:
    schema = client.detect_schema("shop", "orders", refresh=True)
    print(schema["qty"]["type"])

3. Context manager (closes the HTTP session):
    with GatewayClient("http://localhost:9081") as client:
        client.ping()

Error envelopes returned by the gateway are raised as the matching
GatewayError subclass (NotFound, SchemaViolation, ...).
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from schemagate.errors import GatewayError, StorageTimeout, StorageUnavailable, error_from_payload


class GatewayClient:
    """
    HTTP client mirroring the gateway's endpoints.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, api_prefix: str = "/api/v1"):
        """
        Args:
            base_url: Root URL of the gateway, e.g. "http://localhost:9081"
            timeout: Per-request timeout in seconds
            api_prefix: Path prefix ("" for the unversioned routes)
        """
        self.base_url = base_url.rstrip("/") + api_prefix
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def _url(self, *parts: str) -> str:
        return self.base_url + "/" + "/".join(quote(str(part), safe="") for part in parts)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise StorageTimeout(f"gateway did not answer within {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise StorageUnavailable(f"gateway is unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            payload = body.get("error") if isinstance(body, dict) else None
            if not payload:
                raise GatewayError(f"gateway returned HTTP {response.status_code}")
            raise error_from_payload(payload)
        return response

    # ======================================
    # Service / databases
    # ======================================
    def ping(self) -> bool:
        return self._request("GET", self._url("ping")).json().get("message") == "pong"

    def allocate(self, name: Optional[str] = None) -> Dict[str, Any]:
        body = {"name": name} if name else {}
        return self._request("POST", self._url("allocate"), json=body).json()

    def collections(self, database: str) -> List[str]:
        return self._request("GET", self._url("collections", database)).json()["collections"]

    def detect_schema(
        self,
        database: str,
        collection: str,
        sample_size: Optional[int] = None,
        refresh: bool = False,
        strict: bool = False,
    ) -> Dict[str, Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if sample_size is not None:
            params["sample_size"] = sample_size
        if refresh:
            params["refresh"] = "true"
        if strict:
            params["strict"] = "true"
        return self._request("GET", self._url("detect-schema", database, collection), params=params).json()

    def add_fields(self, database: str, collection: str, defaults: Dict[str, Any]) -> int:
        response = self._request("PUT", self._url("schema", database, collection), json={"fields": defaults})
        return response.json()["modified"]

    def remove_field(self, database: str, collection: str, field_path: str) -> int:
        return self._request("DELETE", self._url("schema", database, collection, field_path)).json()["modified"]

    # ======================================
    # Entries
    # ======================================
    def list_entries(
        self,
        database: str,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"offset": offset}
        if limit is not None:
            params["limit"] = limit
        if query:
            params["filter"] = json.dumps(query)
        return self._request("GET", self._url("entries", database, collection), params=params).json()

    def create_entry(self, database: str, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", self._url("entry", database, collection), json=document).json()

    def read_entry(self, database: str, collection: str, doc_id: str) -> Dict[str, Any]:
        return self._request("GET", self._url("entry", database, collection, doc_id)).json()

    def update_entry(self, database: str, collection: str, doc_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", self._url("entry", database, collection, doc_id), json=partial).json()

    def delete_entry(self, database: str, collection: str, doc_id: str) -> None:
        self._request("DELETE", self._url("entry", database, collection, doc_id))

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
