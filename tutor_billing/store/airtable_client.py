"""
Airtable REST client.

Thin wrapper over the Airtable REST API built on requests:
- Bearer token authentication
- Offset pagination for list requests
- Retry with exponential backoff on 429, 5xx and transport errors
  (POST only when nothing can have been created)
- Circuit breaker guarding the whole API

Every method either returns decoded JSON or raises StoreError.
"""

import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote

import requests

from ..billing.errors import StoreError
from ..resilience.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from ..utils.config import SecureString


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.airtable.com/v0"
PAGE_SIZE = 100
MAX_BACKOFF_SECONDS = 8.0

# Not safe to resend once the server may have acted on them
NON_IDEMPOTENT_METHODS = frozenset({"POST"})


def escape_formula_value(value: str) -> str:
    """
    Quote a value for use inside an Airtable formula.

    Examples:
        >>> escape_formula_value('2024-03')
        '"2024-03"'
        >>> escape_formula_value('say "hi"')
        '"say \\\\"hi\\\\""'
    """
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AirtableClient:
    """
    Client for one Airtable base.

    Examples:
        >>> client = AirtableClient(SecureString(token), "appXXXXXXXX")
        >>> rows = client.list_records("lessons", formula='{status} = "completed"')
        >>> for row in rows:
        ...     print(row["id"], row["fields"])
    """

    def __init__(
        self,
        api_key: Union[SecureString, str],
        base_id: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30,
        max_retries: int = 3,
        circuit_breaker: Optional[CircuitBreaker] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize AirtableClient.

        Args:
            api_key: Personal access token
            base_id: Base id (appXXXXXXXX)
            api_url: REST API root
            timeout: Seconds per request
            max_retries: Retries of a retryable failure (0 disables retry)
            circuit_breaker: Breaker shared by all requests (created if None)
            session: requests session (created if None)
            sleep: Backoff sleep function
        """
        if not isinstance(api_key, SecureString):
            api_key = SecureString(api_key)

        self.base_id = base_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.sleep = sleep

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            timeout=timedelta(seconds=60),
            expected_exception=StoreError,
            is_failure=lambda e: e.is_retryable
        )

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key.get_value()}",
            "Content-Type": "application/json",
        })

        logger.debug(f"AirtableClient initialized for base {base_id}")

    def _url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/{self.base_id}/{quote(table, safe='')}"
        if record_id:
            url = f"{url}/{record_id}"
        return url

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send one request and decode the response."""
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.ConnectionError as e:
            # Includes ConnectTimeout: the request never reached the server
            raise StoreError(f"{method} {url} failed: {e}", request_sent=False) from e
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {url} failed: {e}") from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise StoreError(
                f"{method} {url} returned HTTP {response.status_code}",
                status=response.status_code,
                payload=body
            )

        try:
            return response.json()
        except ValueError as e:
            raise StoreError(
                f"{method} {url} returned invalid JSON",
                status=response.status_code,
                payload=response.text
            ) from e

    @staticmethod
    def _can_retry(method: str, error: StoreError) -> bool:
        """
        Decide whether a failed request may be sent again.

        A POST is resent only when it certainly created nothing: a rate
        limit answer, or a connection that was never established. After a
        read timeout or a 5xx the record may already exist.
        """
        if not error.is_retryable:
            return False
        if method.upper() not in NON_IDEMPOTENT_METHODS:
            return True
        return error.status == 429 or not error.request_sent

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Send a request with retry and circuit breaker protection.

        Raises:
            StoreError: On a non-retryable failure, when retries are
                exhausted, or while the circuit breaker is open
        """
        attempt = 0
        while True:
            try:
                return self.circuit_breaker.call(self._send, method, url, params, payload)
            except CircuitBreakerOpenError as e:
                raise StoreError(f"Record store unavailable: {e}") from e
            except StoreError as e:
                if not self._can_retry(method, e) or attempt >= self.max_retries:
                    logger.error(f"{e.message} (attempt {attempt + 1}, giving up)")
                    raise

                delay = min(2 ** attempt, MAX_BACKOFF_SECONDS)
                attempt += 1
                logger.warning(
                    f"{e.message}; retry {attempt}/{self.max_retries} in {delay}s"
                )
                self.sleep(delay)

    def list_records(
        self,
        table: str,
        formula: Optional[str] = None,
        fields: Optional[List[str]] = None,
        page_size: int = PAGE_SIZE
    ) -> List[Dict[str, Any]]:
        """
        List every record of a table, following offset pagination.

        Args:
            table: Table name or id
            formula: Optional filterByFormula expression
            fields: Optional field names to return
            page_size: Records per page (Airtable caps this at 100)

        Returns:
            Raw records ({"id": ..., "fields": {...}})
        """
        params: Dict[str, Any] = {"pageSize": page_size}
        if formula:
            params["filterByFormula"] = formula
        if fields:
            params["fields[]"] = list(fields)

        records: List[Dict[str, Any]] = []
        url = self._url(table)
        while True:
            data = self._request("GET", url, params=params)
            records.extend(data.get("records", []))

            offset = data.get("offset")
            if not offset:
                break
            params = {**params, "offset": offset}

        logger.debug(f"Fetched {len(records)} records from {table}")
        return records

    def get_record(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one record.

        Returns:
            The raw record, or None if it does not exist
        """
        try:
            return self._request("GET", self._url(table, record_id))
        except StoreError as e:
            if e.status == 404:
                return None
            raise

    def create_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a record and return it."""
        return self._request("POST", self._url(table), payload={"fields": fields})

    def update_record(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Update the given fields of a record (PATCH) and return it."""
        return self._request(
            "PATCH",
            self._url(table, record_id),
            payload={"fields": fields}
        )
