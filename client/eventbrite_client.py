"""HTTP client for the Eventbrite v3 API."""
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from client.errors import (
    ApiError,
    InvalidResponseError,
    TransportError,
    UnconfiguredError,
)

logger = logging.getLogger(__name__)


class EventbriteClient:
    """Authenticated GET client for the Eventbrite API."""

    BASE_URL = "https://www.eventbriteapi.com/v3"

    def __init__(
        self,
        token: Optional[str],
        timeout: int = 30,
        max_retries: int = 3,
        max_pages: int = 20,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API client.

        Args:
            token: Eventbrite private bearer token (None disables all calls)
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request on transport failures (default: 3)
            max_pages: Upper bound on followed pagination pages (default: 20)
            session: Optional requests session to reuse
        """
        self.token = token
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.max_pages = max(1, max_pages)
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def request(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Request an API URL and return the decoded JSON body.

        Args:
            url: Absolute API URL
            params: Optional query parameters

        Returns:
            Decoded JSON value

        Raises:
            UnconfiguredError: If no token is configured
            TransportError: If all retry attempts fail at the HTTP level
            InvalidResponseError: If the body is not valid JSON
            ApiError: If the body carries a non-empty ``errors`` field
        """
        if not self.configured:
            raise UnconfiguredError("EVENTBRITE_TOKEN is not configured")

        body = self._get_with_retry(
            url,
            params=params,
            headers={'Authorization': f'Bearer {self.token}'}
        ).text

        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            logger.error(f"Invalid JSON response from {url}")
            raise InvalidResponseError(url, body)

        errors = payload.get('errors') if isinstance(payload, dict) else None
        if errors:
            logger.error(
                f"Eventbrite API returned errors. Request: {url} "
                f"Response: {json.dumps(payload, default=str)}",
                extra={'url': url, 'errors': payload}
            )
            raise ApiError(url, payload, errors)

        return payload

    def get_organization_id(self) -> Optional[str]:
        """
        Resolve the id of the first organization of the token owner.

        Returns:
            Organization id, or None if the user belongs to no organization
        """
        payload = self.request(f"{self.BASE_URL}/users/me/organizations/")
        organizations = payload.get('organizations') or []
        if not organizations:
            return None
        return str(organizations[0]['id'])

    def list_organization_events(self, organization_id: str) -> List[Dict[str, Any]]:
        """
        List all events of an organization, following continuation pages.

        Args:
            organization_id: Eventbrite organization id

        Returns:
            List of raw event mappings in API order
        """
        url = f"{self.BASE_URL}/organizations/{organization_id}/events/"
        events: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {}

        for _ in range(self.max_pages):
            payload = self.request(url, params=params or None)
            events.extend(payload.get('events') or [])

            pagination = payload.get('pagination') or {}
            continuation = pagination.get('continuation')
            if not pagination.get('has_more_items') or not continuation:
                break
            params = {'continuation': continuation}
        else:
            logger.warning(
                f"Stopped following pagination after {self.max_pages} pages "
                f"for organization {organization_id}"
            )

        logger.info(f"Listed {len(events)} events for organization {organization_id}")
        return events

    def get_event(self, event_id: str, expand: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a single event, optionally expanding one aspect.

        Args:
            event_id: Eventbrite event id
            expand: Aspect to expand (e.g. 'ticket_availability', 'venue')

        Returns:
            Raw event mapping
        """
        params = {'expand': expand} if expand else None
        return self.request(f"{self.BASE_URL}/events/{event_id}/", params=params)

    def fetch_binary(self, url: str) -> Tuple[bytes, str]:
        """
        Download a binary resource such as a cover image.

        The image CDN is public, so no Authorization header is sent.

        Args:
            url: Absolute resource URL

        Returns:
            Tuple of (content bytes, content type)
        """
        response = self._get_with_retry(url, raise_for_status=True)
        content_type = response.headers.get('Content-Type', 'application/octet-stream')
        return response.content, content_type

    def _get_with_retry(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        raise_for_status: bool = False
    ) -> requests.Response:
        """
        Issue a GET request with exponential backoff on transport failures.

        API responses are judged by their body, so HTTP error statuses only
        count as failures when raise_for_status is set.
        """
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self.timeout
                )
                if raise_for_status:
                    response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request to {url} failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} attempts to {url} failed. Last error: {e}"
                    )
                    raise TransportError(str(e)) from e
