"""
REST content store client.

Talks to a content-management backend exposing a JSON API, handling
authentication, retries and rate limiting. Transactions are emulated by
deleting resources created inside a failed scope.
"""

import json
import logging
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import (
    ContentStore,
    ObjectAlreadyExists,
    ObjectDoesNotExist,
    StoreConnectionError,
    StoreError,
)

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    # Price amounts are Decimal, sent as strings to keep their precision
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class RestContentStore(ContentStore):
    """Content store reached over the backend's JSON API."""

    # Transient statuses are retried for idempotent verbs only
    RETRY_STATUSES = (429, 500, 502, 503, 504)
    IDEMPOTENT_METHODS = frozenset({'GET', 'PUT', 'PATCH', 'DELETE'})

    def __init__(
        self,
        base_url: str,
        api_token: str,
        verify_ssl: bool = True,
        timeout: float = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 0.5,
        rate_limit: float = 0.0
    ):
        """
        Args:
            base_url: Installation URL, the API lives below `/api`
            api_token: Bearer token
            verify_ssl: Whether to verify TLS certificates
            timeout: Seconds to wait for each response
            max_retries: Retries for transient failures of idempotent requests
            retry_backoff_factor: Backoff factor between retries
            rate_limit: Minimum seconds between two requests, 0 disables pacing
        """
        self.api_url = f"{base_url.rstrip('/')}/api"
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.rate_limit = rate_limit
        self._next_request_at = 0.0
        # One list of created resources per open transaction
        self._created_stack: List[List[Dict[str, Any]]] = []
        self.session = self._build_session(api_token, max_retries, retry_backoff_factor)
        logger.debug(f"REST content store at {self.api_url}")

    @classmethod
    def _build_session(cls, api_token: str, max_retries: int, backoff: float) -> requests.Session:
        session = requests.Session()
        session.headers['Authorization'] = f'Bearer {api_token}'
        session.headers['Accept'] = 'application/json'
        adapter = HTTPAdapter(max_retries=Retry(
            total=max_retries,
            backoff_factor=backoff,
            status_forcelist=cls.RETRY_STATUSES,
            allowed_methods=cls.IDEMPOTENT_METHODS,
            respect_retry_after_header=True,
            raise_on_status=False
        ))
        for prefix in ('http://', 'https://'):
            session.mount(prefix, adapter)
        return session

    @classmethod
    def from_config(cls, store_config: Dict[str, Any]) -> 'RestContentStore':
        """Create a client from a `source` or `destination` configuration section."""
        tuning = {
            'verify_ssl': 'verify_ssl',
            'timeout': 'request_timeout',
            'max_retries': 'max_retries',
            'retry_backoff_factor': 'retry_backoff_factor',
            'rate_limit': 'rate_limit',
        }
        kwargs = {arg: store_config[key] for arg, key in tuning.items() if key in store_config}
        return cls(store_config.get('base_url'), store_config.get('api_token'), **kwargs)

    def _pace(self) -> None:
        if self.rate_limit <= 0:
            return
        wait = self._next_request_at - time.monotonic()
        if wait > 0:
            logger.debug(f"Pacing requests, waiting {wait:.2f}s")
            time.sleep(wait)
        self._next_request_at = time.monotonic() + self.rate_limit

    def _call(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send one API request and map failures onto store errors.

        Returns:
            Decoded JSON body, `{}` for empty bodies, None for a GET answered with 404

        Raises:
            ObjectDoesNotExist: 404 on a mutating request
            ObjectAlreadyExists: 409 responses
            StoreConnectionError: The backend could not be reached
            StoreError: Any other failed request
        """
        url = self.api_url + endpoint
        data = headers = None
        if body is not None:
            try:
                data = json.dumps(body, default=_json_default)
            except (TypeError, ValueError) as e:
                raise StoreError(f"{method} {endpoint}: request body is not JSON serialisable: {e}") from e
            headers = {'Content-Type': 'application/json'}

        self._pace()
        try:
            response = self.session.request(
                method=method, url=url, params=params, data=data, headers=headers,
                verify=self.verify_ssl, timeout=self.timeout
            )
        except requests.ConnectionError as e:
            raise StoreConnectionError(f"Cannot reach content store at {url}: {e}") from e
        except requests.RequestException as e:
            raise StoreError(f"{method} {endpoint} failed: {e}") from e

        status = response.status_code
        logger.debug(f"{method} {endpoint} -> {status}")
        if status == 404:
            if method == 'GET':
                return None
            raise ObjectDoesNotExist(f"{method} {endpoint}: not found")
        if status == 409:
            raise ObjectAlreadyExists(f"{method} {endpoint}: {response.text}")
        if status >= 400:
            logger.error(f"{method} {endpoint} answered {status}: {response.text[:500]}")
            raise StoreError(f"{method} {endpoint} failed with status {status}")

        if status == 204 or not response.content:
            return {}
        return response.json()

    def _track(self, kind: str, resource: Dict[str, Any]) -> Dict[str, Any]:
        if self._created_stack:
            self._created_stack[-1].append({'type': kind, 'id': resource['id']})
        return resource

    @contextmanager
    def transaction(self) -> Iterator['RestContentStore']:
        """Delete resources created in this scope if the block raises."""
        self._created_stack.append([])
        try:
            yield self
        except Exception:
            created = self._created_stack.pop()
            self._rollback(created)
            raise
        else:
            created = self._created_stack.pop()
            if self._created_stack:
                self._created_stack[-1].extend(created)

    def _rollback(self, created: List[Dict[str, Any]]) -> None:
        for resource in reversed(created):
            endpoint = '/nodes' if resource['type'] == 'node' else '/objects'
            try:
                self._call('DELETE', f"{endpoint}/{resource['id']}")
                logger.info(f"Rolled back {resource['type']} {resource['id']}")
            except StoreError as e:
                logger.error(f"Failed to roll back {resource['type']} {resource['id']}: {e}")

    # Lookups

    def get_root_node(self) -> Dict[str, Any]:
        root = self._call('GET', '/nodes/root')
        if not root:
            raise StoreError("Content store did not return a root node")
        return root

    def fetch_object(self, object_id: int) -> Optional[Dict[str, Any]]:
        return self._call('GET', f'/objects/{object_id}')

    def fetch_object_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        return self._call('GET', f'/objects/uuid/{uuid}')

    def fetch_node(self, node_id: int) -> Optional[Dict[str, Any]]:
        return self._call('GET', f'/nodes/{node_id}')

    def fetch_node_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        return self._call('GET', f'/nodes/uuid/{uuid}')

    def fetch_children(self, node_id: int) -> List[Dict[str, Any]]:
        response = self._call('GET', f'/nodes/{node_id}/children')
        return (response or {}).get('data', [])

    def fetch_locations(self, object_id: int) -> List[Dict[str, Any]]:
        response = self._call('GET', f'/objects/{object_id}/locations')
        return (response or {}).get('data', [])

    def list_sections(self) -> List[Dict[str, Any]]:
        return (self._call('GET', '/sections') or {}).get('data', [])

    def list_languages(self) -> List[Dict[str, Any]]:
        return (self._call('GET', '/languages') or {}).get('data', [])

    def list_state_groups(self) -> List[Dict[str, Any]]:
        return (self._call('GET', '/state-groups') or {}).get('data', [])

    def list_content_types(self) -> List[Dict[str, Any]]:
        return (self._call('GET', '/content-types') or {}).get('data', [])

    def fetch_tag_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        return self._call('GET', f'/tags/uuid/{uuid}')

    # Schema-level mutations

    def create_section(self, identifier: str, name: str, navigation_part_identifier: str) -> Dict[str, Any]:
        data = {
            'identifier': identifier,
            'name': name,
            'navigation_part_identifier': navigation_part_identifier
        }
        return self._call('POST', '/sections', body=data)

    def update_section(self, identifier: str, **fields: Any) -> Dict[str, Any]:
        return self._call('PATCH', f'/sections/{identifier}', body=fields)

    def create_language(self, locale: str, name: str) -> Dict[str, Any]:
        return self._call('POST', '/languages', body={'locale': locale, 'name': name})

    def update_language(self, locale: str, **fields: Any) -> Dict[str, Any]:
        return self._call('PATCH', f'/languages/{locale}', body=fields)

    def create_state_group(
        self,
        identifier: str,
        translations: Dict[str, Any],
        states: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = {'identifier': identifier, 'translations': translations, 'states': states}
        return self._call('POST', '/state-groups', body=data)

    def update_state_group(self, identifier: str, states: Dict[str, Any]) -> Dict[str, Any]:
        return self._call('PATCH', f'/state-groups/{identifier}', body={'states': states})

    # Object and node lifecycle

    def create_skeleton(
        self,
        class_identifier: str,
        language: str,
        section_identifier: Optional[str] = None,
        uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        data = {
            'class_identifier': class_identifier,
            'language': language,
            'section_identifier': section_identifier,
            'uuid': uuid
        }
        return self._track('object', self._call('POST', '/objects', body=data))

    def create_location(
        self,
        parent_node_id: int,
        object_id: int,
        uuid: Optional[str] = None,
        sort_by: Optional[str] = None,
        priority: int = 0,
        is_main: bool = False
    ) -> Dict[str, Any]:
        data = {
            'parent_id': parent_node_id,
            'object_id': object_id,
            'uuid': uuid,
            'sort_by': sort_by,
            'priority': priority,
            'is_main': is_main
        }
        return self._track('node', self._call('POST', '/nodes', body=data))

    def move_location(self, node_id: int, new_parent_node_id: int) -> Dict[str, Any]:
        return self._call('POST', f'/nodes/{node_id}/move', body={'parent_id': new_parent_node_id})

    def set_name(self, object_id: int, language: str, name: str) -> None:
        self._call('PUT', f'/objects/{object_id}/names/{language}', body={'name': name})

    def set_field(self, object_id: int, identifier: str, value: Any, language: Optional[str] = None) -> None:
        data = {'value': value, 'language': language}
        self._call('PUT', f'/objects/{object_id}/fields/{identifier}', body=data)

    def set_owner(self, object_id: int, owner_id: Optional[int]) -> None:
        self._call('PATCH', f'/objects/{object_id}', body={'owner_id': owner_id})

    def set_section(self, object_id: int, section_identifier: str) -> None:
        self._call('PATCH', f'/objects/{object_id}', body={'section_identifier': section_identifier})

    def assign_relation(self, object_id: int, target_object_id: int) -> None:
        self._call('POST', f'/objects/{object_id}/relations', body={'object_id': target_object_id})

    def set_main_location(self, object_id: int, node_id: int) -> None:
        self._call('PATCH', f'/objects/{object_id}', body={'main_node_id': node_id})

    def set_location_meta(
        self,
        node_id: int,
        sort_by: Optional[str] = None,
        priority: Optional[int] = None,
        hidden: Optional[bool] = None
    ) -> None:
        data = {
            key: value for key, value in
            (('sort_by', sort_by), ('priority', priority), ('hidden', hidden))
            if value is not None
        }
        if data:
            self._call('PATCH', f'/nodes/{node_id}', body=data)

    def assign_state(self, object_id: int, group_identifier: str, state_identifier: str) -> None:
        self._call(
            'PUT', f'/objects/{object_id}/states/{group_identifier}',
            body={'state': state_identifier}
        )

    def publish(self, object_id: int) -> None:
        self._call('POST', f'/objects/{object_id}/publish')


__all__ = ['RestContentStore']
