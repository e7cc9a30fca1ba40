"""HTTP client for the Cotizador API."""
import logging
import requests
from typing import Dict, Any, List, Optional

from cotizador import exceptions
from cotizador.exceptions import (
    BackendError, BackendUnavailableError, BusinessLogicError, CotizadorError,
    ErpRejectedError, LockContentionError, LockRequiredError, NotFoundError,
    VersionReasonRequired,
)
from cotizador.principal import Principal
from cotizador.utils.number_format import to_number

logger = logging.getLogger(__name__)


def _jsonable(value):
    """Decimals and dates in request bodies as JSON numbers / ISO strings."""
    if isinstance(value, dict):
        return {key: _jsonable(v) for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return to_number(value)


class CotizadorApiClient:
    """Cliente para interactuar con la API de cotizaciones."""

    def __init__(self, base_url: str, principal: Principal, timeout: int = 10, session=None):
        """
        Initialize API client.

        Args:
            base_url: API root, e.g. http://localhost:5000/api
            principal: Acting user, sent with every request
            timeout: Request timeout in seconds
            session: requests-compatible session (defaults to requests.Session())
        """
        self.base_url = base_url.rstrip('/')
        self.principal = principal
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            'Content-Type': 'application/json',
            'X-User-Id': str(principal.id),
            'X-User-Name': principal.name or '',
        }

    @classmethod
    def from_config(cls, config, principal: Principal) -> 'CotizadorApiClient':
        return cls(config.get('COTIZADOR_API_URL'), principal, config.get('COTIZADOR_API_TIMEOUT', 10))

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None,
                 raw: bool = False):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url,
                json=_jsonable(json) if json is not None else None,
                params=params,
                headers=self.headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise BackendUnavailableError(f"No se pudo conectar con el servidor: {e}")

        if response.status_code >= 400:
            raise self._error_from_response(response)

        if raw:
            return response.content

        try:
            body = response.json()
        except ValueError:
            raise BackendError(f"Respuesta inválida del servidor ({response.status_code})", response.status_code)
        return body.get('data') if isinstance(body, dict) else body

    @staticmethod
    def _error_from_response(response) -> CotizadorError:
        """Map an error response back to the exception the backend raised."""
        try:
            body = response.json() or {}
        except ValueError:
            body = {}
        message = body.get('message') or response.text or f"HTTP {response.status_code}"
        status = response.status_code

        if status == 409:
            return LockContentionError(body.get('locked_by'), body.get('expires_at'), message)
        if status == 423:
            return LockRequiredError(message)
        if status == 404:
            return NotFoundError(message)
        if status == 502 and body.get('error') == 'ErpRejectedError':
            return ErpRejectedError(message, {'errors': body.get('errors') or []})
        if status == 400:
            if body.get('requires_new_version'):
                return VersionReasonRequired(message)
            error_class = getattr(exceptions, body.get('error') or '', None)
            if isinstance(error_class, type) and issubclass(error_class, BusinessLogicError) \
                    and error_class is not VersionReasonRequired:
                return error_class(message)
            return BusinessLogicError(message)
        return BackendError(message, status)

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def acquire_lock(self, quote_id: int) -> Dict[str, Any]:
        return self._request('POST', f'/lock/{quote_id}')

    def renew_lock(self, quote_id: int) -> Dict[str, Any]:
        return self._request('PUT', f'/lock/{quote_id}')

    def release_lock(self, quote_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/lock/{quote_id}')

    def check_lock(self, quote_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/lock/{quote_id}')

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    def get_autosave(self, quote_id: int) -> Optional[Dict[str, Any]]:
        return self._request('GET', f'/autosave/{quote_id}')

    def save_autosave(self, quote_id: int, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request('POST', f'/autosave/{quote_id}', json={'items': items})

    def delete_autosave(self, quote_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/autosave/{quote_id}')

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def list_versions(self, quote_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/versions/{quote_id}')

    def create_version(self, quote_id: int, reason: str, update_prices: bool = False) -> Dict[str, Any]:
        return self._request('POST', f'/versions/{quote_id}',
                             json={'reason': reason, 'update_prices': update_prices})

    def restore_version(self, quote_id: int, version: int, reason: Optional[str] = None,
                        update_prices: bool = False) -> Dict[str, Any]:
        return self._request('POST', f'/versions/{quote_id}/restore',
                             json={'version': version, 'reason': reason, 'update_prices': update_prices})

    def analyze_versions(self, quote_id: int, version_a: int, version_b: int) -> Dict[str, Any]:
        return self._request('GET', f'/versions/{quote_id}/analyze',
                             params={'versionA': version_a, 'versionB': version_b})

    def combine_versions(self, quote_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', f'/versions/{quote_id}/combine', json=payload)

    def version_diff(self, quote_id: int, version: int) -> Dict[str, Any]:
        return self._request('GET', f'/versions/{quote_id}/{version}/diff')

    def version_pdf(self, quote_id: int, version: int) -> bytes:
        return self._request('GET', f'/versions/{quote_id}/{version}/pdf', raw=True)

    # ------------------------------------------------------------------
    # Quotes and items
    # ------------------------------------------------------------------

    def list_quotes(self, **filters) -> List[Dict[str, Any]]:
        return self._request('GET', '/quotes', params=filters or None)

    def create_quote(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', '/quotes', json=data)

    def get_quote(self, quote_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/quotes/{quote_id}')

    def update_quote(self, quote_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PATCH', f'/quotes/{quote_id}', json=fields)

    def add_item(self, quote_id: int, item: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', f'/quotes/{quote_id}/items', json=item)

    def update_item(self, quote_id: int, item_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PATCH', f'/quotes/{quote_id}/items/{item_id}', json=fields)

    def delete_item(self, quote_id: int, item_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/quotes/{quote_id}/items/{item_id}')

    def reorder_items(self, quote_id: int, item_ids: List[int]) -> Dict[str, Any]:
        return self._request('POST', f'/quotes/{quote_id}/items/reorder', json={'item_ids': item_ids})

    def get_totals(self, quote_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/quotes/{quote_id}/totals')

    def quote_pdf(self, quote_id: int) -> bytes:
        return self._request('GET', f'/quotes/{quote_id}/pdf', raw=True)

    def create_order(self, quote_id: int, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request('POST', f'/quotes/{quote_id}/orders', json=options or {})
