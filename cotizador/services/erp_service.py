"""Tango ERP integration: push approved quotes as sales orders (pedidos)."""
import logging
import requests
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy.orm import Session

from cotizador.exceptions import BusinessLogicError, CotizadorError, ErpRejectedError
from cotizador.models import QuoteState
from cotizador.principal import Principal
from cotizador.services.lock_service import ensure_lock_held
from cotizador.services.quote_service import get_quote
from cotizador.utils.number_format import to_number

logger = logging.getLogger(__name__)


class TangoClient:
    """Cliente para interactuar con la API de pedidos de Tango."""

    def __init__(self, base_url: Optional[str], token: Optional[str] = None, timeout: int = 10):
        """
        Initialize Tango client.

        Args:
            base_url: Tango API base URL (TANGO_API_URL)
            token: Bearer token (TANGO_API_TOKEN)
            timeout: Request timeout in seconds
        """
        if not base_url:
            raise CotizadorError("La integración con Tango no está configurada (TANGO_API_URL)", 503)

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {'Content-Type': 'application/json'}
        if token:
            self.headers['Authorization'] = f'Bearer {token}'

    @classmethod
    def from_config(cls, config) -> 'TangoClient':
        return cls(config.get('TANGO_API_URL'), config.get('TANGO_API_TOKEN'), config.get('TANGO_TIMEOUT', 10))

    def create_order(self, payload: Dict[str, Any]) -> str:
        """
        Crear pedido en Tango.

        Args:
            payload: Pedido con cabecera y renglones

        Returns:
            Número de pedido asignado por Tango

        Raises:
            ErpRejectedError: Si Tango rechaza el pedido o no responde
        """
        url = f"{self.base_url}/pedidos"
        logger.info(f"[ERP] Creating order for quote {payload.get('nroCotizacion')}")

        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[ERP] Tango unreachable: {e}")
            raise ErpRejectedError(f"No se pudo conectar con Tango: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok or not data.get('exito'):
            message = _rejection_message(data) or response.text or f"HTTP {response.status_code}"
            logger.error(f"[ERP] Order rejected: {message}")
            raise ErpRejectedError(message, {'errors': data.get('errores') or []})

        order_number = data.get('numeroPedido')
        if not order_number:
            raise ErpRejectedError("Tango no devolvió número de pedido")

        logger.info(f"[ERP] Order created: {order_number}")
        return str(order_number)


def _rejection_message(data: Dict[str, Any]) -> Optional[str]:
    """Tango's own text: ``mensaje`` plus any ``errores``, verbatim."""
    parts = []
    if data.get('mensaje'):
        parts.append(str(data['mensaje']))
    parts.extend(str(e) for e in data.get('errores') or [])
    return ' | '.join(parts) if parts else None


def build_order_payload(quote, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Pedido payload from the live version of a quote."""
    options = options or {}
    return {
        'cotizacionId': quote.id,
        'nroCotizacion': quote.quote_number,
        'version': quote.version,
        'codCliente': quote.customer_code,
        'condicionVenta': quote.sales_condition,
        'listaPrecios': quote.price_list,
        'talonario': quote.document_series,
        'transporte': quote.carrier_code,
        'moneda': quote.currency,
        'bonificacion': to_number(quote.general_discount_pct),
        'fechaEntrega': options.get('delivery_date'),
        'observaciones': options.get('notes') or quote.notes,
        'depositoId': options.get('warehouse_id'),
        'renglones': [
            {
                'renglon': item.order,
                'codArticulo': item.code,
                'descripcion': item.description,
                'cantidad': to_number(item.quantity),
                'precio': to_number(item.unit_price),
                'bonificacion': to_number(item.discount_pct),
            }
            for item in quote.items
        ],
    }


def create_order_from_quote(session: Session, quote_id: int, principal: Principal, client: TangoClient,
                            options: Optional[Dict[str, Any]] = None):
    """
    Push an approved quote to Tango.

    On success the ERP order number is recorded and the quote becomes
    ``converted``. A rejection leaves the quote untouched.

    Raises:
        BusinessLogicError: quote not approved or already converted
        ErpRejectedError: Tango refused the order (message verbatim)
    """
    quote = get_quote(session, quote_id)
    ensure_lock_held(session, quote_id, principal)

    if quote.erp_order_number:
        raise BusinessLogicError(f'La cotización ya generó el pedido {quote.erp_order_number}.')
    if quote.state != QuoteState.APPROVED.value:
        raise BusinessLogicError('Solo se pueden enviar a Tango cotizaciones aprobadas.')
    if not quote.items:
        raise BusinessLogicError('La cotización no tiene artículos.')
    if not quote.customer_code:
        raise BusinessLogicError('La cotización no tiene cliente asignado.')

    order_number = client.create_order(build_order_payload(quote, options))

    try:
        quote.erp_order_number = order_number
        quote.state = QuoteState.CONVERTED.value
        quote.updated_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        logger.error(f"[ERP] Order {order_number} created but quote {quote_id} could not be updated")
        raise

    logger.info(f"[ERP] Quote {quote.quote_number} converted to order {order_number}")
    return quote
