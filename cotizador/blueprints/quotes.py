"""Quotes blueprint: quotes, header, line items, totals, PDF and ERP orders."""
from flask import Blueprint, request, send_file, current_app, g
from cotizador.database import get_session
from cotizador.exceptions import BusinessLogicError
from cotizador.middleware import require_principal
from cotizador.services import quote_service
from cotizador.services.erp_service import TangoClient, create_order_from_quote
from cotizador.services.pdf_service import generate_quote_pdf
from cotizador.services.totals_service import serialize_totals
from cotizador.utils.responses import ok, json_body

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')


def business_info():
    """Business info from config, printed on PDFs."""
    return {
        'name': current_app.config.get('BUSINESS_NAME', ''),
        'address': current_app.config.get('BUSINESS_ADDRESS', ''),
        'phone': current_app.config.get('BUSINESS_PHONE', ''),
        'email': current_app.config.get('BUSINESS_EMAIL', ''),
    }


@quotes_bp.route('', methods=['GET'])
def list_quotes():
    """List quotes, newest first. Filters: state, customer."""
    try:
        limit = min(int(request.args.get('limit', 100)), 500)
    except ValueError:
        raise BusinessLogicError('Parámetro limit inválido.')

    quotes = quote_service.list_quotes(
        get_session(),
        state=request.args.get('state', '').strip().lower() or None,
        customer_code=request.args.get('customer', '').strip() or None,
        limit=limit
    )
    return ok([quote.to_dict(include_items=False) for quote in quotes])


@quotes_bp.route('', methods=['POST'])
@require_principal
def create_quote():
    """Create a quote (version 1) with its initial items."""
    quote = quote_service.create_quote(
        get_session(), json_body(), g.principal,
        valid_days=current_app.config.get('QUOTE_VALID_DAYS', 15)
    )
    current_app.logger.info(f"Quote {quote.quote_number} created (id={quote.id})")
    return ok(quote.to_dict(), 201)


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
def get_quote(quote_id):
    return ok(quote_service.get_quote(get_session(), quote_id).to_dict())


@quotes_bp.route('/<int:quote_id>', methods=['PATCH'])
@require_principal
def update_quote(quote_id):
    quote = quote_service.update_header(get_session(), quote_id, json_body(), g.principal)
    return ok(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/items', methods=['POST'])
@require_principal
def add_item(quote_id):
    """Add an item; ``order`` is the 1-based position to insert at."""
    item = quote_service.add_item(get_session(), quote_id, json_body(), g.principal)
    return ok(item.to_dict(), 201)


@quotes_bp.route('/<int:quote_id>/items/<int:item_id>', methods=['PATCH'])
@require_principal
def update_item(quote_id, item_id):
    item = quote_service.update_item(get_session(), quote_id, item_id, json_body(), g.principal)
    return ok(item.to_dict())


@quotes_bp.route('/<int:quote_id>/items/<int:item_id>', methods=['DELETE'])
@require_principal
def delete_item(quote_id, item_id):
    quote_service.delete_item(get_session(), quote_id, item_id, g.principal)
    return ok({'deleted': item_id})


@quotes_bp.route('/<int:quote_id>/items/reorder', methods=['POST'])
@require_principal
def reorder_items(quote_id):
    data = json_body()
    quote = quote_service.reorder_items(get_session(), quote_id, data.get('item_ids'), g.principal)
    return ok(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/totals', methods=['GET'])
def quote_totals(quote_id):
    """Totals of the live version, including the customer's percepciones."""
    totals = quote_service.quote_totals(
        get_session(), quote_id,
        default_tax_rate=current_app.config.get('DEFAULT_TAX_RATE', '21')
    )
    return ok(serialize_totals(totals))


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
def quote_pdf(quote_id):
    db_session = get_session()
    quote = quote_service.get_quote(db_session, quote_id)
    pdf_buffer = generate_quote_pdf(db_session, quote_id, business_info())

    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f"cotizacion_{quote.quote_number}.pdf"
    )


@quotes_bp.route('/<int:quote_id>/orders', methods=['POST'])
@require_principal
def create_order(quote_id):
    """Push an approved quote to Tango as a sales order."""
    client = TangoClient.from_config(current_app.config)
    quote = create_order_from_quote(get_session(), quote_id, g.principal, client, json_body())
    return ok(quote.to_dict(), 201)
