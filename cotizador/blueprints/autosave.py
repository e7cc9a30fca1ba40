"""Autosave blueprint: scratch records of unsaved item changes."""
from flask import Blueprint, g
from cotizador.database import get_session
from cotizador.middleware import require_principal
from cotizador.services import autosave_service
from cotizador.services.quote_service import get_quote
from cotizador.utils.responses import ok, json_body

autosave_bp = Blueprint('autosave', __name__, url_prefix='/api/autosave')


@autosave_bp.route('/<int:quote_id>', methods=['GET'])
def get_autosave(quote_id):
    """Scratch record, or null data when there is nothing to recover."""
    return ok(autosave_service.get_autosave(get_session(), quote_id))


@autosave_bp.route('/<int:quote_id>', methods=['POST'])
@require_principal
def save_autosave(quote_id):
    db_session = get_session()
    get_quote(db_session, quote_id)
    data = json_body()
    record = autosave_service.save_autosave(db_session, quote_id, data.get('items'), g.principal)
    return ok(record)


@autosave_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_principal
def delete_autosave(quote_id):
    deleted = autosave_service.delete_autosave(get_session(), quote_id)
    return ok({'deleted': deleted})
