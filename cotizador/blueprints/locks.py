"""Locks blueprint: acquire, renew, release and check quote edit locks."""
from flask import Blueprint, current_app, g
from cotizador.database import get_session
from cotizador.middleware import require_principal
from cotizador.services import lock_service
from cotizador.services.quote_service import get_quote
from cotizador.utils.responses import ok

locks_bp = Blueprint('locks', __name__, url_prefix='/api/lock')


@locks_bp.route('/<int:quote_id>', methods=['POST'])
@require_principal
def acquire_lock(quote_id):
    """Acquire the edit lock; ``locked: false`` reports who holds it."""
    db_session = get_session()
    get_quote(db_session, quote_id)
    result = lock_service.acquire(
        db_session, quote_id, g.principal,
        ttl_seconds=current_app.config['LOCK_TTL_SECONDS']
    )
    return ok(result)


@locks_bp.route('/<int:quote_id>', methods=['PUT'])
@require_principal
def renew_lock(quote_id):
    db_session = get_session()
    result = lock_service.renew(
        db_session, quote_id, g.principal,
        ttl_seconds=current_app.config['LOCK_TTL_SECONDS']
    )
    return ok(result)


@locks_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_principal
def release_lock(quote_id):
    released = lock_service.release(get_session(), quote_id, g.principal)
    return ok({'released': released})


@locks_bp.route('/<int:quote_id>', methods=['GET'])
def check_lock(quote_id):
    return ok(lock_service.check(get_session(), quote_id, g.get('principal')))
