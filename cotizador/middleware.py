"""Middleware for the acting user of API requests."""
from functools import wraps
from flask import g, request, jsonify, current_app
from cotizador.principal import Principal

USER_ID_HEADER = 'X-User-Id'
USER_NAME_HEADER = 'X-User-Name'


def load_principal():
    """
    Load the acting user into g (Flask's per-request global).

    The user is identified by the X-User-Id / X-User-Name headers set by
    the client. Sets g.principal to None when the id is missing or invalid.
    """
    g.principal = None

    user_id = request.headers.get(USER_ID_HEADER, '').strip()
    if not user_id:
        return

    try:
        g.principal = Principal(int(user_id), request.headers.get(USER_NAME_HEADER) or None)
    except ValueError:
        current_app.logger.warning(f"Invalid {USER_ID_HEADER} header: {user_id!r}")


def require_principal(f):
    """
    Decorator: Require an identified user.

    Returns 401 JSON when the request carries no valid user headers.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('principal') is None:
            return jsonify({'status': 'error', 'message': 'Usuario no identificado.'}), 401
        return f(*args, **kwargs)
    return decorated_function
