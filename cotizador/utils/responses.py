"""JSON envelope helpers for API blueprints."""
from flask import jsonify, request
from cotizador.exceptions import BusinessLogicError


def ok(data=None, status_code=200):
    """Success envelope: {"status": "ok", "data": ...}."""
    return jsonify({'status': 'ok', 'data': data}), status_code


def json_body():
    """Request JSON object; an empty body is an empty dict."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BusinessLogicError('El cuerpo de la solicitud debe ser un objeto JSON.')
    return data


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'si', 'sí', 'on')
