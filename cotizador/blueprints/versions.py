"""Versions blueprint: history, new versions, restore, analyze and combine."""
from flask import Blueprint, request, g, send_file, current_app
from cotizador.database import get_session
from cotizador.exceptions import BusinessLogicError, MergeAnalysisError
from cotizador.middleware import require_principal
from cotizador.services import version_service
from cotizador.services.pdf_service import generate_quote_pdf
from cotizador.utils.responses import ok, json_body, parse_bool
from cotizador.blueprints.quotes import business_info

versions_bp = Blueprint('versions', __name__, url_prefix='/api/versions')


@versions_bp.route('/<int:quote_id>', methods=['GET'])
def list_versions(quote_id):
    """Archived versions plus the live one (``current: true``)."""
    return ok(version_service.list_versions(get_session(), quote_id))


@versions_bp.route('/<int:quote_id>', methods=['POST'])
@require_principal
def create_version(quote_id):
    data = json_body()
    quote = version_service.create_version(
        get_session(), quote_id, g.principal,
        reason=data.get('reason'),
        update_prices=parse_bool(data.get('update_prices'))
    )
    return ok(quote.to_dict(), 201)


@versions_bp.route('/<int:quote_id>/restore', methods=['POST'])
@require_principal
def restore_version(quote_id):
    data = json_body()
    try:
        version = int(data.get('version', data.get('version_number')))
    except (TypeError, ValueError):
        raise BusinessLogicError('Debe indicar la versión a restaurar.')

    quote = version_service.restore_version(
        get_session(), quote_id, version, g.principal,
        reason=data.get('reason'),
        update_prices=parse_bool(data.get('update_prices'))
    )
    return ok(quote.to_dict())


@versions_bp.route('/<int:quote_id>/analyze', methods=['GET'])
def analyze_versions(quote_id):
    version_a = request.args.get('versionA')
    version_b = request.args.get('versionB')
    if not version_a or not version_b:
        raise MergeAnalysisError('Debe indicar versionA y versionB.')
    return ok(version_service.analyze(get_session(), quote_id, version_a, version_b))


@versions_bp.route('/<int:quote_id>/combine', methods=['POST'])
@require_principal
def combine_versions(quote_id):
    """Write the combination of two versions as the new current version."""
    data = json_body()
    data['update_prices'] = parse_bool(data.get('update_prices'))
    quote = version_service.combine(get_session(), quote_id, g.principal, data)
    return ok(quote.to_dict(), 201)


@versions_bp.route('/<int:quote_id>/<int:version>/diff', methods=['GET'])
def version_diff(quote_id, version):
    return ok(version_service.version_diff(get_session(), quote_id, version))


@versions_bp.route('/<int:quote_id>/<int:version>/pdf', methods=['GET'])
def version_pdf(quote_id, version):
    pdf_buffer = generate_quote_pdf(get_session(), quote_id, business_info(), version=version)
    current_app.logger.info(f"[VERSION] PDF generated for quote {quote_id} v{version}")
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'cotizacion_{quote_id}_v{version}.pdf'
    )
