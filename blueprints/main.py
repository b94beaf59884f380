from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from pymongo.errors import PyMongoError
from auth import ensure_csrf_token, extract_csrf_header, get_csrf_token
import extensions
import time

main_bp = Blueprint('main', __name__)

MUTATING_METHODS = ('POST', 'PUT', 'DELETE', 'PATCH')

# CSRF enforcement for JSON API and token provisioning for everything else
@main_bp.before_app_request
def _csrf_enforcement_and_provisioning():
    path = request.path or ''
    method = (request.method or 'GET').upper()
    is_api = path.startswith('/api/')

    # Ensure a CSRF token exists for non-API page requests
    if method == 'GET' and not is_api:
        ensure_csrf_token(False)

    # Enforce CSRF for all mutating API requests
    if is_api and method in MUTATING_METHODS:
        if not current_user.is_authenticated:
            # Handled by auth decorators, but keep JSON consistency
            return jsonify({'error': 'Usuário não autenticado'}), 401
        if current_app.config.get('DISABLE_API_CSRF'):
            return None
        header_token = extract_csrf_header()
        session_token = get_csrf_token()
        if not session_token or not header_token or header_token != session_token:
            current_app.logger.warning(f"CSRF rejeitado: {method} {path}")
            return jsonify({'error': 'CSRF token inválido ou ausente'}), 403
    return None


@main_bp.route('/')
def index():
    """Informações do serviço"""
    inicio = current_app.config.get('START_TIME') or time.time()
    return jsonify({
        'service': 'camaras-sementes',
        'status': 'ok',
        'mongo_available': bool(current_app.config.get('MONGO_AVAILABLE')),
        'uptime_seconds': int(time.time() - inicio),
        'authenticated': current_user.is_authenticated,
        'csrf_token': ensure_csrf_token(False),
    })

# ====== HEALTHCHECKS ======
@main_bp.route('/health/mongo', methods=['GET'])
def health_mongo():
    """Verifica conectividade com o MongoDB e retorna status simples.
    Resposta esperada:
    { "mongo_ok": true, "db": "<nome>" } ou { "mongo_ok": false, "error": "..." }
    """
    db = extensions.mongo_db
    if db is None:
        return jsonify({
            'mongo_ok': False,
            'error': 'MongoDB não inicializado'
        }), 503
    try:
        # ping básico
        extensions.mongo_client.admin.command('ping')
    except PyMongoError as e:
        current_app.logger.error(f"/health/mongo falhou: {e}")
        return jsonify({'mongo_ok': False, 'error': str(e)}), 503
    return jsonify({
        'mongo_ok': True,
        'db': db.name
    })
