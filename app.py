import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, request, jsonify, g
import os
import time
import uuid
from config import Config
from extensions import init_mongo
from auth import init_login_manager, is_api_request
from services.errors import ServiceError
from blueprints import invalidate_dashboard_cache
from blueprints.main import main_bp
from blueprints.auth import auth_bp
from blueprints.camaras import camaras_bp
from blueprints.localizacoes import localizacoes_bp
from blueprints.produtos import produtos_bp
from blueprints.movimentacoes import movimentacoes_bp
from blueprints.tipos_semente import tipos_semente_bp
from blueprints.clientes import clientes_bp
from blueprints.solicitacoes_retirada import solicitacoes_bp
from blueprints.usuarios import usuarios_bp
from blueprints.dashboard import dashboard_bp
from blueprints.relatorios import relatorios_bp

BLUEPRINTS = (
    main_bp, auth_bp, camaras_bp, localizacoes_bp, produtos_bp, movimentacoes_bp,
    tipos_semente_bp, clientes_bp, solicitacoes_bp, usuarios_bp, dashboard_bp, relatorios_bp,
)
MUTATING_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')


class _ReqIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = getattr(g, 'request_id', None) or '-'
        except RuntimeError:
            # fora de contexto de requisição
            record.request_id = '-'
        return True


def _configure_logging(app):
    log_level_name = str(os.environ.get('LOG_LEVEL', 'INFO')).upper()
    app.logger.setLevel(getattr(logging, log_level_name, logging.INFO))
    log_file = str(os.environ.get('LOG_FILE') or '')
    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=2*1024*1024, backupCount=5, encoding='utf-8')
        fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s [req:%(request_id)s] %(message)s')
        handler.setFormatter(fmt)
        handler.addFilter(_ReqIdFilter())
        app.logger.addHandler(handler)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config['TESTING'] = getattr(config_class, 'TESTING', app.config.get('TESTING', False))

    _configure_logging(app)

    # MongoDB (persistência oficial)
    try:
        init_mongo(app)
        app.config['MONGO_AVAILABLE'] = True
    except RuntimeError as e:
        # O app sobe sem banco; /health/mongo reporta a indisponibilidade
        app.config['MONGO_AVAILABLE'] = False
        app.logger.error(f"[Mongo Init] MongoDB indisponível: {e}")

    # Login manager
    init_login_manager(app)

    # Registrar blueprints
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    app.config['START_TIME'] = app.config.get('START_TIME') or time.time()

    @app.before_request
    def _req_id_provisioning():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

    @app.after_request
    def _set_security_headers(resp):
        resp.headers.setdefault('X-Content-Type-Options', 'nosniff')
        resp.headers.setdefault('X-Frame-Options', 'DENY')
        resp.headers.setdefault('Referrer-Policy', 'no-referrer')
        resp.headers.setdefault('Content-Security-Policy', "default-src 'none'; frame-ancestors 'none'")
        rid = getattr(g, 'request_id', None)
        if rid:
            resp.headers.setdefault('X-Request-ID', rid)
        return resp

    @app.after_request
    def _invalidate_dashboard(resp):
        # Escritas bem-sucedidas na API tornam os resumos do painel obsoletos
        if request.method in MUTATING_METHODS and request.path.startswith('/api/') and resp.status_code < 400:
            invalidate_dashboard_cache()
        return resp

    @app.errorhandler(ServiceError)
    def _handle_service_error(e):
        if e.status_code >= 500:
            app.logger.error(f"[API] {e.code}: {e.message}")
        else:
            app.logger.info(f"[API] {request.method} {request.path} -> {e.status_code} {e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def _handle_404(e):
        if is_api_request():
            return jsonify({'error': 'Not Found', 'code': 404}), 404
        return ("<h1>404</h1><p>Página não encontrada.</p>", 404)

    @app.errorhandler(405)
    def _handle_405(e):
        return jsonify({'error': 'Method Not Allowed', 'code': 405}), 405

    @app.errorhandler(500)
    def _handle_500(e):
        if is_api_request():
            return jsonify({'error': 'Internal Server Error', 'code': 500}), 500
        return ("<h1>500</h1><p>Erro interno do servidor.</p>", 500)

    return app

# Expor o app para gunicorn
app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', '5000'))
    host = os.environ.get('HOST', '127.0.0.1')
    app.run(debug=True, host=host, port=port)
