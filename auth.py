from functools import wraps
from flask import request, jsonify, session, current_app
from flask_login import LoginManager, logout_user, current_user
from werkzeug.security import check_password_hash, generate_password_hash
from datetime import datetime
import extensions
from models_mongo.base import to_object_id
from models_mongo.usuario import ADMIN, OPERATOR, ROLES
import secrets

# Configuração do Flask-Login
login_manager = LoginManager()

# CSRF helpers
def ensure_csrf_token(renew: bool = False) -> str:
    """Ensure there is a CSRF token in session; optionally renew.

    Returns the current token (new or existing).
    """
    token = session.get('csrf_token')
    if renew or not token:
        token = secrets.token_urlsafe(32)
        session['csrf_token'] = token
    return token

def get_csrf_token() -> str | None:
    """Get CSRF token from session without generating."""
    return session.get('csrf_token')

def extract_csrf_header() -> str | None:
    """Retrieve CSRF token from common header names."""
    return (
        request.headers.get('X-CSRF-Token')
        or request.headers.get('X-CSRFToken')
        or request.headers.get('X-CSRF')
    )


def is_api_request() -> bool:
    return (request.is_json or
            request.path.startswith('/api/') or
            'application/json' in request.headers.get('Accept', ''))


# Classe de usuário para MongoDB
class MongoUser:
    def __init__(self, data: dict):
        self.data = data or {}

    def get_id(self):
        return str(self.data.get('_id'))

    @property
    def is_authenticated(self):
        return True

    @property
    def is_active(self):
        return bool(self.data.get('ativo', True))

    @property
    def is_anonymous(self):
        return False

    @property
    def nome(self):
        return self.data.get('nome')

    @property
    def email(self):
        return self.data.get('email')

    @property
    def role(self):
        return self.data.get('role') if self.data.get('role') in ROLES else OPERATOR

    @property
    def is_admin(self):
        return self.role == ADMIN

    @property
    def ultimo_login(self):
        return self.data.get('ultimo_login')

    # Senha
    def check_password(self, password: str) -> bool:
        return check_password_hash(self.data.get('password_hash', ''), password or '')

    def set_password(self, new_password: str):
        self.data['password_hash'] = generate_password_hash(new_password)

    def save_password_change(self):
        if extensions.mongo_db is None:
            raise RuntimeError('MongoDB não inicializado')
        extensions.mongo_db['usuarios'].update_one(
            {'_id': self.data['_id']},
            {'$set': {'password_hash': self.data['password_hash'], 'data_atualizacao': datetime.utcnow()}},
        )

    def to_dict(self):
        ultimo = self.ultimo_login
        return {
            'id': self.get_id(),
            'nome': self.nome,
            'email': self.email,
            'role': self.role,
            'ativo': self.is_active,
            'ultimo_login': ultimo.isoformat() if isinstance(ultimo, datetime) else ultimo,
        }


def init_login_manager(app):
    """Inicializa o gerenciador de login"""
    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({'error': 'Usuário não autenticado'}), 401

@login_manager.user_loader
def load_user(user_id):
    """Carrega o usuário pelo ID (MongoDB)"""
    oid = to_object_id(user_id)
    if oid is None or extensions.mongo_db is None:
        return None
    doc = extensions.mongo_db['usuarios'].find_one({'_id': oid})
    if not doc or not doc.get('ativo', True):
        return None
    return MongoUser(doc)


def log_auditoria(acao, tabela=None, registro_id=None, dados_anteriores=None, dados_novos=None):
    """Registra uma ação de auditoria (MongoDB); falhas só geram log"""
    try:
        if extensions.mongo_db is None:
            return
        extensions.mongo_db['logs_auditoria'].insert_one({
            'usuario_id': current_user.get_id() if current_user.is_authenticated else None,
            'acao': acao,
            'tabela': tabela,
            'registro_id': str(registro_id) if registro_id is not None else None,
            'dados_anteriores': dados_anteriores,
            'dados_novos': dados_novos,
            'ip_address': request.remote_addr,
            'user_agent': request.headers.get('User-Agent'),
            'request_id': request.headers.get('X-Request-ID'),
            'timestamp': datetime.utcnow(),
        })
    except Exception as e:
        current_app.logger.error(f"Erro ao registrar log de auditoria: {e}")


def authenticate_user(email, password):
    """Autentica um usuário pelo email (MongoDB)"""
    if extensions.mongo_db is None:
        current_app.logger.error('MongoDB não inicializado')
        return None
    email = (email or '').strip().lower()
    current_app.logger.debug(f"AUTH: tentando autenticar email='{email}'")
    doc = extensions.mongo_db['usuarios'].find_one({'email': email})
    if not doc:
        return None
    if not doc.get('ativo', True) or not check_password_hash(doc.get('password_hash', ''), password or ''):
        return None
    agora = datetime.utcnow()
    extensions.mongo_db['usuarios'].update_one({'_id': doc['_id']}, {'$set': {'ultimo_login': agora}})
    doc['ultimo_login'] = agora
    return MongoUser(doc)


def logout_user_with_audit():
    """Faz logout do usuário com registro de auditoria (MongoDB)"""
    if current_user.is_authenticated:
        log_auditoria('LOGOUT', 'usuarios', current_user.get_id())
    logout_user()

# Decoradores de autorização por papel

def require_level(*allowed_roles):
    """
    Decorador que requer papéis específicos de acesso

    Args:
        allowed_roles: papéis permitidos ('ADMIN', 'OPERATOR')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Modo dev: leitura pública de GET/HEAD na API
            if request.method in ('GET', 'HEAD') and bool(current_app.config.get('ALLOW_PUBLIC_API_READ')):
                return f(*args, **kwargs)

            if not current_user.is_authenticated:
                return jsonify({'error': 'Usuário não autenticado'}), 401

            if current_user.role not in allowed_roles:
                return jsonify({'error': 'Acesso negado - nível insuficiente'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator

def require_admin(f):
    """Decorador que requer papel ADMIN"""
    return require_level(ADMIN)(f)

def require_operator(f):
    """Decorador que requer papel OPERATOR"""
    return require_level(OPERATOR)(f)

def require_any_role(f):
    """Decorador que requer qualquer papel (apenas login)"""
    return require_level(ADMIN, OPERATOR)(f)


def current_user_id():
    """ObjectId do usuário logado (ou None em leitura pública)"""
    if current_user.is_authenticated:
        return to_object_id(current_user.get_id())
    return None
