from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, login_required, current_user
import time
from auth import (
    authenticate_user, logout_user_with_audit, log_auditoria, ensure_csrf_token, require_admin,
)
from models_mongo.usuario import SENHA_MIN
from services import user_service

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

# Rate limiting simples por IP para rota de login
LOGIN_ATTEMPTS = {}

def _get_client_ip():
    xff = request.headers.get('X-Forwarded-For')
    if xff:
        return xff.split(',')[0].strip()
    xri = request.headers.get('X-Real-IP')
    if xri:
        return xri.strip()
    return request.remote_addr or 'local'

def _too_many_attempts(ip, now=None):
    if current_app.config.get('DISABLE_LOGIN_RATE_LIMIT'):
        return False
    now = now or time.time()
    window_short = 60.0
    window_long = 600.0
    max_short = 5
    max_long = 20
    attempts = LOGIN_ATTEMPTS.get(ip, [])
    # Filtrar apenas dentro das janelas
    attempts = [t for t in attempts if (now - t) <= window_long]
    LOGIN_ATTEMPTS[ip] = attempts
    count_short = sum(1 for t in attempts if (now - t) <= window_short)
    count_long = len(attempts)
    if count_short >= max_short or count_long >= max_long:
        return True
    return False

def _record_attempt(ip, now=None):
    now = now or time.time()
    attempts = LOGIN_ATTEMPTS.get(ip, [])
    attempts.append(now)
    LOGIN_ATTEMPTS[ip] = attempts

@auth_bp.route('/login', methods=['POST'])
def login():
    """Login via JSON {email, password}"""
    ip = _get_client_ip()
    if _too_many_attempts(ip):
        current_app.logger.warning(f"Rate limit de login atingido para IP {ip}")
        return jsonify({'error': 'Muitas tentativas. Tente novamente em alguns minutos.'}), 429

    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email e senha são obrigatórios'}), 400

    usuario = authenticate_user(email, password)
    if not usuario:
        _record_attempt(ip)
        current_app.logger.info(f"Falha de login para {email} (IP {ip})")
        return jsonify({'error': 'Credenciais inválidas'}), 401

    login_user(usuario, remember=bool(data.get('remember_me', False)))
    LOGIN_ATTEMPTS.pop(ip, None)
    log_auditoria('LOGIN', 'usuarios', usuario.get_id())
    token = ensure_csrf_token(renew=True)
    return jsonify({
        'message': 'Login realizado com sucesso',
        'user': usuario.to_dict(),
        'csrf_token': token,
    }), 200

@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Logout do usuário"""
    logout_user_with_audit()
    return jsonify({'message': 'Logout realizado com sucesso'}), 200

@auth_bp.route('/register', methods=['POST'])
@require_admin
def register():
    """Cadastro de usuário por um administrador"""
    data = request.get_json(silent=True) or {}
    usuario = user_service.create_user(data)
    log_auditoria('CREATE', 'usuarios', usuario['id'], None, {'email': usuario['email'], 'role': usuario['role']})
    return jsonify({'message': 'Usuário criado com sucesso', 'user': usuario}), 201

@auth_bp.route('/refresh', methods=['POST'])
@login_required
def refresh():
    """Renova o token CSRF da sessão"""
    return jsonify({'csrf_token': ensure_csrf_token(renew=True), 'user': current_user.to_dict()}), 200

@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'user': current_user.to_dict()})

@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    """Alteração de senha do usuário (Mongo)"""
    data = request.get_json(silent=True) or {}
    current_password = data.get('current_password', '')
    new_password = data.get('new_password', '')
    confirm_password = data.get('confirm_password', new_password)

    # Validações
    if not current_password or not new_password:
        return jsonify({'error': 'Todos os campos são obrigatórios'}), 400
    if not current_user.check_password(current_password):
        return jsonify({'error': 'Senha atual incorreta'}), 400
    if new_password != confirm_password:
        return jsonify({'error': 'Nova senha e confirmação não coincidem'}), 400
    if len(new_password) < SENHA_MIN:
        return jsonify({'error': f'Senha deve ter pelo menos {SENHA_MIN} caracteres'}), 400

    current_user.set_password(new_password)
    current_user.save_password_change()
    log_auditoria('CHANGE_PASSWORD', 'usuarios', current_user.get_id())
    return jsonify({'message': 'Senha alterada com sucesso'}), 200

@auth_bp.route('/check-session')
def check_session():
    """Verifica se sessão é válida"""
    if current_user.is_authenticated:
        return jsonify({'authenticated': True, 'user': current_user.to_dict()})
    return jsonify({'authenticated': False}), 200

@auth_bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': ensure_csrf_token()})
