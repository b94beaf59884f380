from flask import Blueprint, jsonify, request
from flask_login import current_user
from auth import require_admin, require_any_role, log_auditoria
from blueprints import page_args, json_body, query_filters
from services import user_service

usuarios_bp = Blueprint('usuarios', __name__, url_prefix='/api/usuarios')


@usuarios_bp.route('', methods=['GET'])
@usuarios_bp.route('/', methods=['GET'])
@require_admin
def listar_usuarios():
    page, per_page = page_args()
    return jsonify(user_service.list_users(query_filters('role', 'ativo', 'search'), page, per_page))


@usuarios_bp.route('/<usuario_id>', methods=['GET'])
@require_admin
def obter_usuario(usuario_id):
    return jsonify(user_service.get_user(usuario_id))


@usuarios_bp.route('', methods=['POST'])
@usuarios_bp.route('/', methods=['POST'])
@require_admin
def criar_usuario():
    usuario = user_service.create_user(json_body())
    log_auditoria('CREATE', 'usuarios', usuario['id'], None, {'email': usuario['email'], 'role': usuario['role']})
    return jsonify(usuario), 201


@usuarios_bp.route('/<usuario_id>', methods=['PUT'])
@require_admin
def atualizar_usuario(usuario_id):
    data = json_body()
    anterior = user_service.get_user(usuario_id)
    usuario = user_service.update_user(usuario_id, data, current_user.get_id())
    log_auditoria('UPDATE', 'usuarios', usuario_id,
                  {k: anterior.get(k) for k in ('nome', 'email', 'role', 'ativo')},
                  {k: usuario.get(k) for k in ('nome', 'email', 'role', 'ativo')})
    return jsonify(usuario)


@usuarios_bp.route('/<usuario_id>', methods=['DELETE'])
@require_admin
def desativar_usuario(usuario_id):
    resultado = user_service.deactivate_user(usuario_id, current_user.get_id())
    log_auditoria('DEACTIVATE', 'usuarios', usuario_id, {'ativo': True}, {'ativo': False})
    return jsonify({'message': 'Usuário desativado', **resultado})


@usuarios_bp.route('/<usuario_id>/reset-password', methods=['POST'])
@require_admin
def redefinir_senha(usuario_id):
    data = json_body()
    resultado = user_service.reset_password(usuario_id, data.get('nova_senha') or data.get('password'))
    log_auditoria('RESET_PASSWORD', 'usuarios', usuario_id)
    return jsonify(resultado)


@usuarios_bp.route('/<usuario_id>/produtividade', methods=['GET'])
@require_any_role
def produtividade(usuario_id):
    """ADMIN vê qualquer usuário; OPERATOR apenas a si mesmo"""
    if not current_user.is_authenticated:
        return jsonify({'error': 'Usuário não autenticado'}), 401
    if not current_user.is_admin and current_user.get_id() != usuario_id:
        return jsonify({'error': 'Acesso negado - nível insuficiente'}), 403
    return jsonify(user_service.user_productivity(usuario_id, request.args.get('dias', 30)))
