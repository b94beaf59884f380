from flask import Blueprint, jsonify, request
from auth import require_admin, require_any_role, log_auditoria
from blueprints import page_args, bool_arg, json_body, query_filters
from services import client_service

clientes_bp = Blueprint('clientes', __name__, url_prefix='/api/clientes')


@clientes_bp.route('', methods=['GET'])
@clientes_bp.route('/', methods=['GET'])
@require_any_role
def listar_clientes():
    page, per_page = page_args()
    filtros = query_filters('ativo', 'tipo_documento', 'search')
    return jsonify(client_service.list_clients(filtros, page, per_page))


@clientes_bp.route('/busca', methods=['GET'])
@require_any_role
def buscar_clientes():
    """Autocomplete por nome, email, contato ou documento"""
    itens = client_service.search_clients(request.args.get('q'), request.args.get('limite', 10, type=int) or 10)
    return jsonify({'items': itens, 'total': len(itens)})


@clientes_bp.route('/estatisticas', methods=['GET'])
@require_any_role
def estatisticas_clientes():
    return jsonify(client_service.get_client_stats())


@clientes_bp.route('/validar-documento', methods=['POST'])
@require_any_role
def validar_documento():
    return jsonify(client_service.validate_document(json_body().get('documento')))


@clientes_bp.route('/<cliente_id>', methods=['GET'])
@require_any_role
def obter_cliente(cliente_id):
    return jsonify(client_service.get_client(cliente_id))


@clientes_bp.route('', methods=['POST'])
@clientes_bp.route('/', methods=['POST'])
@require_admin
def criar_cliente():
    cliente = client_service.create_client(json_body())
    log_auditoria('CREATE', 'clientes', cliente['id'], None, {'nome': cliente['nome']})
    return jsonify(cliente), 201


@clientes_bp.route('/<cliente_id>', methods=['PUT'])
@require_admin
def atualizar_cliente(cliente_id):
    data = json_body()
    cliente = client_service.update_client(cliente_id, data)
    log_auditoria('UPDATE', 'clientes', cliente_id, None, data)
    return jsonify(cliente)


@clientes_bp.route('/<cliente_id>', methods=['DELETE'])
@require_admin
def desativar_cliente(cliente_id):
    resultado = client_service.deactivate_client(cliente_id, force=bool_arg('force', False))
    log_auditoria('DEACTIVATE', 'clientes', cliente_id, {'ativo': True}, {'ativo': False})
    return jsonify({'message': 'Cliente desativado', **resultado})


@clientes_bp.route('/<cliente_id>/ativar', methods=['POST'])
@require_admin
def ativar_cliente(cliente_id):
    cliente = client_service.activate_client(cliente_id)
    log_auditoria('ACTIVATE', 'clientes', cliente_id, {'ativo': False}, {'ativo': True})
    return jsonify(cliente)
