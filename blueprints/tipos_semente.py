from flask import Blueprint, jsonify, request
from auth import require_admin, require_any_role, log_auditoria
from blueprints import page_args, json_body, query_filters
from services import seed_type_service

tipos_semente_bp = Blueprint('tipos_semente', __name__, url_prefix='/api/tipos-semente')


@tipos_semente_bp.route('', methods=['GET'])
@tipos_semente_bp.route('/', methods=['GET'])
@require_any_role
def listar_tipos():
    page, per_page = page_args()
    return jsonify(seed_type_service.list_seed_types(query_filters('ativo', 'search'), page, per_page))


@tipos_semente_bp.route('/por-condicoes', methods=['GET'])
@require_any_role
def tipos_por_condicoes():
    itens = seed_type_service.find_by_conditions(
        request.args.get('temperatura'), request.args.get('umidade'), request.args.get('tolerancia'),
    )
    return jsonify({'items': itens, 'total': len(itens)})


@tipos_semente_bp.route('/<tipo_id>', methods=['GET'])
@require_any_role
def obter_tipo(tipo_id):
    return jsonify(seed_type_service.get_seed_type(tipo_id))


@tipos_semente_bp.route('', methods=['POST'])
@tipos_semente_bp.route('/', methods=['POST'])
@require_admin
def criar_tipo():
    tipo = seed_type_service.create_seed_type(json_body())
    log_auditoria('CREATE', 'tipos_semente', tipo['id'], None, {'nome': tipo['nome']})
    return jsonify(tipo), 201


@tipos_semente_bp.route('/<tipo_id>', methods=['PUT'])
@require_admin
def atualizar_tipo(tipo_id):
    data = json_body()
    tipo = seed_type_service.update_seed_type(tipo_id, data)
    log_auditoria('UPDATE', 'tipos_semente', tipo_id, None, data)
    return jsonify(tipo)


@tipos_semente_bp.route('/<tipo_id>', methods=['DELETE'])
@require_admin
def excluir_tipo(tipo_id):
    """Exclusão lógica"""
    resultado = seed_type_service.delete_seed_type(tipo_id)
    log_auditoria('DEACTIVATE', 'tipos_semente', tipo_id, {'ativo': True}, {'ativo': False})
    return jsonify({'message': 'Tipo de semente desativado', **resultado})
