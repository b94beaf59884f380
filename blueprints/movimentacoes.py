from flask import Blueprint, jsonify, request
from auth import require_admin, require_any_role, require_level, log_auditoria, current_user_id
from blueprints import page_args, bool_arg, json_body, query_filters
from models_mongo.produto import ProdutoMongo
from models_mongo.usuario import ADMIN, OPERATOR
from services import movement_service
from services.common import require_doc

movimentacoes_bp = Blueprint('movimentacoes', __name__, url_prefix='/api/movimentacoes')

FILTROS = ('tipo', 'produto_id', 'usuario_id', 'localizacao_id', 'data_inicio', 'data_fim')


def _filtros():
    filtros = query_filters(*FILTROS)
    filtros['verificada'] = bool_arg('verificada')
    return filtros


@movimentacoes_bp.route('', methods=['GET'])
@movimentacoes_bp.route('/', methods=['GET'])
@require_any_role
def listar_movimentacoes():
    page, per_page = page_args()
    return jsonify(movement_service.list_movements(_filtros(), page, per_page))


@movimentacoes_bp.route('/produto/<produto_id>', methods=['GET'])
@require_any_role
def movimentacoes_do_produto(produto_id):
    page, per_page = page_args(50)
    return jsonify(movement_service.get_movements_by_product(produto_id, page, per_page))


@movimentacoes_bp.route('/localizacao/<loc_id>', methods=['GET'])
@require_any_role
def movimentacoes_da_localizacao(loc_id):
    page, per_page = page_args(50)
    return jsonify(movement_service.get_movements_by_location(loc_id, page, per_page))


@movimentacoes_bp.route('/padroes', methods=['GET'])
@require_any_role
def padroes():
    return jsonify(movement_service.analyze_patterns(_filtros(), request.args.get('agrupar_por', 'day')))


@movimentacoes_bp.route('/auditoria', methods=['GET'])
@require_admin
def auditoria():
    return jsonify(movement_service.generate_audit_report(_filtros()))


@movimentacoes_bp.route('/estatisticas', methods=['GET'])
@require_any_role
def estatisticas():
    return jsonify(movement_service.get_movement_stats(request.args.get('dias', 30)))


@movimentacoes_bp.route('/historico/<produto_id>', methods=['GET'])
@require_any_role
def historico(produto_id):
    return jsonify(movement_service.product_history(produto_id))


@movimentacoes_bp.route('', methods=['POST'])
@movimentacoes_bp.route('/', methods=['POST'])
@require_level(ADMIN, OPERATOR)
def registrar_movimentacao():
    """Registro de movimentação feito pelo usuário; não altera produto nem localização"""
    data = json_body()
    require_doc(ProdutoMongo, data.get('produto_id'), 'Produto')
    mov = movement_service.register_movement(data, current_user_id(), automatica=False)
    log_auditoria('CREATE', 'movimentacoes', mov.id, None, {'tipo': mov.get('tipo'), 'produto_id': data.get('produto_id')})
    return jsonify(mov.to_dict()), 201


@movimentacoes_bp.route('/manual', methods=['POST'])
@require_admin
def registrar_manual():
    data = json_body()
    mov = movement_service.register_manual_movement(data, current_user_id())
    log_auditoria('CREATE_MANUAL', 'movimentacoes', mov.id, None, {'tipo': mov.get('tipo'), 'produto_id': data.get('produto_id')})
    return jsonify(mov.to_dict()), 201


@movimentacoes_bp.route('/<mov_id>/verificar', methods=['POST'])
@require_admin
def verificar(mov_id):
    mov = movement_service.verify_movement(mov_id, current_user_id(), json_body().get('observacoes', ''))
    log_auditoria('VERIFY', 'movimentacoes', mov_id)
    return jsonify(mov)


@movimentacoes_bp.route('/verificar-pendentes', methods=['POST'])
@require_admin
def verificar_pendentes():
    resultado = movement_service.verify_pending_movements(current_user_id(), json_body().get('horas', 24))
    log_auditoria('VERIFY_BATCH', 'movimentacoes', None, None, resultado)
    return jsonify(resultado)
