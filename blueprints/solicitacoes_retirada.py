from flask import Blueprint, jsonify, request
from auth import require_admin, require_operator, require_any_role, log_auditoria, current_user_id
from blueprints import page_args, json_body, query_filters
from services import withdrawal_service
from services.errors import ValidationError

solicitacoes_bp = Blueprint('solicitacoes_retirada', __name__, url_prefix='/api/solicitacoes-retirada')


@solicitacoes_bp.route('/pendentes', methods=['GET'])
@require_any_role
def pendentes():
    page, per_page = page_args(50)
    return jsonify(withdrawal_service.get_pending_withdrawals(page, per_page))


@solicitacoes_bp.route('/produto/<produto_id>', methods=['GET'])
@require_any_role
def por_produto(produto_id):
    page, per_page = page_args(50)
    return jsonify(withdrawal_service.get_withdrawals_by_product(produto_id, page, per_page))


@solicitacoes_bp.route('/minhas', methods=['GET'])
@require_any_role
def minhas():
    usuario_id = current_user_id()
    if usuario_id is None:
        return jsonify({'error': 'Usuário não autenticado'}), 401
    page, per_page = page_args(50)
    return jsonify(withdrawal_service.get_withdrawals_by_user(usuario_id, page, per_page))


@solicitacoes_bp.route('/estatisticas', methods=['GET'])
@require_any_role
def estatisticas():
    return jsonify(withdrawal_service.get_withdrawals_stats())


@solicitacoes_bp.route('/relatorio', methods=['GET'])
@require_any_role
def relatorio():
    return jsonify(withdrawal_service.get_withdrawals_report(
        request.args.get('data_inicio'), request.args.get('data_fim'),
    ))


@solicitacoes_bp.route('', methods=['GET'])
@solicitacoes_bp.route('/', methods=['GET'])
@require_any_role
def listar():
    page, per_page = page_args()
    filtros = query_filters('status', 'tipo', 'produto_id', 'solicitado_por', 'data_inicio', 'data_fim')
    return jsonify(withdrawal_service.list_withdrawals(filtros, page, per_page))


@solicitacoes_bp.route('/<solicitacao_id>', methods=['GET'])
@require_any_role
def obter(solicitacao_id):
    return jsonify(withdrawal_service.get_withdrawal(solicitacao_id))


@solicitacoes_bp.route('', methods=['POST'])
@solicitacoes_bp.route('/', methods=['POST'])
@require_admin
def criar():
    """ADMIN solicita a retirada de um produto LOCADO"""
    data = json_body()
    if not data.get('produto_id'):
        raise ValidationError('produto_id é obrigatório')
    solicitacao = withdrawal_service.create_withdrawal_request(
        data['produto_id'], data.get('tipo'), current_user_id(),
        quantidade=data.get('quantidade') or data.get('quantidade_solicitada'),
        motivo=data.get('motivo'), observacoes=data.get('observacoes'),
    )
    log_auditoria('CREATE', 'solicitacoes_retirada', solicitacao['id'], None,
                  {'produto_id': data['produto_id'], 'tipo': solicitacao['tipo']})
    return jsonify(solicitacao), 201


@solicitacoes_bp.route('/<solicitacao_id>/confirmar', methods=['POST'])
@require_operator
def confirmar(solicitacao_id):
    """OPERATOR confirma a saída física"""
    resultado = withdrawal_service.confirm_withdrawal_request(
        solicitacao_id, current_user_id(), json_body().get('observacoes'),
    )
    log_auditoria('CONFIRM', 'solicitacoes_retirada', solicitacao_id, None,
                  {'status': resultado['solicitacao']['status'], 'produto_status': resultado['produto']['status']})
    return jsonify(resultado)


@solicitacoes_bp.route('/<solicitacao_id>/cancelar', methods=['POST'])
@require_admin
def cancelar(solicitacao_id):
    solicitacao = withdrawal_service.cancel_withdrawal_request(
        solicitacao_id, current_user_id(), json_body().get('motivo'),
    )
    log_auditoria('CANCEL', 'solicitacoes_retirada', solicitacao_id, None, {'status': solicitacao['status']})
    return jsonify(solicitacao)


@solicitacoes_bp.route('/<solicitacao_id>', methods=['PUT'])
@require_admin
def atualizar(solicitacao_id):
    data = json_body()
    solicitacao = withdrawal_service.update_withdrawal_request(solicitacao_id, data)
    log_auditoria('UPDATE', 'solicitacoes_retirada', solicitacao_id, None, data)
    return jsonify(solicitacao)
