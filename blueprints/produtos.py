from flask import Blueprint, jsonify
from auth import require_admin, require_any_role, require_level, log_auditoria, current_user_id
from blueprints import page_args, json_body, query_filters
from models_mongo.usuario import ADMIN, OPERATOR
from services import product_service, location_service
from services.common import to_float
from services.errors import ValidationError

produtos_bp = Blueprint('produtos', __name__, url_prefix='/api/produtos')


def _resumo(produto):
    return {k: produto.get(k) for k in ('status', 'quantidade', 'peso_total', 'localizacao_id', 'versao')}


def _audit(acao, antes, depois):
    log_auditoria(acao, 'produtos', depois.get('id') if depois else antes.get('id'),
                  _resumo(antes) if antes else None, _resumo(depois) if depois else None)


# ====== CONSULTAS ======
@produtos_bp.route('', methods=['GET'])
@produtos_bp.route('/', methods=['GET'])
@require_any_role
def listar_produtos():
    page, per_page = page_args()
    filtros = query_filters('status', 'tipo_semente_id', 'cliente_id', 'localizacao_id', 'lote_produtos_id',
                            'camara_id', 'search', 'vencendo_em_dias')
    return jsonify(product_service.list_products(filtros, page, per_page))


@produtos_bp.route('/analise-distribuicao', methods=['GET'])
@require_any_role
def analise_distribuicao():
    return jsonify(product_service.analyze_distribution())


@produtos_bp.route('/validar-dados', methods=['POST'])
@require_any_role
def validar_dados():
    return jsonify(product_service.validate_product_data(json_body()))


@produtos_bp.route('/localizacao-otima', methods=['POST'])
@require_any_role
def localizacao_otima():
    """Melhor posição livre para o peso informado (ou quantidade x peso_unitario)"""
    data = json_body()
    peso = data.get('peso')
    if peso is None and data.get('quantidade') is not None:
        peso = (to_float(data.get('quantidade'), 'quantidade', 0)
                * to_float(data.get('peso_unitario'), 'peso_unitario', 0))
    resultado = location_service.find_optimal_location(peso, data.get('camara_id'), data.get('limite') or 5)
    if resultado is None:
        return jsonify({
            'localizacao': None,
            'alternativas': [],
            'mensagem': 'Nenhuma localização disponível comporta o peso informado',
        })
    return jsonify(resultado)


@produtos_bp.route('/gerar-codigo', methods=['POST'])
@require_any_role
def gerar_codigo():
    data = json_body()
    if not data.get('tipo_semente_id'):
        raise ValidationError('tipo_semente_id é obrigatório')
    return jsonify(product_service.generate_product_code(data['tipo_semente_id'], data.get('data')))


@produtos_bp.route('/aguardando-locacao', methods=['GET'])
@require_any_role
def aguardando_locacao():
    itens = product_service.get_products_pending_location()
    return jsonify({'items': itens, 'total': len(itens)})


@produtos_bp.route('/aguardando-locacao/agrupados', methods=['GET'])
@require_any_role
def aguardando_locacao_agrupados():
    return jsonify(product_service.get_products_pending_allocation_grouped())


@produtos_bp.route('/lote/<lote_id>', methods=['GET'])
@require_any_role
def produtos_do_lote(lote_id):
    return jsonify(product_service.get_products_by_batch(lote_id))


@produtos_bp.route('/aguardando-retirada', methods=['GET'])
@require_any_role
def aguardando_retirada():
    itens = product_service.get_products_pending_withdrawal()
    return jsonify({'items': itens, 'total': len(itens)})


@produtos_bp.route('/<produto_id>', methods=['GET'])
@require_any_role
def obter_produto(produto_id):
    return jsonify(product_service.get_product(produto_id))


# ====== CADASTRO ======
@produtos_bp.route('', methods=['POST'])
@produtos_bp.route('/', methods=['POST'])
@require_admin
def criar_produto():
    data = json_body()
    produto = product_service.create_product(data, current_user_id(), auto_localizar=bool(data.get('auto_localizar')))
    _audit('CREATE', None, produto)
    return jsonify(produto), 201


@produtos_bp.route('/lote', methods=['POST'])
@require_admin
def criar_lote():
    """Cadastro em lote: todos os produtos ou nenhum"""
    data = json_body()
    resultado = product_service.create_products_batch(
        data.get('cliente_id'), data.get('produtos'), current_user_id(),
        nome_lote=data.get('nome_lote'), descricao=data.get('descricao', ''),
    )
    log_auditoria('CREATE_BATCH', 'lotes_produtos', resultado['lote']['id'], None,
                  {'total_produtos': len(resultado['produtos'])})
    return jsonify(resultado), 201


@produtos_bp.route('/<produto_id>', methods=['PUT'])
@require_any_role
def atualizar_produto(produto_id):
    antes = product_service.get_product(produto_id)
    produto = product_service.update_product(produto_id, json_body(), current_user_id())
    _audit('UPDATE', antes, produto)
    return jsonify(produto)


@produtos_bp.route('/<produto_id>', methods=['DELETE'])
@require_admin
def remover_produto(produto_id):
    antes = product_service.get_product(produto_id)
    produto = product_service.remove_product(produto_id, current_user_id(), json_body().get('motivo'))
    _audit('DELETE', antes, produto)
    return jsonify({'message': 'Produto removido com sucesso', 'produto': produto})


# ====== OPERAÇÕES DE ESTOQUE ======
@produtos_bp.route('/<produto_id>/locar', methods=['POST'])
@require_level(ADMIN, OPERATOR)
def locar_produto(produto_id):
    data = json_body()
    antes = product_service.get_product(produto_id)
    produto = product_service.locate_product(produto_id, data.get('localizacao_id'), current_user_id(),
                                             data.get('motivo'))
    _audit('LOCATE', antes, produto)
    return jsonify(produto)


@produtos_bp.route('/<produto_id>/mover', methods=['POST'])
@require_level(ADMIN, OPERATOR)
def mover_produto(produto_id):
    data = json_body()
    destino = data.get('nova_localizacao_id') or data.get('localizacao_id')
    antes = product_service.get_product(produto_id)
    produto = product_service.move_product(produto_id, destino, current_user_id(), data.get('motivo'))
    _audit('MOVE', antes, produto)
    return jsonify(produto)


@produtos_bp.route('/<produto_id>/solicitar-retirada', methods=['POST'])
@require_admin
def solicitar_retirada(produto_id):
    solicitacao = product_service.request_product_withdrawal(produto_id, json_body(), current_user_id())
    log_auditoria('CREATE', 'solicitacoes_retirada', solicitacao['id'], None,
                  {'produto_id': produto_id, 'tipo': solicitacao['tipo']})
    return jsonify(solicitacao), 201


@produtos_bp.route('/<produto_id>/saida-parcial', methods=['POST'])
@require_admin
def saida_parcial(produto_id):
    data = json_body()
    antes = product_service.get_product(produto_id)
    produto = product_service.partial_exit(produto_id, data.get('quantidade'), current_user_id(), data.get('motivo'))
    _audit('PARTIAL_EXIT', antes, produto)
    return jsonify(produto)


@produtos_bp.route('/<produto_id>/movimentacao-parcial', methods=['POST'])
@require_level(ADMIN, OPERATOR)
def movimentacao_parcial(produto_id):
    data = json_body()
    destino = data.get('nova_localizacao_id') or data.get('localizacao_id')
    antes = product_service.get_product(produto_id)
    resultado = product_service.partial_move(produto_id, data.get('quantidade'), destino, current_user_id(),
                                             data.get('motivo'))
    _audit('PARTIAL_MOVE', antes, resultado['produto_origem'])
    log_auditoria('CREATE', 'produtos', resultado['produto_novo']['id'], None,
                  _resumo(resultado['produto_novo']))
    return jsonify(resultado)


@produtos_bp.route('/<produto_id>/adicionar-estoque', methods=['POST'])
@require_admin
def adicionar_estoque(produto_id):
    data = json_body()
    antes = product_service.get_product(produto_id)
    produto = product_service.add_stock(produto_id, data.get('quantidade'), current_user_id(),
                                        data.get('motivo'), data.get('peso_unitario'))
    _audit('ADD_STOCK', antes, produto)
    return jsonify(produto)
