"""
Solicitações de retirada: um ADMIN solicita, um OPERATOR confirma a saída física
"""
from datetime import datetime

from models_mongo.base import to_object_id
from models_mongo.localizacao import LocalizacaoMongo
from models_mongo.movimentacao import SAIDA
from models_mongo.produto import ProdutoMongo, LOCADO, AGUARDANDO_RETIRADA, RETIRADO, calcular_peso_total
from models_mongo.solicitacao_retirada import (
    SolicitacaoRetiradaMongo, PENDENTE, CONFIRMADO, CANCELADO, TOTAL, PARCIAL, TIPOS_RETIRADA, STATUS_RETIRADA,
)
from models_mongo.usuario import UsuarioMongo
from services import location_service, movement_service, product_service
from services.common import (
    get_logger, require_doc, require_object_id, to_int, clean_text, parse_datetime, paginate_cursor,
)
from services.errors import ServiceError, ValidationError, ConflictError, InvalidTransitionError


def _require_request(solicitacao_id):
    return require_doc(SolicitacaoRetiradaMongo, solicitacao_id, 'Solicitação de retirada')


def _require_pending(solicitacao):
    if solicitacao.get('status') != PENDENTE:
        raise ConflictError(f"Solicitação já está {solicitacao.get('status')}")


def enrich_requests(items):
    """Nome/lote do produto e nomes de quem solicitou e confirmou"""
    produto_ids = [o for o in {to_object_id(i.get('produto_id')) for i in items} if o]
    usuario_ids = [o for o in {to_object_id(i.get(c)) for i in items
                               for c in ('solicitado_por', 'confirmado_por', 'cancelado_por')} if o]
    produtos = {str(d['_id']): d for d in ProdutoMongo.get_collection().find(
        {'_id': {'$in': produto_ids}}, {'nome': 1, 'lote': 1, 'status': 1, 'quantidade': 1, 'peso_total': 1})}
    usuarios = {str(d['_id']): d.get('nome') for d in UsuarioMongo.get_collection().find(
        {'_id': {'$in': usuario_ids}}, {'nome': 1})}
    for item in items:
        produto = produtos.get(item.get('produto_id')) or {}
        item['produto_nome'] = produto.get('nome')
        item['produto_lote'] = produto.get('lote')
        item['produto_status'] = produto.get('status')
        item['solicitante_nome'] = usuarios.get(item.get('solicitado_por'))
        item['confirmador_nome'] = usuarios.get(item.get('confirmado_por'))
    return items


def request_to_dict(solicitacao):
    return enrich_requests([solicitacao.to_dict()])[0]


def create_withdrawal_request(produto_id, tipo, usuario_id, quantidade=None, motivo=None, observacoes=None):
    produto = product_service._require_product(produto_id)
    tipo = (tipo or TOTAL).upper()
    if tipo not in TIPOS_RETIRADA:
        raise ValidationError('Tipo de retirada deve ser TOTAL ou PARCIAL')
    if produto.status != LOCADO:
        raise InvalidTransitionError(
            f'Só é possível solicitar retirada de produto LOCADO (atual: {produto.status})',
            details={'status_atual': produto.status},
        )
    if SolicitacaoRetiradaMongo.count({'produto_id': produto._id, 'status': PENDENTE}):
        raise ConflictError('Produto já possui solicitação de retirada pendente')

    quantidade_solicitada = None
    if tipo == PARCIAL:
        quantidade_solicitada = to_int(quantidade, 'quantidade', 1)
        if quantidade_solicitada >= produto.quantidade:
            raise ValidationError(
                f'Retirada parcial exige quantidade menor que o estoque ({produto.quantidade}); use TOTAL'
            )

    loc = LocalizacaoMongo.find_by_id(produto.localizacao_id)
    solicitacao = SolicitacaoRetiradaMongo(
        produto_id=produto._id,
        solicitado_por=to_object_id(usuario_id),
        tipo=tipo,
        quantidade_solicitada=quantidade_solicitada,
        motivo=clean_text(motivo, 'motivo', max_length=500),
        observacoes=clean_text(observacoes, 'observacoes', max_length=1000),
        metadados={'dados_originais_produto': {
            'nome': produto.get('nome'),
            'lote': produto.get('lote'),
            'quantidade': produto.quantidade,
            'peso_total': produto.peso_total,
            'codigo_localizacao': loc.codigo if loc else None,
        }},
    ).save()
    try:
        product_service._transition(produto, AGUARDANDO_RETIRADA, usuario_id=usuario_id)
    except ServiceError:
        solicitacao.delete()
        raise
    get_logger().info(f"[Retirada] Solicitação {solicitacao.id} ({tipo}) criada para produto {produto.id}")
    return request_to_dict(solicitacao)


def confirm_withdrawal_request(solicitacao_id, usuario_id, observacoes=None):
    solicitacao = _require_request(solicitacao_id)
    _require_pending(solicitacao)
    observacoes = clean_text(observacoes, 'observacoes', max_length=500)
    produto = product_service._require_product(solicitacao.get('produto_id'))
    if produto.status != AGUARDANDO_RETIRADA:
        raise InvalidTransitionError(
            f'Produto não está aguardando retirada (atual: {produto.status})',
            details={'status_atual': produto.status},
        )
    loc_id = produto.localizacao_id
    now = datetime.utcnow()

    if solicitacao.get('tipo') == PARCIAL:
        quantidade = int(solicitacao.get('quantidade_solicitada') or 0)
        if quantidade <= 0 or quantidade >= produto.quantidade:
            raise ValidationError('Quantidade da solicitação não é mais compatível com o estoque do produto')
        restante = produto.quantidade - quantidade
        novo_peso = calcular_peso_total(restante, produto.peso_unitario)
        peso_saida = calcular_peso_total(quantidade, produto.peso_unitario)
        atualizado = product_service._transition(produto, LOCADO, {'quantidade': restante, 'peso_total': novo_peso}, usuario_id)
        location_service.adjust_location_weight(loc_id, novo_peso)
    else:
        quantidade = produto.quantidade
        peso_saida = produto.peso_total
        atualizado = product_service._transition(produto, RETIRADO, {
            'localizacao_id': None,
            'data_saida': now,
            'metadados.ultima_localizacao_id': loc_id,
        }, usuario_id)
        location_service.release_location(loc_id)

    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': SAIDA,
        'localizacao_origem_id': loc_id,
        'quantidade': quantidade,
        'peso': peso_saida,
        'motivo': f"Retirada {solicitacao.get('tipo').lower()} confirmada",
        'observacoes': observacoes,
        'metadados': {
            'tipo_operacao': 'retirada',
            'solicitacao_id': solicitacao._id,
            'motivo_solicitacao': solicitacao.get('motivo'),
        },
    }, usuario_id)

    SolicitacaoRetiradaMongo.get_collection().update_one({'_id': solicitacao._id}, {'$set': {
        'status': CONFIRMADO,
        'data_confirmacao': now,
        'confirmado_por': to_object_id(usuario_id),
        'observacoes_confirmacao': observacoes,
        'data_atualizacao': now,
    }})
    get_logger().info(f"[Retirada] Solicitação {solicitacao.id} confirmada")
    return {
        'solicitacao': request_to_dict(_require_request(solicitacao._id)),
        'produto': product_service.product_to_dict(atualizado),
    }


def cancel_withdrawal_request(solicitacao_id, usuario_id, motivo=None):
    solicitacao = _require_request(solicitacao_id)
    _require_pending(solicitacao)
    produto = product_service._require_product(solicitacao.get('produto_id'))
    if produto.status == AGUARDANDO_RETIRADA:
        product_service._transition(produto, LOCADO, usuario_id=usuario_id)
    now = datetime.utcnow()
    SolicitacaoRetiradaMongo.get_collection().update_one({'_id': solicitacao._id}, {'$set': {
        'status': CANCELADO,
        'data_cancelamento': now,
        'cancelado_por': to_object_id(usuario_id),
        'motivo_cancelamento': clean_text(motivo, 'motivo', max_length=500),
        'data_atualizacao': now,
    }})
    get_logger().info(f"[Retirada] Solicitação {solicitacao.id} cancelada")
    return request_to_dict(_require_request(solicitacao._id))


def update_withdrawal_request(solicitacao_id, dados):
    solicitacao = _require_request(solicitacao_id)
    _require_pending(solicitacao)
    dados = dados or {}
    update = {}
    if 'motivo' in dados:
        update['motivo'] = clean_text(dados['motivo'], 'motivo', max_length=500)
    if 'observacoes' in dados:
        update['observacoes'] = clean_text(dados['observacoes'], 'observacoes', max_length=1000)
    tipo = solicitacao.get('tipo')
    if dados.get('tipo'):
        tipo = str(dados['tipo']).upper()
        if tipo not in TIPOS_RETIRADA:
            raise ValidationError('Tipo de retirada deve ser TOTAL ou PARCIAL')
        update['tipo'] = tipo
    if tipo == TOTAL:
        if dados.get('quantidade_solicitada') is not None:
            raise ValidationError('Quantidade só pode ser alterada em retiradas parciais')
        if 'tipo' in update:
            update['quantidade_solicitada'] = None
    elif 'quantidade_solicitada' in dados or 'tipo' in update:
        produto = require_doc(ProdutoMongo, solicitacao.get('produto_id'), 'Produto')
        quantidade = to_int(
            dados.get('quantidade_solicitada', solicitacao.get('quantidade_solicitada')), 'quantidade_solicitada', 1)
        if quantidade >= produto.quantidade:
            raise ValidationError(f'Quantidade deve ser menor que o estoque ({produto.quantidade})')
        update['quantidade_solicitada'] = quantidade
    if not update:
        raise ValidationError('Nenhum campo editável informado')
    update['data_atualizacao'] = datetime.utcnow()
    SolicitacaoRetiradaMongo.get_collection().update_one({'_id': solicitacao._id}, {'$set': update})
    return request_to_dict(_require_request(solicitacao._id))


def _build_query(filtros):
    filtros = filtros or {}
    query = {}
    if filtros.get('status'):
        status = str(filtros['status']).upper()
        if status not in STATUS_RETIRADA:
            raise ValidationError('Status de solicitação inválido')
        query['status'] = status
    if filtros.get('tipo'):
        query['tipo'] = str(filtros['tipo']).upper()
    if filtros.get('produto_id'):
        query['produto_id'] = require_object_id(filtros['produto_id'], 'produto_id')
    if filtros.get('solicitado_por'):
        query['solicitado_por'] = require_object_id(filtros['solicitado_por'], 'solicitado_por')
    periodo = {}
    if filtros.get('data_inicio'):
        periodo['$gte'] = parse_datetime(filtros['data_inicio'], 'data_inicio')
    if filtros.get('data_fim'):
        periodo['$lte'] = parse_datetime(filtros['data_fim'], 'data_fim')
    if periodo:
        query['data_solicitacao'] = periodo
    return query


def list_withdrawals(filtros=None, page=1, per_page=20):
    result = paginate_cursor(
        SolicitacaoRetiradaMongo.get_collection(), _build_query(filtros), page, per_page,
        sort=[('data_solicitacao', -1)], transform=lambda d: SolicitacaoRetiradaMongo.from_doc(d).to_dict(),
    )
    enrich_requests(result['items'])
    return result


def get_pending_withdrawals(page=1, per_page=50):
    result = paginate_cursor(
        SolicitacaoRetiradaMongo.get_collection(), {'status': PENDENTE}, page, per_page,
        sort=[('data_solicitacao', 1)], transform=lambda d: SolicitacaoRetiradaMongo.from_doc(d).to_dict(),
    )
    enrich_requests(result['items'])
    return result


def get_withdrawals_by_product(produto_id, page=1, per_page=50):
    return list_withdrawals({'produto_id': produto_id}, page, per_page)


def get_withdrawals_by_user(usuario_id, page=1, per_page=50):
    return list_withdrawals({'solicitado_por': usuario_id}, page, per_page)


def get_withdrawal(solicitacao_id):
    return request_to_dict(_require_request(solicitacao_id))


def get_withdrawals_stats():
    docs = list(SolicitacaoRetiradaMongo.get_collection().find({}))
    por_status = {s: 0 for s in STATUS_RETIRADA}
    por_tipo = {t: 0 for t in TIPOS_RETIRADA}
    esperas = []
    for d in docs:
        por_status[d.get('status')] = por_status.get(d.get('status'), 0) + 1
        por_tipo[d.get('tipo')] = por_tipo.get(d.get('tipo'), 0) + 1
        if d.get('data_confirmacao') and d.get('data_solicitacao'):
            esperas.append((d['data_confirmacao'] - d['data_solicitacao']).total_seconds() / 3600)
    return {
        'total': len(docs),
        'por_status': por_status,
        'por_tipo': por_tipo,
        'tempo_medio_confirmacao_horas': round(sum(esperas) / len(esperas), 2) if esperas else None,
    }


def get_withdrawals_report(data_inicio=None, data_fim=None):
    query = _build_query({'data_inicio': data_inicio, 'data_fim': data_fim})
    docs = SolicitacaoRetiradaMongo.get_collection().find(query).sort('data_solicitacao', 1)
    itens = enrich_requests([SolicitacaoRetiradaMongo.from_doc(d).to_dict() for d in docs])
    peso_retirado = 0.0
    for item in itens:
        if item.get('status') != CONFIRMADO:
            continue
        originais = (item.get('metadados') or {}).get('dados_originais_produto') or {}
        if item.get('tipo') == PARCIAL and originais.get('quantidade'):
            unitario = float(originais.get('peso_total') or 0) / int(originais['quantidade'])
            peso_retirado += unitario * int(item.get('quantidade_solicitada') or 0)
        else:
            peso_retirado += float(originais.get('peso_total') or 0)
    return {
        'periodo': {'data_inicio': data_inicio, 'data_fim': data_fim},
        'total': len(itens),
        'confirmadas': sum(1 for i in itens if i.get('status') == CONFIRMADO),
        'canceladas': sum(1 for i in itens if i.get('status') == CANCELADO),
        'pendentes': sum(1 for i in itens if i.get('status') == PENDENTE),
        'peso_retirado_kg': round(peso_retirado, 3),
        'solicitacoes': itens,
    }
