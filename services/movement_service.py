"""
Movimentações: registro append-only, consultas, análises e verificação
"""
from datetime import datetime, timedelta

from models_mongo.base import serialize_doc, to_object_id
from models_mongo.localizacao import LocalizacaoMongo
from models_mongo.movimentacao import (
    MovimentacaoMongo, TIPOS_MOVIMENTACAO, TRANSFERENCIA, ENTRADA, SAIDA, AJUSTE,
)
from models_mongo.produto import ProdutoMongo
from models_mongo.usuario import UsuarioMongo
from services.common import (
    cfg, get_logger, require_doc, require_object_id, to_int, to_float, clean_text, parse_datetime,
    paginate_cursor,
)
from services.errors import ValidationError, ConflictError, DuplicateMovementError

TIPOS_MANUAIS = (AJUSTE, ENTRADA, SAIDA)
AGRUPAMENTOS = {
    'hour': '%Y-%m-%d %H:00',
    'day': '%Y-%m-%d',
    'month': '%Y-%m',
}


def _metadados(dados):
    metadados = dados.get('metadados') or {}
    if not isinstance(metadados, dict):
        raise ValidationError('metadados deve ser um objeto')
    return dict(metadados)


def register_movement(dados, usuario_id=None, automatica=True):
    """Valida e insere uma movimentação. Nunca altera movimentações existentes."""
    tipo = dados.get('tipo')
    if tipo not in TIPOS_MOVIMENTACAO:
        raise ValidationError(f"Tipo deve ser um de: {', '.join(TIPOS_MOVIMENTACAO)}")
    produto_oid = require_object_id(dados.get('produto_id'), 'produto_id')
    motivo = clean_text(dados.get('motivo'), 'motivo', 3, 200, obrigatorio=True)
    origem = to_object_id(dados.get('localizacao_origem_id'))
    destino = to_object_id(dados.get('localizacao_destino_id'))
    if tipo == TRANSFERENCIA and origem is None:
        raise ValidationError('Localização de origem é obrigatória para transferências')
    quantidade = to_int(dados.get('quantidade'), 'quantidade', 0)
    peso = round(to_float(dados.get('peso'), 'peso', 0), 3)
    usuario_oid = to_object_id(usuario_id)
    now = datetime.utcnow()

    if not automatica:
        janela = int(cfg('DUPLICATE_MOVEMENT_WINDOW_MINUTES', 5))
        duplicada = MovimentacaoMongo.get_collection().find_one({
            'produto_id': produto_oid,
            'tipo': tipo,
            'quantidade': quantidade,
            'peso': peso,
            'usuario_id': usuario_oid,
            'data_movimentacao': {'$gte': now - timedelta(minutes=janela)},
        })
        if duplicada is not None:
            raise DuplicateMovementError(
                f'Movimentação idêntica registrada nos últimos {janela} minutos',
                details={'movimentacao_id': str(duplicada['_id'])},
            )

    metadados = _metadados(dados)
    metadados['automatica'] = bool(automatica)
    movimentacao = MovimentacaoMongo(
        produto_id=produto_oid,
        tipo=tipo,
        localizacao_origem_id=origem,
        localizacao_destino_id=destino,
        quantidade=quantidade,
        peso=peso,
        usuario_id=usuario_oid,
        motivo=motivo,
        observacoes=clean_text(dados.get('observacoes'), 'observacoes', max_length=500),
        data_movimentacao=now,
        metadados=metadados,
    ).save()
    ProdutoMongo.get_collection().update_one(
        {'_id': produto_oid}, {'$set': {'metadados.ultima_movimentacao': now}}
    )
    get_logger().info(f"[Movimentação] {tipo} produto={produto_oid} qtd={quantidade} peso={peso}")
    return movimentacao


def register_manual_movement(dados, usuario_id):
    """Registro manual (auditoria) feito por um administrador"""
    if dados.get('tipo') not in TIPOS_MANUAIS:
        raise ValidationError(f"Movimentação manual deve ser do tipo: {', '.join(TIPOS_MANUAIS)}")
    produto = require_doc(ProdutoMongo, dados.get('produto_id'), 'Produto')
    payload = dict(dados)
    payload['produto_id'] = produto._id
    payload.setdefault('quantidade', produto.quantidade)
    payload.setdefault('peso', produto.peso_total)
    if payload['tipo'] == SAIDA:
        payload.setdefault('localizacao_origem_id', produto.localizacao_id)
    else:
        payload.setdefault('localizacao_destino_id', produto.localizacao_id)
    metadados = _metadados(payload)
    metadados['tipo_operacao'] = 'manual'
    payload['metadados'] = metadados
    return register_movement(payload, usuario_id, automatica=False)


def enrich_movements(items):
    """Acrescenta nome do produto, códigos das localizações e nome do usuário"""
    def _map(model, ids, campo):
        oids = [o for o in {to_object_id(i) for i in ids if i} if o is not None]
        if not oids:
            return {}
        return {str(d['_id']): d.get(campo) for d in model.get_collection().find({'_id': {'$in': oids}}, {campo: 1})}

    produtos = _map(ProdutoMongo, [i.get('produto_id') for i in items], 'nome')
    locais = _map(LocalizacaoMongo, [i.get('localizacao_origem_id') for i in items] +
                  [i.get('localizacao_destino_id') for i in items], 'codigo')
    usuarios = _map(UsuarioMongo, [i.get('usuario_id') for i in items], 'nome')
    for item in items:
        item['produto_nome'] = produtos.get(item.get('produto_id'))
        item['localizacao_origem_codigo'] = locais.get(item.get('localizacao_origem_id'))
        item['localizacao_destino_codigo'] = locais.get(item.get('localizacao_destino_id'))
        item['usuario_nome'] = usuarios.get(item.get('usuario_id'))
    return items


def _build_query(filtros):
    filtros = filtros or {}
    query = {}
    if filtros.get('tipo'):
        if filtros['tipo'] not in TIPOS_MOVIMENTACAO:
            raise ValidationError('Tipo de movimentação inválido')
        query['tipo'] = filtros['tipo']
    if filtros.get('produto_id'):
        query['produto_id'] = require_object_id(filtros['produto_id'], 'produto_id')
    if filtros.get('usuario_id'):
        query['usuario_id'] = require_object_id(filtros['usuario_id'], 'usuario_id')
    if filtros.get('localizacao_id'):
        loc = require_object_id(filtros['localizacao_id'], 'localizacao_id')
        query['$or'] = [{'localizacao_origem_id': loc}, {'localizacao_destino_id': loc}]
    periodo = {}
    inicio = parse_datetime(filtros.get('data_inicio'), 'data_inicio')
    fim = parse_datetime(filtros.get('data_fim'), 'data_fim')
    if inicio:
        periodo['$gte'] = inicio
    if fim:
        periodo['$lte'] = fim
    if periodo:
        query['data_movimentacao'] = periodo
    if filtros.get('verificada') is not None:
        query['verificacao.verificada'] = bool(filtros['verificada'])
    return query


def list_movements(filtros=None, page=1, per_page=20):
    result = paginate_cursor(
        MovimentacaoMongo.get_collection(), _build_query(filtros), page, per_page,
        sort=[('data_movimentacao', -1)],
    )
    enrich_movements(result['items'])
    return result


def get_movements_by_product(produto_id, page=1, per_page=50):
    require_doc(ProdutoMongo, produto_id, 'Produto')
    return list_movements({'produto_id': produto_id}, page, per_page)


def get_movements_by_location(localizacao_id, page=1, per_page=50):
    require_doc(LocalizacaoMongo, localizacao_id, 'Localização')
    return list_movements({'localizacao_id': localizacao_id}, page, per_page)


def _period_docs(filtros, dias_padrao=30):
    filtros = dict(filtros or {})
    if not filtros.get('data_inicio'):
        filtros['data_inicio'] = datetime.utcnow() - timedelta(days=dias_padrao)
    return list(MovimentacaoMongo.get_collection().find(_build_query(filtros)).sort('data_movimentacao', 1))


def _count_by(docs, chave):
    out = {}
    for d in docs:
        valor = chave(d)
        out[valor] = out.get(valor, 0) + 1
    return out


def analyze_patterns(filtros=None, agrupar_por='day'):
    if agrupar_por not in AGRUPAMENTOS:
        raise ValidationError('agrupar_por deve ser hour, day ou month')
    docs = _period_docs(filtros)
    fmt = AGRUPAMENTOS[agrupar_por]
    periodos = {}
    for d in docs:
        chave = d['data_movimentacao'].strftime(fmt)
        item = periodos.setdefault(chave, {'periodo': chave, 'total': 0, 'peso_total': 0.0, 'por_tipo': {}})
        item['total'] += 1
        item['peso_total'] = round(item['peso_total'] + float(d.get('peso') or 0), 3)
        item['por_tipo'][d['tipo']] = item['por_tipo'].get(d['tipo'], 0) + 1
    por_hora = _count_by(docs, lambda d: d['data_movimentacao'].hour)
    por_usuario = _count_by(docs, lambda d: str(d.get('usuario_id')) if d.get('usuario_id') else None)
    nomes = {str(u['_id']): u.get('nome') for u in UsuarioMongo.get_collection().find({}, {'nome': 1})}
    return {
        'agrupar_por': agrupar_por,
        'total': len(docs),
        'series': [periodos[k] for k in sorted(periodos)],
        'por_tipo': _count_by(docs, lambda d: d['tipo']),
        'por_hora_do_dia': {f'{h:02d}:00': n for h, n in sorted(por_hora.items())},
        'hora_pico': f'{max(por_hora, key=por_hora.get):02d}:00' if por_hora else None,
        'por_usuario': sorted(
            [{'usuario_id': uid, 'nome': nomes.get(uid), 'total': n} for uid, n in por_usuario.items()],
            key=lambda x: -x['total'],
        ),
    }


def generate_audit_report(filtros=None):
    docs = _period_docs(filtros)
    verificadas = [d for d in docs if (d.get('verificacao') or {}).get('verificada')]
    suspeitas = [
        d for d in docs
        if float(d.get('peso') or 0) == 0 or int(d.get('quantidade') or 0) == 0 or not (d.get('motivo') or '').strip()
    ]
    nomes = {str(u['_id']): u.get('nome') for u in UsuarioMongo.get_collection().find({}, {'nome': 1})}
    por_usuario = _count_by(docs, lambda d: str(d.get('usuario_id')) if d.get('usuario_id') else None)
    return {
        'resumo': {
            'total': len(docs),
            'verificadas': len(verificadas),
            'nao_verificadas': len(docs) - len(verificadas),
            'manuais': sum(1 for d in docs if not (d.get('metadados') or {}).get('automatica', True)),
            'suspeitas': len(suspeitas),
        },
        'por_tipo': _count_by(docs, lambda d: d['tipo']),
        'por_status': _count_by(docs, lambda d: d.get('status', 'concluida')),
        'por_usuario': [{'usuario_id': uid, 'nome': nomes.get(uid), 'total': n} for uid, n in por_usuario.items()],
        'suspeitas': enrich_movements(serialize_doc(suspeitas)),
    }


def product_history(produto_id):
    produto = require_doc(ProdutoMongo, produto_id, 'Produto')
    docs = list(MovimentacaoMongo.get_collection().find({'produto_id': produto._id}).sort('data_movimentacao', 1))
    movimentos = enrich_movements(serialize_doc(docs))
    jornada = []
    for m in movimentos:
        codigo = m.get('localizacao_destino_codigo')
        if m['tipo'] in (ENTRADA, TRANSFERENCIA) and codigo and (not jornada or jornada[-1]['codigo'] != codigo):
            jornada.append({'codigo': codigo, 'desde': m['data_movimentacao']})
    evolucao = [
        {'data': m['data_movimentacao'], 'tipo': m['tipo'], 'quantidade': m.get('quantidade'), 'peso': m.get('peso')}
        for m in movimentos
    ]
    return {
        'produto': produto.to_dict(),
        'movimentacoes': movimentos,
        'jornada_localizacoes': jornada,
        'evolucao_peso': evolucao,
        'resumo': {
            'total_movimentacoes': len(movimentos),
            'primeira': movimentos[0]['data_movimentacao'] if movimentos else None,
            'ultima': movimentos[-1]['data_movimentacao'] if movimentos else None,
            'por_tipo': _count_by(docs, lambda d: d['tipo']),
        },
    }


def verify_movement(mov_id, usuario_id, observacoes=''):
    mov = require_doc(MovimentacaoMongo, mov_id, 'Movimentação')
    if (mov.get('verificacao') or {}).get('verificada'):
        raise ConflictError('Movimentação já verificada')
    MovimentacaoMongo.get_collection().update_one({'_id': mov._id}, {'$set': {
        'verificacao': {
            'verificada': True,
            'verificada_por': to_object_id(usuario_id),
            'verificada_em': datetime.utcnow(),
            'observacoes': clean_text(observacoes, 'observacoes', max_length=500),
        }
    }})
    return serialize_doc(MovimentacaoMongo.get_collection().find_one({'_id': mov._id}))


def verify_pending_movements(usuario_id, horas=24):
    """Marca como verificadas as movimentações concluídas mais antigas que N horas"""
    horas = to_int(horas, 'horas', 0)
    limite = datetime.utcnow() - timedelta(hours=horas)
    res = MovimentacaoMongo.get_collection().update_many(
        {'status': 'concluida', 'verificacao.verificada': False, 'data_movimentacao': {'$lte': limite}},
        {'$set': {
            'verificacao.verificada': True,
            'verificacao.verificada_por': to_object_id(usuario_id),
            'verificacao.verificada_em': datetime.utcnow(),
            'verificacao.observacoes': 'Verificação automática em lote',
        }},
    )
    get_logger().info(f"[Movimentação] {res.modified_count} movimentações verificadas em lote")
    return {'verificadas': res.modified_count, 'limite': limite.isoformat()}


def get_movement_stats(dias=30):
    docs = _period_docs({}, dias_padrao=to_int(dias, 'dias', 1, 3650))
    peso_por_tipo = {}
    for d in docs:
        peso_por_tipo[d['tipo']] = round(peso_por_tipo.get(d['tipo'], 0) + float(d.get('peso') or 0), 3)
    return {
        'dias': dias,
        'total': len(docs),
        'por_tipo': _count_by(docs, lambda d: d['tipo']),
        'peso_por_tipo': peso_por_tipo,
        'por_dia': dict(sorted(_count_by(docs, lambda d: d['data_movimentacao'].strftime('%Y-%m-%d')).items())),
    }
