"""
Relatórios gerenciais: estoque, movimentações, vencimento, capacidade e executivo
"""
from datetime import datetime, timedelta

from models_mongo.base import serialize_doc
from models_mongo.camara import CamaraMongo
from models_mongo.localizacao import LocalizacaoMongo
from models_mongo.movimentacao import MovimentacaoMongo, ENTRADA, SAIDA
from models_mongo.produto import ProdutoMongo, STATUS_EM_LOCALIZACAO, status_validade
from models_mongo.solicitacao_retirada import SolicitacaoRetiradaMongo, CONFIRMADO
from services import location_service, movement_service, product_service
from services.common import cfg, to_int
from services.dashboard_service import CRESCIMENTO_MENSAL
from services.errors import ValidationError

RECURSOS_PERSONALIZADOS = {
    'produtos': (ProdutoMongo, 'data_criacao'),
    'movimentacoes': (MovimentacaoMongo, 'data_movimentacao'),
    'localizacoes': (LocalizacaoMongo, 'codigo'),
    'solicitacoes': (SolicitacaoRetiradaMongo, 'data_solicitacao'),
}
LIMITE_PERSONALIZADO = 1000


def _stored_products(filtros=None):
    filtros = dict(filtros or {})
    filtros.setdefault('status', ','.join(STATUS_EM_LOCALIZACAO))
    itens = []
    page = 1
    while True:
        result = product_service.list_products(filtros, page, 100)
        itens.extend(result['items'])
        if not result['has_next']:
            return itens
        page += 1


def inventory_report(filtros=None):
    produtos = _stored_products(filtros)
    por_camara, por_validade = {}, {}
    for p in produtos:
        nome = p.get('camara_nome') or 'Sem câmara'
        c = por_camara.setdefault(nome, {'camara': nome, 'produtos': 0, 'quantidade': 0, 'peso_total': 0.0})
        c['produtos'] += 1
        c['quantidade'] += int(p.get('quantidade') or 0)
        c['peso_total'] = round(c['peso_total'] + float(p.get('peso_total') or 0), 3)
        por_validade[p['status_validade']] = por_validade.get(p['status_validade'], 0) + 1
    return {
        'gerado_em': datetime.utcnow().isoformat(),
        'resumo': {
            'total_produtos': len(produtos),
            'quantidade_total': sum(int(p.get('quantidade') or 0) for p in produtos),
            'peso_total': round(sum(float(p.get('peso_total') or 0) for p in produtos), 3),
            'clientes_distintos': len({p.get('cliente_id') for p in produtos if p.get('cliente_id')}),
        },
        'por_camara': sorted(por_camara.values(), key=lambda c: c['camara']),
        'analise_validade': por_validade,
        'produtos': produtos,
    }


def movement_report(filtros=None, agrupar_por='day'):
    padroes = movement_service.analyze_patterns(filtros, agrupar_por)
    auditoria = movement_service.generate_audit_report(filtros)
    return {
        'gerado_em': datetime.utcnow().isoformat(),
        'padroes': padroes,
        'auditoria': auditoria['resumo'],
        'por_usuario': auditoria['por_usuario'],
    }


def expiration_report(dias=30):
    dias = to_int(dias, 'dias', 1, 3650)
    dias_critico = int(cfg('EXPIRATION_CRITICAL_DAYS', 7))
    agora = datetime.utcnow()
    docs = ProdutoMongo.get_collection().find({
        'status': {'$in': STATUS_EM_LOCALIZACAO},
        'data_validade': {'$ne': None, '$lte': agora + timedelta(days=dias)},
    }).sort('data_validade', 1)
    itens = product_service.enrich_products([ProdutoMongo.from_doc(d).to_dict() for d in docs])
    vencidos, criticos, alerta = [], [], []
    for item in itens:
        info = status_validade(
            datetime.fromisoformat(item['data_validade']), agora, dias_alerta=dias, dias_critico=dias_critico,
        )
        if info['status_validade'] == 'vencido':
            vencidos.append(item)
        elif info['status_validade'] == 'critico':
            criticos.append(item)
        else:
            alerta.append(item)
    recomendacoes = []
    if vencidos:
        recomendacoes.append(f'Solicitar retirada ou descarte de {len(vencidos)} produtos vencidos')
    if criticos:
        recomendacoes.append(f'Priorizar a saída de {len(criticos)} produtos em situação crítica')
    if alerta:
        recomendacoes.append(f'Avisar clientes de {len(alerta)} produtos próximos do vencimento')
    return {
        'dias': dias,
        'resumo': {'vencidos': len(vencidos), 'criticos': len(criticos), 'alerta': len(alerta)},
        'vencidos': vencidos,
        'criticos': criticos,
        'alerta': alerta,
        'recomendacoes': recomendacoes,
    }


def capacity_report(camara_id=None):
    ocupacao = location_service.analyze_occupancy(camara_id)
    inicio = datetime.utcnow() - timedelta(days=30)
    camaras, alertas = [], []
    for item in ocupacao['camaras']:
        resumo = item['resumo']
        loc_ids = [d['_id'] for d in LocalizacaoMongo.get_collection().find(
            {'camara_id': CamaraMongo.coerce_id(item['camara_id'])}, {'_id': 1})]
        entradas = saidas = 0.0
        for m in MovimentacaoMongo.get_collection().find({'data_movimentacao': {'$gte': inicio}, '$or': [
                {'localizacao_origem_id': {'$in': loc_ids}}, {'localizacao_destino_id': {'$in': loc_ids}}]}):
            if m['tipo'] == ENTRADA:
                entradas += float(m.get('peso') or 0)
            elif m['tipo'] == SAIDA:
                saidas += float(m.get('peso') or 0)
        saldo = entradas - saidas
        projetado = max(resumo['capacidade_usada'] + saldo, 0) if saldo else (
            resumo['capacidade_usada'] * (1 + CRESCIMENTO_MENSAL))
        taxa_projetada = round(projetado / resumo['capacidade_total'] * 100, 2) if resumo['capacidade_total'] else 0
        camaras.append({
            'camara_id': item['camara_id'],
            'nome': item['nome'],
            **resumo,
            'saldo_30_dias_kg': round(saldo, 3),
            'projecao_30_dias': {'capacidade_usada': round(projetado, 3), 'taxa_utilizacao': taxa_projetada},
        })
        if resumo['taxa_utilizacao'] >= 90:
            alertas.append({'camara': item['nome'], 'nivel': 'critico', 'taxa_utilizacao': resumo['taxa_utilizacao']})
        elif resumo['taxa_utilizacao'] >= 80:
            alertas.append({'camara': item['nome'], 'nivel': 'aviso', 'taxa_utilizacao': resumo['taxa_utilizacao']})
    return {'geral': ocupacao['resumo'], 'camaras': camaras, 'alertas': alertas}


def _kpis(inicio, fim):
    movs = list(MovimentacaoMongo.get_collection().find({'data_movimentacao': {'$gte': inicio, '$lt': fim}}))
    return {
        'movimentacoes': len(movs),
        'entradas': sum(1 for m in movs if m['tipo'] == ENTRADA),
        'saidas': sum(1 for m in movs if m['tipo'] == SAIDA),
        'peso_entrada': round(sum(float(m.get('peso') or 0) for m in movs if m['tipo'] == ENTRADA), 3),
        'peso_saida': round(sum(float(m.get('peso') or 0) for m in movs if m['tipo'] == SAIDA), 3),
        'produtos_cadastrados': ProdutoMongo.count({'data_criacao': {'$gte': inicio, '$lt': fim}}),
        'retiradas_confirmadas': SolicitacaoRetiradaMongo.count(
            {'status': CONFIRMADO, 'data_confirmacao': {'$gte': inicio, '$lt': fim}}),
    }


def _variacao(atual, anterior):
    if not anterior:
        return None
    return round((atual - anterior) / anterior * 100, 2)


def executive_report(periodo=30):
    periodo = to_int(periodo, 'periodo', 1, 365)
    fim = datetime.utcnow()
    inicio = fim - timedelta(days=periodo)
    atual = _kpis(inicio, fim)
    anterior = _kpis(inicio - timedelta(days=periodo), inicio)
    ocupacao = location_service.get_location_stats()
    return {
        'periodo_dias': periodo,
        'kpis': atual,
        'periodo_anterior': anterior,
        'variacao_percentual': {k: _variacao(atual[k], anterior[k]) for k in atual},
        'ocupacao': ocupacao,
        'estoque': {
            'produtos_armazenados': ProdutoMongo.count({'status': {'$in': STATUS_EM_LOCALIZACAO}}),
            'camaras_ativas': CamaraMongo.count({'status': 'ativa'}),
        },
    }


def custom_report(config):
    """Consulta livre sobre um recurso com filtros de igualdade e seleção de campos"""
    config = config or {}
    recurso = config.get('recurso')
    if recurso not in RECURSOS_PERSONALIZADOS:
        raise ValidationError(f"recurso deve ser um de: {', '.join(RECURSOS_PERSONALIZADOS)}")
    model, ordem = RECURSOS_PERSONALIZADOS[recurso]
    filtros = config.get('filtros') or {}
    if not isinstance(filtros, dict):
        raise ValidationError('filtros deve ser um objeto')
    query = {}
    for campo, valor in filtros.items():
        if campo.startswith('$') or not isinstance(valor, (str, int, float, bool)):
            raise ValidationError(f'Filtro inválido: {campo}')
        if campo.endswith('_id') and isinstance(valor, str):
            oid = model.coerce_id(valor)
            valor = oid if oid is not None else valor
        query[campo] = valor
    campos = config.get('campos') or []
    limite = to_int(config.get('limite', 100), 'limite', 1, LIMITE_PERSONALIZADO)
    projecao = {c: 1 for c in campos} if campos else None
    docs = list(model.get_collection().find(query, projecao).sort(ordem, -1).limit(limite))
    return {
        'recurso': recurso,
        'total': len(docs),
        'filtros': serialize_doc(query),
        'campos': campos,
        'items': serialize_doc(docs),
    }
