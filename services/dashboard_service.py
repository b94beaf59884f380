"""
Resumos do painel principal e alertas operacionais
"""
from datetime import datetime, timedelta

from models_mongo.base import serialize_doc
from models_mongo.camara import CamaraMongo, status_condicoes
from models_mongo.cliente import ClienteMongo
from models_mongo.movimentacao import MovimentacaoMongo
from models_mongo.produto import (
    ProdutoMongo, STATUS_EM_LOCALIZACAO, AGUARDANDO_LOCACAO, AGUARDANDO_RETIRADA,
)
from models_mongo.solicitacao_retirada import SolicitacaoRetiradaMongo, PENDENTE
from models_mongo.tipo_semente import TipoSementeMongo
from models_mongo.usuario import UsuarioMongo
from services import location_service, movement_service
from services.common import cfg, to_int

CRESCIMENTO_MENSAL = 0.02
LIMITE_CAMARA_CHEIA = 90
DIAS_RETIRADA_ATRASADA = 7


def _utilizacao(taxa):
    if taxa >= 90:
        return 'critica'
    if taxa >= 75:
        return 'alta'
    if taxa >= 40:
        return 'adequada'
    return 'baixa'


def generate_system_summary():
    agora = datetime.utcnow()
    inicio_dia = datetime(agora.year, agora.month, agora.day)
    locais = location_service.get_location_stats()
    return {
        'totais': {
            'camaras': CamaraMongo.count(),
            'camaras_ativas': CamaraMongo.count({'status': 'ativa'}),
            'localizacoes': locais['total'],
            'produtos_armazenados': ProdutoMongo.count({'status': {'$in': STATUS_EM_LOCALIZACAO}}),
            'tipos_semente': TipoSementeMongo.count({'ativo': True}),
            'clientes': ClienteMongo.count({'ativo': True}),
            'usuarios': UsuarioMongo.count({'ativo': True}),
        },
        'ocupacao': locais,
        'movimentacoes_hoje': MovimentacaoMongo.count({'data_movimentacao': {'$gte': inicio_dia}}),
        'produtos_aguardando_locacao': ProdutoMongo.count({'status': AGUARDANDO_LOCACAO}),
        'produtos_aguardando_retirada': ProdutoMongo.count({'status': AGUARDANDO_RETIRADA}),
        'solicitacoes_pendentes': SolicitacaoRetiradaMongo.count({'status': PENDENTE}),
        'total_alertas': generate_alerts()['total'],
        'gerado_em': agora.isoformat(),
    }


def analyze_chamber_status():
    resultado = []
    for doc in CamaraMongo.get_collection().find({}).sort('nome', 1):
        camara = CamaraMongo.from_doc(doc)
        stats = location_service.get_location_stats(camara.id)
        item = camara.to_dict()
        item['ocupacao'] = stats
        item['nivel_utilizacao'] = _utilizacao(stats['taxa_utilizacao'])
        resultado.append(item)
    return resultado


def analyze_storage_capacity():
    geral = location_service.get_location_stats()
    camaras = []
    for doc in CamaraMongo.get_collection().find({'status': 'ativa'}).sort('nome', 1):
        stats = location_service.get_location_stats(doc['_id'])
        camaras.append({
            'camara_id': str(doc['_id']),
            'nome': doc.get('nome'),
            **stats,
            'nivel_utilizacao': _utilizacao(stats['taxa_utilizacao']),
        })
    return {
        'geral': geral,
        'camaras': camaras,
        'dias_ate_lotacao': dias_ate_lotacao(geral['capacidade_usada'], geral['capacidade_total']),
        'nivel_utilizacao': _utilizacao(geral['taxa_utilizacao']),
    }


def dias_ate_lotacao(usada, total, crescimento_mensal=CRESCIMENTO_MENSAL):
    """Projeção com crescimento composto mensal sobre o peso armazenado"""
    if total <= 0 or usada <= 0:
        return None
    if usada >= total:
        return 0
    meses = 0
    while usada < total and meses < 600:
        usada *= 1 + crescimento_mensal
        meses += 1
    return meses * 30


def get_recent_movements(limite=10):
    limite = to_int(limite, 'limite', 1, 100)
    docs = MovimentacaoMongo.get_collection().find({}).sort('data_movimentacao', -1).limit(limite)
    return movement_service.enrich_movements(serialize_doc(list(docs)))


def generate_alerts():
    agora = datetime.utcnow()
    dias_alerta = int(cfg('EXPIRATION_WARNING_DAYS', 30))
    dias_critico = int(cfg('EXPIRATION_CRITICAL_DAYS', 7))
    alertas = []

    produtos = ProdutoMongo.get_collection().find({
        'status': {'$in': STATUS_EM_LOCALIZACAO},
        'data_validade': {'$ne': None, '$lte': agora + timedelta(days=dias_alerta)},
    }).sort('data_validade', 1)
    for p in produtos:
        dias = (p['data_validade'] - agora).days
        if dias < 0:
            nivel, msg = 'critico', f"Produto {p.get('nome')} vencido há {-dias} dias"
        elif dias <= dias_critico:
            nivel, msg = 'critico', f"Produto {p.get('nome')} vence em {dias} dias"
        else:
            nivel, msg = 'aviso', f"Produto {p.get('nome')} vence em {dias} dias"
        alertas.append({'tipo': 'validade', 'nivel': nivel, 'mensagem': msg, 'referencia_id': str(p['_id'])})

    for doc in CamaraMongo.get_collection().find({'status': 'ativa'}):
        status = status_condicoes(doc)
        if status['status_condicoes'] == 'alerta':
            alertas.append({
                'tipo': 'condicoes', 'nivel': 'critico', 'referencia_id': str(doc['_id']),
                'mensagem': (f"Câmara {doc.get('nome')}: temperatura {status['status_temperatura']}, "
                             f"umidade {status['status_umidade']}"),
            })
        proxima = doc.get('proxima_manutencao')
        if isinstance(proxima, datetime) and proxima <= agora + timedelta(days=7):
            alertas.append({
                'tipo': 'manutencao', 'nivel': 'critico' if proxima <= agora else 'aviso',
                'referencia_id': str(doc['_id']),
                'mensagem': f"Câmara {doc.get('nome')}: manutenção {'atrasada' if proxima <= agora else 'próxima'}",
            })
        stats = location_service.get_location_stats(doc['_id'])
        if stats['total'] and stats['taxa_ocupacao'] >= LIMITE_CAMARA_CHEIA:
            alertas.append({
                'tipo': 'capacidade', 'nivel': 'aviso', 'referencia_id': str(doc['_id']),
                'mensagem': f"Câmara {doc.get('nome')} com {stats['taxa_ocupacao']}% das localizações ocupadas",
            })

    limite_retirada = agora - timedelta(days=DIAS_RETIRADA_ATRASADA)
    for s in SolicitacaoRetiradaMongo.get_collection().find(
            {'status': PENDENTE, 'data_solicitacao': {'$lte': limite_retirada}}):
        alertas.append({
            'tipo': 'retirada', 'nivel': 'aviso', 'referencia_id': str(s['_id']),
            'mensagem': f"Solicitação de retirada pendente há {(agora - s['data_solicitacao']).days} dias",
        })

    pendentes_locacao = ProdutoMongo.count({'status': AGUARDANDO_LOCACAO})
    if pendentes_locacao:
        alertas.append({
            'tipo': 'locacao', 'nivel': 'info', 'referencia_id': None,
            'mensagem': f'{pendentes_locacao} produtos aguardando locação',
        })

    por_nivel = {}
    for a in alertas:
        por_nivel[a['nivel']] = por_nivel.get(a['nivel'], 0) + 1
    return {'total': len(alertas), 'por_nivel': por_nivel, 'alertas': alertas}

