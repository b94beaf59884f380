"""
Câmaras frias: cadastro, dimensões, condições ambientais e manutenção
"""
import re
from datetime import datetime, timedelta

from models_mongo.camara import (
    CamaraMongo, STATUS_CAMARA, LIMITES_DIMENSOES, MAX_LOCALIZACOES, total_localizacoes, status_condicoes,
)
from models_mongo.localizacao import LocalizacaoMongo, COORDENADAS
from models_mongo.produto import ProdutoMongo, STATUS_EM_LOCALIZACAO
from services import location_service
from services.common import (
    get_logger, require_doc, to_float, to_int, clean_text, parse_datetime, paginate_cursor,
)
from services.errors import ServiceError, ValidationError, ConflictError

# dimensão da câmara -> coordenada da localização
DIMENSAO_COORDENADA = {'quadras': 'quadra', 'lados': 'lado', 'filas': 'fila', 'andares': 'andar'}


def _validar_limites(limites, campo, minimo, maximo, erros):
    if not limites:
        return
    lmin, lmax = limites.get('min'), limites.get('max')
    for valor in (lmin, lmax):
        if valor is not None and not (minimo <= float(valor) <= maximo):
            erros.append(f'Limites de {campo} devem estar entre {minimo} e {maximo}')
            return
    if lmin is not None and lmax is not None and float(lmin) >= float(lmax):
        erros.append(f'Limite mínimo de {campo} deve ser menor que o máximo')


def validate_chamber_data(dados, parcial=False):
    """Retorna a lista de erros encontrados (vazia quando válido)"""
    erros = []
    dados = dados or {}

    def _check(fn):
        try:
            return fn()
        except ValidationError as e:
            erros.append(e.message)
            return None

    if not parcial or 'nome' in dados:
        _check(lambda: clean_text(dados.get('nome'), 'nome', 2, 100, obrigatorio=True))
    if 'descricao' in dados:
        _check(lambda: clean_text(dados.get('descricao'), 'descricao', max_length=500))
    if dados.get('temperatura_atual') is not None:
        _check(lambda: to_float(dados['temperatura_atual'], 'temperatura_atual', -50, 50))
    if dados.get('umidade_atual') is not None:
        _check(lambda: to_float(dados['umidade_atual'], 'umidade_atual', 0, 100))
    if 'status' in dados and dados['status'] not in STATUS_CAMARA:
        erros.append(f"status deve ser um de: {', '.join(STATUS_CAMARA)}")

    if not parcial or 'dimensoes' in dados:
        dims = dados.get('dimensoes')
        if not isinstance(dims, dict):
            erros.append('dimensoes é obrigatório')
        else:
            validas = True
            for campo, (minimo, maximo) in LIMITES_DIMENSOES.items():
                if _check(lambda: to_int(dims.get(campo), f'dimensoes.{campo}', minimo, maximo)) is None:
                    validas = False
            if validas and total_localizacoes(dims) > MAX_LOCALIZACOES:
                erros.append(f'Total de localizações não pode exceder {MAX_LOCALIZACOES}')

    config = dados.get('configuracoes') or {}
    if config.get('temperatura_alvo') is not None:
        _check(lambda: to_float(config['temperatura_alvo'], 'temperatura_alvo', -50, 50))
    if config.get('umidade_alvo') is not None:
        _check(lambda: to_float(config['umidade_alvo'], 'umidade_alvo', 0, 100))
    limites = config.get('limites_alerta') or {}
    try:
        _validar_limites(limites.get('temperatura'), 'temperatura', -50, 50, erros)
        _validar_limites(limites.get('umidade'), 'umidade', 0, 100, erros)
    except (TypeError, ValueError):
        erros.append('Limites de alerta devem ser numéricos')
    return erros


def _normalizar(dados):
    out = {}
    if 'nome' in dados:
        out['nome'] = dados['nome'].strip()
    if 'descricao' in dados:
        out['descricao'] = (dados.get('descricao') or '').strip()
    for campo in ('temperatura_atual', 'umidade_atual'):
        if campo in dados:
            out[campo] = float(dados[campo]) if dados[campo] is not None else None
    if 'status' in dados:
        out['status'] = dados['status']
    if 'dimensoes' in dados:
        out['dimensoes'] = {campo: int(dados['dimensoes'][campo]) for campo in LIMITES_DIMENSOES}
    if 'configuracoes' in dados:
        out['configuracoes'] = dados.get('configuracoes') or {}
    return out


def _ensure_unique_name(nome, excluir_id=None):
    filtro = {'nome': {'$regex': f'^{re.escape(nome)}$', '$options': 'i'}}
    for doc in CamaraMongo.get_collection().find(filtro, {'_id': 1, 'nome': 1}):
        if doc['nome'].lower() == nome.lower() and doc['_id'] != excluir_id:
            raise ConflictError(f'Já existe uma câmara com o nome {nome}')


def chamber_to_dict(camara, com_estatisticas=False):
    out = camara.to_dict()
    if com_estatisticas:
        out['estatisticas'] = location_service.get_location_stats(camara.id)
    return out


def create_chamber(dados, gerar_localizacoes=False, capacidade_padrao=None):
    erros = validate_chamber_data(dados)
    if erros:
        raise ValidationError('Dados da câmara inválidos', details={'erros': erros})
    campos = _normalizar(dados)
    _ensure_unique_name(campos['nome'])
    camara = CamaraMongo(**campos).save()
    get_logger().info(f"[Câmara] {camara.nome} criada ({total_localizacoes(camara.dimensoes)} posições)")

    resultado = None
    if gerar_localizacoes:
        try:
            resultado = location_service.generate_locations_for_chamber(camara.id, capacidade_padrao)
        except ServiceError:
            LocalizacaoMongo.get_collection().delete_many({'camara_id': camara._id})
            camara.delete()
            raise
    out = chamber_to_dict(camara)
    out['localizacoes_geradas'] = resultado
    return out


def _occupied_extent(camara_id):
    """Maior coordenada ocupada em cada eixo"""
    extent = {c: 0 for c in COORDENADAS}
    for doc in LocalizacaoMongo.get_collection().find({'camara_id': camara_id, 'ocupada': True}, {'coordenadas': 1}):
        for c in COORDENADAS:
            extent[c] = max(extent[c], int(doc['coordenadas'].get(c) or 0))
    return extent


def update_chamber(camara_id, dados):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    dados = dados or {}
    erros = validate_chamber_data(dados, parcial=True)
    if erros:
        raise ValidationError('Dados da câmara inválidos', details={'erros': erros})
    campos = _normalizar(dados)
    if 'nome' in campos:
        _ensure_unique_name(campos['nome'], camara._id)
    if 'dimensoes' in campos:
        extent = _occupied_extent(camara._id)
        conflitos = [
            f'{dim}: {campos["dimensoes"][dim]} < {extent[coord]} ocupada'
            for dim, coord in DIMENSAO_COORDENADA.items()
            if campos['dimensoes'][dim] < extent[coord]
        ]
        if conflitos:
            raise ConflictError(
                'Não é possível reduzir dimensões abaixo de localizações ocupadas',
                details={'conflitos': conflitos},
            )
    if 'configuracoes' in campos:
        config = dict(camara.get('configuracoes') or {})
        config.update(campos['configuracoes'])
        campos['configuracoes'] = config
    if not campos:
        raise ValidationError('Nenhum campo editável informado')
    campos['data_atualizacao'] = datetime.utcnow()
    CamaraMongo.get_collection().update_one({'_id': camara._id}, {'$set': campos})
    if 'dimensoes' in campos:
        # posições fora das novas dimensões (todas livres) deixam de existir
        fora = {'$or': [
            {f'coordenadas.{coord}': {'$gt': campos['dimensoes'][dim]}}
            for dim, coord in DIMENSAO_COORDENADA.items()
        ]}
        fora['camara_id'] = camara._id
        removidas = LocalizacaoMongo.get_collection().delete_many(fora).deleted_count
        if removidas:
            get_logger().info(f"[Câmara] {camara.nome}: {removidas} localizações fora das dimensões removidas")
    return chamber_to_dict(require_doc(CamaraMongo, camara._id, 'Câmara'))


def delete_chamber(camara_id):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    ocupadas = LocalizacaoMongo.count({'camara_id': camara._id, 'ocupada': True})
    if ocupadas:
        raise ConflictError(
            f'Câmara possui {ocupadas} localizações ocupadas',
            details={'localizacoes_ocupadas': ocupadas},
        )
    removidas = LocalizacaoMongo.get_collection().delete_many({'camara_id': camara._id}).deleted_count
    camara.delete()
    get_logger().info(f"[Câmara] {camara.nome} removida com {removidas} localizações")
    return {'camara_id': camara.id, 'localizacoes_removidas': removidas}


def list_chambers(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('status'):
        if filtros['status'] not in STATUS_CAMARA:
            raise ValidationError(f"status deve ser um de: {', '.join(STATUS_CAMARA)}")
        query['status'] = filtros['status']
    if filtros.get('search'):
        query['nome'] = {'$regex': str(filtros['search']).strip(), '$options': 'i'}
    result = paginate_cursor(
        CamaraMongo.get_collection(), query, page, per_page,
        sort=[('nome', 1)], transform=lambda d: CamaraMongo.from_doc(d).to_dict(),
    )
    if filtros.get('com_estatisticas'):
        for item in result['items']:
            item['estatisticas'] = location_service.get_location_stats(item['id'])
    return result


def get_chamber(camara_id):
    return chamber_to_dict(require_doc(CamaraMongo, camara_id, 'Câmara'), com_estatisticas=True)


def get_chamber_stats(camara_id):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    stats = location_service.get_location_stats(camara.id)
    loc_ids = [d['_id'] for d in LocalizacaoMongo.get_collection().find({'camara_id': camara._id}, {'_id': 1})]
    produtos = ProdutoMongo.count({'localizacao_id': {'$in': loc_ids}, 'status': {'$in': STATUS_EM_LOCALIZACAO}})
    stats.update({
        'camara_id': camara.id,
        'nome': camara.nome,
        'total_produtos': produtos,
        'total_localizacoes_previstas': total_localizacoes(camara.dimensoes),
    })
    stats.update(status_condicoes(camara.data))
    return stats


def validate_coordinates(camara, coordenadas):
    """Erros de coordenada fora das dimensões da câmara"""
    if not isinstance(camara, CamaraMongo):
        camara = require_doc(CamaraMongo, camara, 'Câmara')
    coordenadas = coordenadas or {}
    erros = []
    for dim, coord in DIMENSAO_COORDENADA.items():
        try:
            valor = to_int(coordenadas.get(coord), coord, 1)
        except ValidationError as e:
            erros.append(e.message)
            continue
        limite = int(camara.dimensoes.get(dim) or 0)
        if valor > limite:
            erros.append(f'{coord} deve estar entre 1 e {limite}')
    return {'valido': not erros, 'erros': erros}


def analyze_capacity(camara_id):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    docs = list(LocalizacaoMongo.get_collection().find({'camara_id': camara._id}))
    por_andar = {}
    for doc in docs:
        andar = doc['coordenadas']['andar']
        a = por_andar.setdefault(andar, {'andar': andar, 'total': 0, 'ocupadas': 0,
                                         'capacidade_total': 0.0, 'capacidade_usada': 0.0})
        a['total'] += 1
        a['ocupadas'] += 1 if doc.get('ocupada') else 0
        a['capacidade_total'] += float(doc.get('capacidade_maxima_kg') or 0)
        a['capacidade_usada'] += float(doc.get('peso_atual_kg') or 0)
    andares = []
    for andar in sorted(por_andar):
        a = por_andar[andar]
        a['taxa_ocupacao'] = round(a['ocupadas'] / a['total'] * 100, 2) if a['total'] else 0
        a['utilizacao_capacidade'] = (
            round(a['capacidade_usada'] / a['capacidade_total'] * 100, 2) if a['capacidade_total'] else 0
        )
        a['capacidade_total'] = round(a['capacidade_total'], 3)
        a['capacidade_usada'] = round(a['capacidade_usada'], 3)
        andares.append(a)

    resumo = location_service.get_location_stats(camara.id)
    recomendacoes = []
    if not docs:
        recomendacoes.append('Gerar localizações para a câmara')
    elif resumo['taxa_utilizacao'] >= 90:
        recomendacoes.append('Câmara quase lotada: planejar retiradas ou expansão')
    elif resumo['taxa_utilizacao'] < 30:
        recomendacoes.append('Baixa utilização: considerar consolidar produtos')
    subutilizados = [a['andar'] for a in andares if a['total'] and a['taxa_ocupacao'] < 20]
    if docs and len(subutilizados) < len(andares) and subutilizados:
        recomendacoes.append(f"Andares com baixa ocupação: {', '.join(map(str, subutilizados))}")
    return {'camara': camara.to_dict(), 'resumo': resumo, 'por_andar': andares, 'recomendacoes': recomendacoes}


def environmental_monitoring(camara_id=None):
    query = {'status': 'ativa'}
    if camara_id:
        query['_id'] = require_doc(CamaraMongo, camara_id, 'Câmara')._id
    resultado = []
    for doc in CamaraMongo.get_collection().find(query).sort('nome', 1):
        config = doc.get('configuracoes') or {}
        status = status_condicoes(doc)
        alertas = []
        if status['status_temperatura'] in ('baixa', 'alta'):
            alertas.append(f"Temperatura {status['status_temperatura']}: {doc.get('temperatura_atual')}°C")
        if status['status_umidade'] in ('baixa', 'alta'):
            alertas.append(f"Umidade {status['status_umidade']}: {doc.get('umidade_atual')}%")
        if doc.get('temperatura_atual') is None or doc.get('umidade_atual') is None:
            alertas.append('Leituras ambientais ausentes')
        resultado.append({
            'camara_id': str(doc['_id']),
            'nome': doc.get('nome'),
            'atual': {'temperatura': doc.get('temperatura_atual'), 'umidade': doc.get('umidade_atual')},
            'alvo': {'temperatura': config.get('temperatura_alvo'), 'umidade': config.get('umidade_alvo')},
            'limites_alerta': config.get('limites_alerta') or {},
            **status,
            'alertas': alertas,
        })
    return resultado


def maintenance_schedule(dias=30):
    dias = to_int(dias, 'dias', 1, 365)
    agora = datetime.utcnow()
    limite = agora + timedelta(days=dias)
    atrasadas, proximas = [], []
    for doc in CamaraMongo.get_collection().find({'proxima_manutencao': {'$ne': None, '$lte': limite}}).sort(
            'proxima_manutencao', 1):
        item = CamaraMongo.from_doc(doc).to_dict()
        item['dias_para_manutencao'] = (doc['proxima_manutencao'] - agora).days
        (atrasadas if doc['proxima_manutencao'] <= agora else proximas).append(item)
    sem_agenda = CamaraMongo.count({'proxima_manutencao': None})
    return {'atrasadas': atrasadas, 'proximas': proximas, 'sem_agendamento': sem_agenda, 'dias': dias}


def register_maintenance(camara_id, proxima_manutencao=None, observacoes=None):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    agora = datetime.utcnow()
    proxima = parse_datetime(proxima_manutencao, 'proxima_manutencao')
    if proxima is not None and proxima <= agora:
        raise ValidationError('Próxima manutenção deve estar no futuro')
    CamaraMongo.get_collection().update_one({'_id': camara._id}, {'$set': {
        'ultima_manutencao': agora,
        'proxima_manutencao': proxima,
        'observacoes_manutencao': clean_text(observacoes, 'observacoes', max_length=500),
        'data_atualizacao': agora,
    }})
    get_logger().info(f"[Câmara] Manutenção registrada em {camara.nome}")
    return chamber_to_dict(require_doc(CamaraMongo, camara._id, 'Câmara'))
