"""
Regras de localização: geração de posições, busca de espaço livre e controle de capacidade.

Uma localização guarda no máximo um produto. A ocupação é feita com update
condicional em ``ocupada: False`` para que duas requisições simultâneas não
aloquem a mesma posição.
"""
from datetime import datetime

from models_mongo.camara import CamaraMongo
from models_mongo.localizacao import (
    LocalizacaoMongo, gerar_codigo, nivel_acesso, capacidade_info, status_capacidade,
    CAPACIDADE_MIN_KG, CAPACIDADE_MAX_KG,
)
from models_mongo.produto import ProdutoMongo, STATUS_EM_LOCALIZACAO
from models_mongo.base import serialize_doc
from services.common import (
    cfg, get_logger, require_doc, require_object_id, to_float, to_int, clean_text, paginate_cursor,
)
from services.errors import (
    ValidationError, NotFoundError, ConflictError, CapacityError, LocationOccupiedError,
)

SORT_OPTIONS = ('capacidade_asc', 'capacidade_desc', 'acesso', 'coordenadas', 'otima')


def coord_key(doc):
    c = doc.get('coordenadas') or {}
    return (c.get('quadra', 0), c.get('lado', 0), c.get('fila', 0), c.get('andar', 0))


def location_to_dict(doc):
    return LocalizacaoMongo.from_doc(doc).to_dict()


def _active_chamber_ids(camara_id=None):
    filtro = {'status': 'ativa'}
    if camara_id:
        filtro['_id'] = require_object_id(camara_id, 'camara_id')
    return [c['_id'] for c in CamaraMongo.get_collection().find(filtro, {'_id': 1})]


def generate_locations_for_chamber(camara_id, capacidade_maxima_kg=None):
    """Cria todas as combinações de coordenadas da câmara, pulando códigos já existentes"""
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    capacidade = to_float(
        capacidade_maxima_kg if capacidade_maxima_kg is not None else cfg('DEFAULT_LOCATION_CAPACITY_KG', 1000),
        'capacidade_maxima_kg', CAPACIDADE_MIN_KG, CAPACIDADE_MAX_KG,
    )
    dims = camara.dimensoes
    coll = LocalizacaoMongo.get_collection()
    existentes = {d['codigo'] for d in coll.find({'camara_id': camara._id}, {'codigo': 1})}
    now = datetime.utcnow()
    novos = []
    for q in range(1, int(dims.get('quadras', 0)) + 1):
        for l in range(1, int(dims.get('lados', 0)) + 1):
            for f in range(1, int(dims.get('filas', 0)) + 1):
                for a in range(1, int(dims.get('andares', 0)) + 1):
                    codigo = gerar_codigo(q, l, f, a)
                    if codigo in existentes:
                        continue
                    novos.append({
                        'camara_id': camara._id,
                        'coordenadas': {'quadra': q, 'lado': l, 'fila': f, 'andar': a},
                        'codigo': codigo,
                        'ocupada': False,
                        'capacidade_maxima_kg': capacidade,
                        'peso_atual_kg': 0.0,
                        'metadados': {'nivel_acesso': nivel_acesso(a), 'observacoes': ''},
                        'data_criacao': now,
                        'data_atualizacao': now,
                    })
    if novos:
        coll.insert_many(novos)
    get_logger().info(f"[Localizações] Câmara {camara.nome}: {len(novos)} criadas, {len(existentes)} existentes")
    return {'criadas': len(novos), 'existentes': len(existentes), 'total': len(novos) + len(existentes)}


def list_locations(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('camara_id'):
        query['camara_id'] = require_object_id(filtros['camara_id'], 'camara_id')
    if filtros.get('ocupada') is not None:
        query['ocupada'] = bool(filtros['ocupada'])
    if filtros.get('nivel_acesso'):
        query['metadados.nivel_acesso'] = filtros['nivel_acesso']
    for campo in ('quadra', 'lado', 'fila', 'andar'):
        if filtros.get(campo) is not None:
            query[f'coordenadas.{campo}'] = to_int(filtros[campo], campo, 1)
    if filtros.get('codigo'):
        query['codigo'] = {'$regex': str(filtros['codigo']), '$options': 'i'}
    sort = [('camara_id', 1), ('coordenadas.quadra', 1), ('coordenadas.lado', 1),
            ('coordenadas.fila', 1), ('coordenadas.andar', 1)]
    return paginate_cursor(LocalizacaoMongo.get_collection(), query, page, per_page, sort, location_to_dict)


def get_location(loc_id):
    loc = require_doc(LocalizacaoMongo, loc_id, 'Localização')
    out = loc.to_dict()
    camara = CamaraMongo.find_by_id(loc.get('camara_id'))
    out['camara'] = {'id': camara.id, 'nome': camara.nome, 'status': camara.status} if camara else None
    produto = ProdutoMongo.get_collection().find_one(
        {'localizacao_id': loc._id, 'status': {'$in': STATUS_EM_LOCALIZACAO}}
    )
    out['produto'] = serialize_doc(produto) if produto else None
    return out


def find_available_locations(filtros=None, sort_by='coordenadas', limite=None):
    """Localizações livres em câmaras ativas, filtradas e ordenadas"""
    filtros = filtros or {}
    if sort_by not in SORT_OPTIONS:
        raise ValidationError(f"sort_by deve ser um de: {', '.join(SORT_OPTIONS)}")
    query = {'ocupada': False, 'camara_id': {'$in': _active_chamber_ids(filtros.get('camara_id'))}}
    faixa = {}
    peso = to_float(filtros.get('peso_necessario'), 'peso_necessario', 0, obrigatorio=False) or 0
    minimo = to_float(filtros.get('capacidade_min'), 'capacidade_min', 0, obrigatorio=False)
    if peso or minimo is not None:
        faixa['$gte'] = max(peso, minimo or 0)
    maximo = to_float(filtros.get('capacidade_max'), 'capacidade_max', 0, obrigatorio=False)
    if maximo is not None:
        faixa['$lte'] = maximo
    if faixa:
        query['capacidade_maxima_kg'] = faixa
    if filtros.get('nivel_acesso'):
        query['metadados.nivel_acesso'] = filtros['nivel_acesso']

    docs = list(LocalizacaoMongo.get_collection().find(query))
    if sort_by == 'capacidade_asc':
        docs.sort(key=lambda d: (d['capacidade_maxima_kg'], coord_key(d)))
    elif sort_by == 'capacidade_desc':
        docs.sort(key=lambda d: (-d['capacidade_maxima_kg'], coord_key(d)))
    elif sort_by == 'acesso':
        docs.sort(key=lambda d: (d['coordenadas']['andar'],) + coord_key(d))
    elif sort_by == 'otima':
        # menor desperdício de capacidade, depois ordem das coordenadas
        docs.sort(key=lambda d: (d['capacidade_maxima_kg'] - peso, coord_key(d)))
    else:
        docs.sort(key=coord_key)
    if limite:
        docs = docs[:int(limite)]
    return [location_to_dict(d) for d in docs]


def find_optimal_location(peso, camara_id=None, limite=5):
    peso = to_float(peso, 'peso', 0.001)
    candidatas = find_available_locations(
        {'camara_id': camara_id, 'peso_necessario': peso}, sort_by='otima', limite=limite
    )
    if not candidatas:
        return None
    melhor = candidatas[0]
    return {
        'localizacao': melhor,
        'desperdicio_kg': round(melhor['capacidade_maxima_kg'] - peso, 3),
        'alternativas': candidatas[1:],
    }


def _sugestoes(peso, camara_id, excluir_id):
    resultado = find_optimal_location(peso, camara_id, limite=4) if peso > 0 else None
    if not resultado:
        return []
    todas = [resultado['localizacao']] + resultado['alternativas']
    return [
        {'id': s['id'], 'codigo': s['codigo'], 'capacidade_maxima_kg': s['capacidade_maxima_kg']}
        for s in todas if s['id'] != str(excluir_id)
    ][:3]


def validate_location_capacity(loc_id, peso):
    """Verifica se a localização comporta o peso informado"""
    peso = to_float(peso, 'peso', 0.001)
    loc = require_doc(LocalizacaoMongo, loc_id, 'Localização')
    camara = CamaraMongo.find_by_id(loc.get('camara_id'))
    base = {'localizacao_id': loc.id, 'codigo': loc.codigo, 'peso_solicitado': peso}
    if camara is None or camara.status != 'ativa':
        return dict(base, valido=False, codigo_validacao='CHAMBER_INACTIVE',
                    mensagem='Câmara da localização não está ativa', sugestoes=[])
    camara_id = camara.id
    if loc.ocupada:
        return dict(base, valido=False, codigo_validacao='LOCATION_OCCUPIED',
                    mensagem=f'Localização {loc.codigo} já está ocupada',
                    sugestoes=_sugestoes(peso, camara_id, loc.id))
    disponivel = loc.capacidade_maxima_kg - loc.peso_atual_kg
    if peso > disponivel:
        return dict(base, valido=False, codigo_validacao='INSUFFICIENT_CAPACITY',
                    mensagem=f'Capacidade insuficiente em {loc.codigo}',
                    capacidade_disponivel_kg=round(disponivel, 3),
                    deficit=round(peso - disponivel, 3),
                    sugestoes=_sugestoes(peso, camara_id, loc.id))
    uso = (loc.peso_atual_kg + peso) / loc.capacidade_maxima_kg
    margem = float(cfg('CAPACITY_SAFETY_MARGIN', 0.05))
    if uso > 1 - margem:
        codigo, mensagem = 'CAPACITY_WARNING', 'Capacidade próxima do limite'
    else:
        codigo, mensagem = 'CAPACITY_OK', 'Capacidade adequada'
    return dict(base, valido=True, codigo_validacao=codigo, mensagem=mensagem,
                capacidade_disponivel_kg=round(disponivel, 3),
                percentual_apos=round(uso * 100, 2), sugestoes=[])


def ensure_can_store(loc_id, peso):
    resultado = validate_location_capacity(loc_id, peso)
    if resultado['valido']:
        return resultado
    codigo = resultado['codigo_validacao']
    if codigo == 'LOCATION_OCCUPIED':
        raise LocationOccupiedError(resultado['mensagem'], details=resultado)
    if codigo == 'INSUFFICIENT_CAPACITY':
        raise CapacityError(resultado['mensagem'], details=resultado)
    raise ConflictError(resultado['mensagem'], code=codigo, details=resultado)


def occupy_location(loc_id, peso):
    """Marca a localização como ocupada pelo peso informado"""
    ensure_can_store(loc_id, peso)
    oid = require_object_id(loc_id, 'localizacao_id')
    peso = round(float(peso), 3)
    res = LocalizacaoMongo.get_collection().update_one(
        {'_id': oid, 'ocupada': False, 'capacidade_maxima_kg': {'$gte': peso}},
        {'$set': {'ocupada': True, 'peso_atual_kg': peso, 'data_atualizacao': datetime.utcnow()}},
    )
    if res.modified_count == 0:
        raise LocationOccupiedError('Localização foi ocupada por outra operação')
    return oid


def release_location(loc_id):
    if not loc_id:
        return
    LocalizacaoMongo.get_collection().update_one(
        {'_id': require_object_id(loc_id, 'localizacao_id')},
        {'$set': {'ocupada': False, 'peso_atual_kg': 0.0, 'data_atualizacao': datetime.utcnow()}},
    )


def adjust_location_weight(loc_id, novo_peso):
    """Atualiza o peso mantendo ocupada == (peso > 0) e peso <= capacidade"""
    loc = require_doc(LocalizacaoMongo, loc_id, 'Localização')
    novo_peso = round(float(novo_peso), 3)
    if novo_peso <= 0:
        release_location(loc._id)
        return
    if novo_peso > loc.capacidade_maxima_kg:
        raise CapacityError(
            f'Peso {novo_peso} kg excede a capacidade de {loc.codigo}',
            details={'capacidade_maxima_kg': loc.capacidade_maxima_kg, 'deficit': round(novo_peso - loc.capacidade_maxima_kg, 3)},
        )
    LocalizacaoMongo.get_collection().update_one(
        {'_id': loc._id},
        {'$set': {'ocupada': True, 'peso_atual_kg': novo_peso, 'data_atualizacao': datetime.utcnow()}},
    )


def update_location(loc_id, dados):
    loc = require_doc(LocalizacaoMongo, loc_id, 'Localização')
    update = {}
    if 'capacidade_maxima_kg' in dados:
        capacidade = to_float(dados['capacidade_maxima_kg'], 'capacidade_maxima_kg', CAPACIDADE_MIN_KG, CAPACIDADE_MAX_KG)
        if capacidade < loc.peso_atual_kg:
            raise ConflictError(f'Capacidade não pode ser menor que o peso atual ({loc.peso_atual_kg} kg)')
        update['capacidade_maxima_kg'] = capacidade
    if 'observacoes' in dados:
        update['metadados.observacoes'] = clean_text(dados['observacoes'], 'observacoes', max_length=500)
    if not update:
        raise ValidationError('Nenhum campo editável informado')
    update['data_atualizacao'] = datetime.utcnow()
    LocalizacaoMongo.get_collection().update_one({'_id': loc._id}, {'$set': update})
    return get_location(loc._id)


def find_adjacent_locations(loc_id, raio=1, somente_disponiveis=False):
    loc = require_doc(LocalizacaoMongo, loc_id, 'Localização')
    raio = to_int(raio, 'raio', 1, 5)
    c = loc.coordenadas
    query = {'camara_id': loc.get('camara_id'), '_id': {'$ne': loc._id}}
    for campo in ('quadra', 'lado', 'fila', 'andar'):
        query[f'coordenadas.{campo}'] = {'$gte': c[campo] - raio, '$lte': c[campo] + raio}
    if somente_disponiveis:
        query['ocupada'] = False
    docs = sorted(LocalizacaoMongo.get_collection().find(query), key=coord_key)
    adjacentes = [location_to_dict(d) for d in docs]
    return {
        'localizacao': loc.to_dict(),
        'raio': raio,
        'adjacentes': adjacentes,
        'total': len(adjacentes),
        'disponiveis': sum(1 for a in adjacentes if not a['ocupada']),
    }


def _resumo(docs):
    total = len(docs)
    ocupadas = sum(1 for d in docs if d.get('ocupada'))
    capacidade_total = sum(float(d.get('capacidade_maxima_kg') or 0) for d in docs)
    capacidade_usada = sum(float(d.get('peso_atual_kg') or 0) for d in docs)
    return {
        'total': total,
        'ocupadas': ocupadas,
        'disponiveis': total - ocupadas,
        'taxa_ocupacao': round(ocupadas / total * 100, 2) if total else 0,
        'capacidade_total': round(capacidade_total, 3),
        'capacidade_usada': round(capacidade_usada, 3),
        'taxa_utilizacao': round(capacidade_usada / capacidade_total * 100, 2) if capacidade_total else 0,
    }


def get_location_stats(camara_id=None):
    query = {}
    if camara_id:
        query['camara_id'] = require_object_id(camara_id, 'camara_id')
    docs = list(LocalizacaoMongo.get_collection().find(query, {'ocupada': 1, 'capacidade_maxima_kg': 1, 'peso_atual_kg': 1}))
    return _resumo(docs)


def analyze_occupancy(camara_id=None):
    filtro = {}
    if camara_id:
        filtro['_id'] = require_object_id(camara_id, 'camara_id')
    camaras = list(CamaraMongo.get_collection().find(filtro).sort('nome', 1))
    if camara_id and not camaras:
        raise NotFoundError('Câmara não encontrada')
    coll = LocalizacaoMongo.get_collection()
    analise = []
    todas = []
    for camara in camaras:
        docs = list(coll.find({'camara_id': camara['_id']}))
        todas.extend(docs)
        por_andar, por_quadra, distribuicao = {}, {}, {}
        for d in docs:
            for chave, grupo in ((d['coordenadas']['andar'], por_andar), (d['coordenadas']['quadra'], por_quadra)):
                item = grupo.setdefault(chave, {'total': 0, 'ocupadas': 0})
                item['total'] += 1
                item['ocupadas'] += 1 if d.get('ocupada') else 0
            status = capacidade_info(d)['status_capacidade']
            distribuicao[status] = distribuicao.get(status, 0) + 1
        for grupo in (por_andar, por_quadra):
            for item in grupo.values():
                item['taxa_ocupacao'] = round(item['ocupadas'] / item['total'] * 100, 2)
        analise.append({
            'camara_id': str(camara['_id']),
            'nome': camara.get('nome'),
            'status': camara.get('status'),
            'resumo': _resumo(docs),
            'por_andar': {str(k): v for k, v in sorted(por_andar.items())},
            'por_quadra': {str(k): v for k, v in sorted(por_quadra.items())},
            'distribuicao_capacidade': distribuicao,
        })
    return {'camaras': analise, 'resumo': _resumo(todas)}


def get_locations_by_chamber(camara_id, filtros=None):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    filtros = filtros or {}
    query = {'camara_id': camara._id}
    if filtros.get('ocupada') is not None:
        query['ocupada'] = bool(filtros['ocupada'])
    for campo in ('quadra', 'lado', 'fila', 'andar'):
        if filtros.get(campo) is not None:
            query[f'coordenadas.{campo}'] = to_int(filtros[campo], campo, 1)
    docs = sorted(LocalizacaoMongo.get_collection().find(query), key=coord_key)
    return {
        'camara': {'id': camara.id, 'nome': camara.nome, 'dimensoes': camara.dimensoes},
        'localizacoes': [location_to_dict(d) for d in docs],
        'resumo': _resumo(docs),
    }


def get_quadras_by_chamber(camara_id):
    camara = require_doc(CamaraMongo, camara_id, 'Câmara')
    quadras = {}
    for d in LocalizacaoMongo.get_collection().find({'camara_id': camara._id}, {'coordenadas': 1, 'ocupada': 1}):
        q = d['coordenadas']['quadra']
        item = quadras.setdefault(q, {'quadra': q, 'total': 0, 'ocupadas': 0})
        item['total'] += 1
        item['ocupadas'] += 1 if d.get('ocupada') else 0
    out = []
    for q in sorted(quadras):
        item = quadras[q]
        item['disponiveis'] = item['total'] - item['ocupadas']
        item['status'] = status_capacidade(item['ocupadas'] / item['total'] * 100)
        out.append(item)
    return out
