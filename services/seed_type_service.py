"""
Tipos de semente
"""
import re
from datetime import datetime

from models_mongo.produto import ProdutoMongo, STATUS_ATIVOS
from models_mongo.tipo_semente import TipoSementeMongo, titulo
from services.common import get_logger, require_doc, to_float, to_int, clean_text, paginate_cursor
from services.errors import ValidationError, ConflictError

FAIXAS = {
    'temperatura_ideal': (-50, 50),
    'umidade_ideal': (0, 100),
}


def _parse(dados, parcial=False):
    campos = {}
    if not parcial or 'nome' in dados:
        campos['nome'] = titulo(clean_text(dados.get('nome'), 'nome', 2, 100, obrigatorio=True))
    if 'descricao' in dados:
        campos['descricao'] = clean_text(dados.get('descricao'), 'descricao', max_length=500)
    for campo, (minimo, maximo) in FAIXAS.items():
        if campo in dados:
            campos[campo] = to_float(dados[campo], campo, minimo, maximo, obrigatorio=False)
    if 'tempo_max_armazenamento_dias' in dados:
        campos['tempo_max_armazenamento_dias'] = to_int(
            dados['tempo_max_armazenamento_dias'], 'tempo_max_armazenamento_dias', 1, 3650, obrigatorio=False
        )
    if 'especificacoes' in dados:
        if not isinstance(dados['especificacoes'] or {}, dict):
            raise ValidationError('especificacoes deve ser um objeto')
        campos['especificacoes'] = dados['especificacoes'] or {}
    if 'observacoes_armazenamento' in dados:
        campos['observacoes_armazenamento'] = clean_text(
            dados.get('observacoes_armazenamento'), 'observacoes_armazenamento', max_length=1000
        )
    if 'ativo' in dados:
        campos['ativo'] = bool(dados['ativo'])
    return campos


def _ensure_unique_name(nome, excluir_id=None):
    existente = TipoSementeMongo.get_collection().find_one(
        {'nome': {'$regex': f'^{re.escape(nome)}$', '$options': 'i'}}
    )
    if existente is not None and existente['_id'] != excluir_id:
        raise ConflictError(f'Tipo de semente {nome} já existe')


def create_seed_type(dados):
    campos = _parse(dados or {})
    _ensure_unique_name(campos['nome'])
    tipo = TipoSementeMongo(**campos).save()
    get_logger().info(f"[TipoSemente] {tipo.get('nome')} criado")
    return tipo.to_dict()


def update_seed_type(tipo_id, dados):
    tipo = require_doc(TipoSementeMongo, tipo_id, 'Tipo de semente')
    campos = _parse(dados or {}, parcial=True)
    if not campos:
        raise ValidationError('Nenhum campo editável informado')
    if 'nome' in campos:
        _ensure_unique_name(campos['nome'], tipo._id)
    campos['data_atualizacao'] = datetime.utcnow()
    TipoSementeMongo.get_collection().update_one({'_id': tipo._id}, {'$set': campos})
    return require_doc(TipoSementeMongo, tipo._id, 'Tipo de semente').to_dict()


def list_seed_types(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('ativo') is not None:
        query['ativo'] = str(filtros['ativo']).lower() in ('1', 'true', 'sim')
    if filtros.get('search'):
        query['nome'] = {'$regex': re.escape(str(filtros['search']).strip()), '$options': 'i'}
    return paginate_cursor(
        TipoSementeMongo.get_collection(), query, page, per_page,
        sort=[('nome', 1)], transform=lambda d: TipoSementeMongo.from_doc(d).to_dict(),
    )


def get_seed_type(tipo_id):
    tipo = require_doc(TipoSementeMongo, tipo_id, 'Tipo de semente')
    out = tipo.to_dict()
    out['total_produtos_ativos'] = ProdutoMongo.count({'tipo_semente_id': tipo._id, 'status': {'$in': STATUS_ATIVOS}})
    return out


def delete_seed_type(tipo_id):
    """Desativa; tipos em uso por produtos ativos nunca são apagados"""
    tipo = require_doc(TipoSementeMongo, tipo_id, 'Tipo de semente')
    em_uso = ProdutoMongo.count({'tipo_semente_id': tipo._id, 'status': {'$in': STATUS_ATIVOS}})
    TipoSementeMongo.get_collection().update_one(
        {'_id': tipo._id}, {'$set': {'ativo': False, 'data_atualizacao': datetime.utcnow()}}
    )
    get_logger().info(f"[TipoSemente] {tipo.get('nome')} desativado ({em_uso} produtos ativos)")
    return {'id': tipo.id, 'ativo': False, 'produtos_ativos': em_uso}


def find_by_conditions(temperatura=None, umidade=None, tolerancia=2):
    """Tipos ativos cujas condições ideais ficam dentro da tolerância"""
    temperatura = to_float(temperatura, 'temperatura', -50, 50, obrigatorio=False)
    umidade = to_float(umidade, 'umidade', 0, 100, obrigatorio=False)
    tolerancia = to_float(tolerancia, 'tolerancia', 0, 50, obrigatorio=False)
    tolerancia = 2 if tolerancia is None else tolerancia
    if temperatura is None and umidade is None:
        raise ValidationError('Informe temperatura e/ou umidade')
    query = {'ativo': True}
    if temperatura is not None:
        query['temperatura_ideal'] = {'$gte': temperatura - tolerancia, '$lte': temperatura + tolerancia}
    if umidade is not None:
        query['umidade_ideal'] = {'$gte': umidade - tolerancia, '$lte': umidade + tolerancia}
    return [TipoSementeMongo.from_doc(d).to_dict()
            for d in TipoSementeMongo.get_collection().find(query).sort('nome', 1)]
