"""
Clientes proprietários dos produtos
"""
import re
from datetime import datetime

from models_mongo.cliente import ClienteMongo, somente_digitos, validar_cpf, validar_cnpj, tipo_documento
from models_mongo.produto import ProdutoMongo, STATUS_ATIVOS, STATUS_EM_LOCALIZACAO
from models_mongo.tipo_semente import titulo
from services.common import get_logger, require_doc, clean_text, paginate_cursor
from services.errors import ValidationError, ConflictError

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
CAMPOS_ENDERECO = ('logradouro', 'numero', 'complemento', 'bairro', 'cidade', 'estado', 'cep', 'pais')


def validate_document(documento):
    """Valida CPF/CNPJ pelos dígitos verificadores e infere o tipo"""
    digitos = somente_digitos(documento)
    if not digitos:
        return {'valido': True, 'documento': None, 'tipo_documento': 'OUTROS'}
    tipo = tipo_documento(digitos)
    if tipo == 'CPF' and not validar_cpf(digitos):
        return {'valido': False, 'documento': digitos, 'tipo_documento': tipo, 'erro': 'CPF inválido'}
    if tipo == 'CNPJ' and not validar_cnpj(digitos):
        return {'valido': False, 'documento': digitos, 'tipo_documento': tipo, 'erro': 'CNPJ inválido'}
    return {'valido': True, 'documento': digitos, 'tipo_documento': tipo}


def _parse(dados, parcial=False):
    campos = {}
    if not parcial or 'nome' in dados:
        campos['nome'] = titulo(clean_text(dados.get('nome'), 'nome', 2, 200, obrigatorio=True))
    if 'documento' in dados:
        doc = validate_document(dados.get('documento'))
        if not doc['valido']:
            raise ValidationError(doc['erro'])
        campos['documento'] = doc['documento']
        campos['tipo_documento'] = doc['tipo_documento']
    if 'email' in dados:
        email = clean_text(dados.get('email'), 'email', max_length=200).lower()
        if email and not EMAIL_RE.match(email):
            raise ValidationError('Email inválido')
        campos['email'] = email or None
    for campo, limite in (('contato', 200), ('telefone', 30), ('observacoes', 1000)):
        if campo in dados:
            campos[campo] = clean_text(dados.get(campo), campo, max_length=limite)
    if 'endereco' in dados:
        endereco = dados.get('endereco') or {}
        if not isinstance(endereco, dict):
            raise ValidationError('endereco deve ser um objeto')
        campos['endereco'] = {c: str(endereco.get(c) or '').strip() for c in CAMPOS_ENDERECO}
        campos['endereco']['pais'] = campos['endereco']['pais'] or 'Brasil'
    return campos


def _ensure_unique(campos, excluir_id=None):
    coll = ClienteMongo.get_collection()
    checks = []
    if campos.get('nome'):
        checks.append(({'nome': {'$regex': f"^{re.escape(campos['nome'])}$", '$options': 'i'}}, 'nome'))
    if campos.get('documento'):
        checks.append(({'documento': campos['documento']}, 'documento'))
    if campos.get('email'):
        checks.append(({'email': campos['email']}, 'email'))
    for filtro, campo in checks:
        existente = coll.find_one(filtro, {'_id': 1})
        if existente is not None and existente['_id'] != excluir_id:
            raise ConflictError(f'Já existe um cliente com este {campo}')


def create_client(dados):
    campos = _parse(dados or {})
    _ensure_unique(campos)
    cliente = ClienteMongo(**campos).save()
    get_logger().info(f"[Cliente] {cliente.get('nome')} criado")
    return cliente.to_dict()


def update_client(cliente_id, dados):
    cliente = require_doc(ClienteMongo, cliente_id, 'Cliente')
    campos = _parse(dados or {}, parcial=True)
    if not campos:
        raise ValidationError('Nenhum campo editável informado')
    _ensure_unique(campos, cliente._id)
    campos['data_atualizacao'] = datetime.utcnow()
    ClienteMongo.get_collection().update_one({'_id': cliente._id}, {'$set': campos})
    return require_doc(ClienteMongo, cliente._id, 'Cliente').to_dict()


def _product_counts(cliente_oid):
    docs = list(ProdutoMongo.get_collection().find({'cliente_id': cliente_oid}, {'status': 1, 'peso_total': 1}))
    armazenados = [d for d in docs if d.get('status') in STATUS_EM_LOCALIZACAO]
    return {
        'total_produtos': len(docs),
        'produtos_ativos': sum(1 for d in docs if d.get('status') in STATUS_ATIVOS),
        'produtos_armazenados': len(armazenados),
        'peso_armazenado': round(sum(float(d.get('peso_total') or 0) for d in armazenados), 3),
    }


def get_client(cliente_id):
    cliente = require_doc(ClienteMongo, cliente_id, 'Cliente')
    out = cliente.to_dict()
    out['estatisticas'] = _product_counts(cliente._id)
    return out


def list_clients(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('ativo') is not None:
        query['ativo'] = str(filtros['ativo']).lower() in ('1', 'true', 'sim')
    if filtros.get('tipo_documento'):
        query['tipo_documento'] = str(filtros['tipo_documento']).upper()
    if filtros.get('search'):
        query.update(_search_query(filtros['search']))
    return paginate_cursor(
        ClienteMongo.get_collection(), query, page, per_page,
        sort=[('nome', 1)], transform=lambda d: ClienteMongo.from_doc(d).to_dict(),
    )


def _search_query(termo):
    termo = str(termo or '').strip()
    regex = {'$regex': re.escape(termo), '$options': 'i'}
    ou = [{'nome': regex}, {'email': regex}, {'contato': regex}]
    digitos = somente_digitos(termo)
    if digitos:
        ou.append({'documento': {'$regex': digitos}})
    return {'$or': ou}


def search_clients(q, limite=10):
    if len(str(q or '').strip()) < 2:
        raise ValidationError('Busca deve ter pelo menos 2 caracteres')
    query = _search_query(q)
    query['ativo'] = True
    docs = ClienteMongo.get_collection().find(query).sort('nome', 1).limit(int(limite))
    return [ClienteMongo.from_doc(d).to_dict() for d in docs]


def deactivate_client(cliente_id, force=False):
    cliente = require_doc(ClienteMongo, cliente_id, 'Cliente')
    ativos = ProdutoMongo.count({'cliente_id': cliente._id, 'status': {'$in': STATUS_ATIVOS}})
    if ativos and not force:
        raise ConflictError(
            f'Cliente possui {ativos} produtos ativos',
            details={'produtos_ativos': ativos},
        )
    ClienteMongo.get_collection().update_one(
        {'_id': cliente._id}, {'$set': {'ativo': False, 'data_atualizacao': datetime.utcnow()}}
    )
    get_logger().info(f"[Cliente] {cliente.get('nome')} desativado (force={bool(force)})")
    return {'id': cliente.id, 'ativo': False, 'produtos_ativos': ativos}


def activate_client(cliente_id):
    cliente = require_doc(ClienteMongo, cliente_id, 'Cliente')
    ClienteMongo.get_collection().update_one(
        {'_id': cliente._id}, {'$set': {'ativo': True, 'data_atualizacao': datetime.utcnow()}}
    )
    return require_doc(ClienteMongo, cliente._id, 'Cliente').to_dict()


def get_client_stats():
    docs = list(ClienteMongo.get_collection().find({}, {'ativo': 1, 'tipo_documento': 1}))
    por_tipo = {}
    for d in docs:
        por_tipo[d.get('tipo_documento') or 'OUTROS'] = por_tipo.get(d.get('tipo_documento') or 'OUTROS', 0) + 1
    com_produtos = len(ProdutoMongo.get_collection().distinct(
        'cliente_id', {'cliente_id': {'$ne': None}, 'status': {'$in': STATUS_EM_LOCALIZACAO}}
    ))
    return {
        'total': len(docs),
        'ativos': sum(1 for d in docs if d.get('ativo', True)),
        'inativos': sum(1 for d in docs if not d.get('ativo', True)),
        'por_tipo_documento': por_tipo,
        'com_produtos_armazenados': com_produtos,
    }
