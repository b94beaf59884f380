"""
Ciclo de vida dos produtos armazenados.

Toda mudança de status passa por ``_transition`` (tabela TRANSICOES_VALIDAS) e
toda escrita no produto por ``_update_versioned``, que filtra por ``versao`` e
incrementa o contador. Escritas concorrentes no mesmo produto resultam em
ConcurrencyError em vez de sobrescrita silenciosa.
"""
from datetime import datetime, timedelta

from pymongo import ReturnDocument

from models_mongo.base import serialize_doc, to_object_id
from models_mongo.camara import CamaraMongo
from models_mongo.cliente import ClienteMongo
from models_mongo.localizacao import LocalizacaoMongo
from models_mongo.movimentacao import ENTRADA, SAIDA, TRANSFERENCIA, AJUSTE
from models_mongo.produto import (
    ProdutoMongo, LoteProdutosMongo, TRANSICOES_VALIDAS, STATUS_PRODUTO, STATUS_FINAIS, STATUS_EM_LOCALIZACAO,
    TIPOS_ARMAZENAMENTO, GRAUS_QUALIDADE, AGUARDANDO_LOCACAO, AGUARDANDO_RETIRADA, CADASTRADO, LOCADO, REMOVIDO,
    pode_transicionar, calcular_peso_total, status_validade,
)
from models_mongo.solicitacao_retirada import SolicitacaoRetiradaMongo, PENDENTE
from models_mongo.tipo_semente import TipoSementeMongo
from services import location_service, movement_service
from services.common import (
    cfg, get_logger, normalize_text, require_doc, require_object_id, to_int, to_float, clean_text,
    parse_datetime, paginate_cursor,
)
from services.errors import (
    ServiceError, ValidationError, NotFoundError, ConflictError, InvalidTransitionError, ConcurrencyError,
    CapacityError,
)

CAMPOS_PROTEGIDOS = ('status', 'localizacao_id')


# ---------------------------------------------------------------------------
# Escrita versionada e FSM
# ---------------------------------------------------------------------------

def _update_versioned(produto, set_fields, usuario_id=None):
    now = datetime.utcnow()
    set_fields = dict(set_fields)
    set_fields['data_atualizacao'] = now
    if usuario_id is not None:
        set_fields['metadados.modificado_por'] = to_object_id(usuario_id)
    versao = produto.get('versao')
    filtro = {'_id': produto._id, 'versao': versao if versao is not None else {'$exists': False}}
    doc = ProdutoMongo.get_collection().find_one_and_update(
        filtro,
        {'$set': set_fields, '$inc': {'versao': 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise ConcurrencyError('Produto foi alterado por outra operação. Recarregue e tente novamente.')
    return ProdutoMongo.from_doc(doc)


def _transition(produto, novo_status, set_fields=None, usuario_id=None):
    atual = produto.status
    if not pode_transicionar(atual, novo_status):
        raise InvalidTransitionError(
            f'Transição de status inválida: {atual} → {novo_status}',
            details={'status_atual': atual, 'permitidos': TRANSICOES_VALIDAS.get(atual, [])},
        )
    campos = dict(set_fields or {})
    campos['status'] = novo_status
    produto_atualizado = _update_versioned(produto, campos, usuario_id)
    get_logger().info(f"[Produto] {produto.id}: {atual} → {novo_status}")
    return produto_atualizado


def _require_status(produto, *status, acao='operação'):
    if produto.status not in status:
        raise InvalidTransitionError(
            f"{acao.capitalize()} exige produto em {' ou '.join(status)} (atual: {produto.status})",
            details={'status_atual': produto.status},
        )


def _require_product(produto_id):
    return require_doc(ProdutoMongo, produto_id, 'Produto')


# ---------------------------------------------------------------------------
# Serialização com dados relacionados
# ---------------------------------------------------------------------------

def enrich_products(items):
    """Acrescenta código da localização, câmara, tipo de semente e cliente"""
    def _ids(campo):
        return [o for o in {to_object_id(i.get(campo)) for i in items} if o is not None]

    tipos = {str(d['_id']): d.get('nome') for d in
             TipoSementeMongo.get_collection().find({'_id': {'$in': _ids('tipo_semente_id')}}, {'nome': 1})}
    clientes = {str(d['_id']): d.get('nome') for d in
                ClienteMongo.get_collection().find({'_id': {'$in': _ids('cliente_id')}}, {'nome': 1})}
    locais = {str(d['_id']): d for d in
              LocalizacaoMongo.get_collection().find({'_id': {'$in': _ids('localizacao_id')}},
                                                     {'codigo': 1, 'camara_id': 1, 'coordenadas': 1})}
    camara_ids = list({d['camara_id'] for d in locais.values()})
    camaras = {str(d['_id']): d.get('nome') for d in
               CamaraMongo.get_collection().find({'_id': {'$in': camara_ids}}, {'nome': 1})}
    for item in items:
        item['tipo_semente_nome'] = tipos.get(item.get('tipo_semente_id'))
        item['cliente_nome'] = clientes.get(item.get('cliente_id'))
        loc = locais.get(item.get('localizacao_id'))
        item['localizacao_codigo'] = loc.get('codigo') if loc else None
        item['coordenadas'] = loc.get('coordenadas') if loc else None
        item['camara_id'] = str(loc['camara_id']) if loc else None
        item['camara_nome'] = camaras.get(str(loc['camara_id'])) if loc else None
    return items


def product_to_dict(produto):
    return enrich_products([produto.to_dict()])[0]


# ---------------------------------------------------------------------------
# Validação e código
# ---------------------------------------------------------------------------

def validate_product_data(dados):
    """Valida sem gravar. Retorna {valido, erros, peso_total}."""
    erros = []
    dados = dados or {}

    def _check(fn):
        try:
            return fn()
        except ValidationError as e:
            erros.append(e.message)
            return None

    _check(lambda: clean_text(dados.get('nome'), 'nome', 2, 200, obrigatorio=True))
    _check(lambda: clean_text(dados.get('lote'), 'lote', 1, 50, obrigatorio=True))
    quantidade = _check(lambda: to_int(dados.get('quantidade'), 'quantidade', 1))
    peso_unitario = _check(lambda: to_float(dados.get('peso_unitario'), 'peso_unitario', 0.001, 1000))
    if dados.get('tipo_armazenamento') and dados['tipo_armazenamento'] not in TIPOS_ARMAZENAMENTO:
        erros.append(f"tipo_armazenamento deve ser um de: {', '.join(TIPOS_ARMAZENAMENTO)}")
    grau = (dados.get('rastreio') or {}).get('grau_qualidade')
    if grau and grau not in GRAUS_QUALIDADE:
        erros.append('grau_qualidade deve ser A, B, C ou D')
    _check(lambda: parse_datetime(dados.get('data_validade'), 'data_validade'))
    _check(lambda: parse_datetime(dados.get('data_entrada'), 'data_entrada'))

    tipo_id = dados.get('tipo_semente_id')
    if not tipo_id:
        erros.append('tipo_semente_id é obrigatório')
    else:
        tipo = TipoSementeMongo.find_by_id(tipo_id)
        if tipo is None:
            erros.append('Tipo de semente não encontrado')
        elif not tipo.get('ativo', True):
            erros.append('Tipo de semente está inativo')
    if dados.get('cliente_id'):
        cliente = ClienteMongo.find_by_id(dados['cliente_id'])
        if cliente is None:
            erros.append('Cliente não encontrado')
        elif not cliente.get('ativo', True):
            erros.append('Cliente está inativo')
    if dados.get('localizacao_id') and to_object_id(dados['localizacao_id']) is None:
        erros.append('localizacao_id inválido')

    peso_total = calcular_peso_total(quantidade, peso_unitario) if quantidade and peso_unitario else None
    return {'valido': not erros, 'erros': erros, 'peso_total': peso_total}


def generate_product_code(tipo_semente_id, data=None):
    tipo = require_doc(TipoSementeMongo, tipo_semente_id, 'Tipo de semente')
    data = parse_datetime(data, 'data') or datetime.utcnow()
    letras = ''.join(ch for ch in normalize_text(tipo.get('nome')).upper() if ch.isalnum())
    prefixo = (letras + 'XXX')[:3]
    inicio = datetime(data.year, data.month, data.day)
    total_dia = ProdutoMongo.count({
        'tipo_semente_id': tipo._id,
        'data_criacao': {'$gte': inicio, '$lt': inicio + timedelta(days=1)},
    })
    return {'codigo': f"{prefixo}{data.strftime('%y%m%d')}{total_dia + 1:03d}", 'tipo_semente': tipo.get('nome')}


# ---------------------------------------------------------------------------
# Criação
# ---------------------------------------------------------------------------

def _build_product(dados, usuario_id, status, localizacao_id=None):
    resultado = validate_product_data(dados)
    if not resultado['valido']:
        raise ValidationError('Dados do produto inválidos', details={'erros': resultado['erros']})
    tipo = TipoSementeMongo.find_by_id(dados['tipo_semente_id'])
    data_entrada = parse_datetime(dados.get('data_entrada'), 'data_entrada') or datetime.utcnow()
    data_validade = parse_datetime(dados.get('data_validade'), 'data_validade')
    if data_validade is None and tipo.get('tempo_max_armazenamento_dias'):
        data_validade = data_entrada + timedelta(days=int(tipo.get('tempo_max_armazenamento_dias')))
    rastreio = dict(dados.get('rastreio') or {})
    usuario_oid = to_object_id(usuario_id)
    return ProdutoMongo(
        nome=dados['nome'].strip(),
        lote=str(dados['lote']).strip(),
        tipo_semente_id=tipo._id,
        quantidade=int(dados['quantidade']),
        peso_unitario=float(dados['peso_unitario']),
        tipo_armazenamento=dados.get('tipo_armazenamento') or 'saco',
        localizacao_id=localizacao_id,
        cliente_id=to_object_id(dados.get('cliente_id')),
        lote_produtos_id=LoteProdutosMongo.coerce_id(dados.get('lote_produtos_id')),
        status=status,
        data_entrada=data_entrada,
        data_validade=data_validade,
        observacoes=(dados.get('observacoes') or '').strip(),
        rastreio=rastreio,
        metadados={'criado_por': usuario_oid, 'modificado_por': usuario_oid, 'ultima_movimentacao': None},
        versao=0,
    )


def create_product(dados, usuario_id, auto_localizar=False):
    """Cadastra um produto; com localização ele já nasce LOCADO"""
    dados = dict(dados or {})
    dados['motivo'] = clean_text(dados.get('motivo'), 'motivo', 3, 200)
    localizacao_id = dados.get('localizacao_id')
    if not localizacao_id and auto_localizar:
        validacao = validate_product_data(dados)
        if validacao['valido']:
            otima = location_service.find_optimal_location(validacao['peso_total'], dados.get('camara_id'))
            if otima is None:
                raise CapacityError('Nenhuma localização disponível comporta o produto')
            localizacao_id = otima['localizacao']['id']

    if not localizacao_id:
        produto = _build_product(dados, usuario_id, AGUARDANDO_LOCACAO).save()
        get_logger().info(f"[Produto] {produto.id} cadastrado aguardando locação")
        return product_to_dict(produto)

    loc_oid = require_object_id(localizacao_id, 'localizacao_id')
    produto = _build_product(dados, usuario_id, LOCADO, loc_oid)
    location_service.ensure_can_store(loc_oid, produto.peso_total)
    produto.save()
    try:
        location_service.occupy_location(loc_oid, produto.peso_total)
    except ServiceError:
        produto.delete()
        raise
    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': ENTRADA,
        'localizacao_destino_id': loc_oid,
        'quantidade': produto.quantidade,
        'peso': produto.peso_total,
        'motivo': dados.get('motivo') or 'Entrada de produto',
        'metadados': {'tipo_operacao': 'criacao', 'lote_produtos_id': produto.get('lote_produtos_id')},
    }, usuario_id)
    return product_to_dict(ProdutoMongo.find_by_id(produto._id))


def create_products_batch(cliente_id, produtos, usuario_id, nome_lote=None, descricao=''):
    """Cadastra vários produtos de um cliente aguardando locação; tudo ou nada"""
    cliente = require_doc(ClienteMongo, cliente_id, 'Cliente')
    if not cliente.get('ativo', True):
        raise ValidationError('Cliente está inativo')
    if not isinstance(produtos, list) or not produtos:
        raise ValidationError('Informe ao menos um produto')

    lote = LoteProdutosMongo(
        cliente_id=cliente._id,
        nome=nome_lote,
        descricao=(descricao or '').strip(),
        criado_por=to_object_id(usuario_id),
    ).save()
    criados, falhas = [], []
    for indice, item in enumerate(produtos):
        payload = dict(item or {})
        payload.pop('localizacao_id', None)
        payload['cliente_id'] = cliente._id
        payload['lote_produtos_id'] = lote._id
        try:
            criados.append(_build_product(payload, usuario_id, AGUARDANDO_LOCACAO).save())
        except ServiceError as e:
            falhas.append({'indice': indice, 'erro': e.message, 'detalhes': e.details})

    if falhas:
        ids = [p._id for p in criados]
        if ids:
            ProdutoMongo.get_collection().delete_many({'_id': {'$in': ids}})
        lote.delete()
        indices = ', '.join(str(f['indice']) for f in falhas)
        get_logger().warning(f"[Lote] Criação revertida; falhas nos índices {indices}")
        raise ValidationError(f'Falha ao criar produtos nos índices: {indices}', details={'falhas': falhas})

    peso_total = round(sum(p.peso_total for p in criados), 3)
    lote.data['metadados'] = {'total_produtos': len(criados), 'peso_total': peso_total}
    lote.save()
    return {
        'lote': lote.to_dict(),
        'produtos': enrich_products([p.to_dict() for p in criados]),
    }


# ---------------------------------------------------------------------------
# Edição
# ---------------------------------------------------------------------------

def update_product(produto_id, dados, usuario_id):
    produto = _require_product(produto_id)
    dados = dados or {}
    if produto.status in STATUS_FINAIS:
        raise ConflictError(f'Produto {produto.status} não pode ser editado')
    for campo in CAMPOS_PROTEGIDOS:
        if campo in dados:
            raise ValidationError(f'{campo} não pode ser alterado diretamente; use a operação correspondente')
    if dados.get('versao') is not None and to_int(dados['versao'], 'versao', 0) != produto.versao:
        raise ConcurrencyError('Versão do produto desatualizada. Recarregue e tente novamente.')

    update = {}
    if 'nome' in dados:
        update['nome'] = clean_text(dados['nome'], 'nome', 2, 200, obrigatorio=True)
    if 'lote' in dados:
        update['lote'] = clean_text(str(dados['lote']), 'lote', 1, 50, obrigatorio=True)
    if 'observacoes' in dados:
        update['observacoes'] = clean_text(dados['observacoes'], 'observacoes', max_length=1000)
    if 'data_validade' in dados:
        update['data_validade'] = parse_datetime(dados['data_validade'], 'data_validade')
    if 'tipo_armazenamento' in dados:
        if dados['tipo_armazenamento'] not in TIPOS_ARMAZENAMENTO:
            raise ValidationError(f"tipo_armazenamento deve ser um de: {', '.join(TIPOS_ARMAZENAMENTO)}")
        update['tipo_armazenamento'] = dados['tipo_armazenamento']
    if 'cliente_id' in dados:
        if dados['cliente_id']:
            update['cliente_id'] = require_doc(ClienteMongo, dados['cliente_id'], 'Cliente')._id
        else:
            update['cliente_id'] = None
    if 'rastreio' in dados:
        rastreio = dict(produto.get('rastreio') or {})
        rastreio.update(dados['rastreio'] or {})
        if rastreio.get('grau_qualidade') and rastreio['grau_qualidade'] not in GRAUS_QUALIDADE:
            raise ValidationError('grau_qualidade deve ser A, B, C ou D')
        update['rastreio'] = rastreio
    if 'quantidade' in dados or 'peso_unitario' in dados:
        if produto.localizacao_id:
            raise ConflictError('Quantidade e peso de produto locado mudam apenas por saída parcial ou adição de estoque')
        quantidade = to_int(dados.get('quantidade', produto.quantidade), 'quantidade', 1)
        peso_unitario = to_float(dados.get('peso_unitario', produto.peso_unitario), 'peso_unitario', 0.001, 1000)
        update.update({
            'quantidade': quantidade,
            'peso_unitario': peso_unitario,
            'peso_total': calcular_peso_total(quantidade, peso_unitario),
        })
    if not update:
        raise ValidationError('Nenhum campo editável informado')
    return product_to_dict(_update_versioned(produto, update, usuario_id))


# ---------------------------------------------------------------------------
# Operações de armazenamento
# ---------------------------------------------------------------------------

def locate_product(produto_id, localizacao_id, usuario_id, motivo=None):
    """AGUARDANDO_LOCACAO → LOCADO em uma localização livre"""
    motivo = clean_text(motivo, 'motivo', 3, 200)
    produto = _require_product(produto_id)
    _require_status(produto, AGUARDANDO_LOCACAO, CADASTRADO, acao='locação')
    loc_oid = require_object_id(localizacao_id, 'localizacao_id')
    location_service.occupy_location(loc_oid, produto.peso_total)
    try:
        atualizado = _transition(produto, LOCADO, {'localizacao_id': loc_oid}, usuario_id)
    except ServiceError:
        location_service.release_location(loc_oid)
        raise
    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': ENTRADA,
        'localizacao_destino_id': loc_oid,
        'quantidade': atualizado.quantidade,
        'peso': atualizado.peso_total,
        'motivo': motivo or 'Locação de produto',
        'metadados': {'tipo_operacao': 'locacao', 'lote_produtos_id': atualizado.get('lote_produtos_id')},
    }, usuario_id)
    return product_to_dict(atualizado)


def move_product(produto_id, nova_localizacao_id, usuario_id, motivo=None):
    motivo = clean_text(motivo, 'motivo', 3, 200)
    produto = _require_product(produto_id)
    _require_status(produto, LOCADO, acao='movimentação')
    nova = require_object_id(nova_localizacao_id, 'localizacao_id')
    antiga = produto.localizacao_id
    if antiga == nova:
        raise ValidationError('Nova localização deve ser diferente da atual')
    location_service.occupy_location(nova, produto.peso_total)
    try:
        atualizado = _update_versioned(produto, {'localizacao_id': nova}, usuario_id)
    except ServiceError:
        location_service.release_location(nova)
        raise
    location_service.release_location(antiga)
    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': TRANSFERENCIA,
        'localizacao_origem_id': antiga,
        'localizacao_destino_id': nova,
        'quantidade': atualizado.quantidade,
        'peso': atualizado.peso_total,
        'motivo': motivo or 'Transferência de localização',
        'metadados': {'tipo_operacao': 'movimentacao'},
    }, usuario_id)
    return product_to_dict(atualizado)


def remove_product(produto_id, usuario_id, motivo=None):
    motivo = clean_text(motivo, 'motivo', 3, 200)
    produto = _require_product(produto_id)
    antiga = produto.localizacao_id
    atualizado = _transition(produto, REMOVIDO, {
        'localizacao_id': None,
        'metadados.ultima_localizacao_id': antiga,
    }, usuario_id)
    if antiga:
        location_service.release_location(antiga)
        movement_service.register_movement({
            'produto_id': produto._id,
            'tipo': SAIDA,
            'localizacao_origem_id': antiga,
            'quantidade': produto.quantidade,
            'peso': produto.peso_total,
            'motivo': motivo or 'Remoção de produto',
            'metadados': {'tipo_operacao': 'remocao'},
        }, usuario_id)
    return product_to_dict(atualizado)


def partial_exit(produto_id, quantidade, usuario_id, motivo=None):
    motivo = clean_text(motivo, 'motivo', 3, 200)
    produto = _require_product(produto_id)
    _require_status(produto, LOCADO, acao='saída parcial')
    quantidade = to_int(quantidade, 'quantidade', 1)
    if quantidade > produto.quantidade:
        raise ValidationError(f'Quantidade solicitada ({quantidade}) maior que o estoque ({produto.quantidade})')
    loc = produto.localizacao_id
    peso_saida = calcular_peso_total(quantidade, produto.peso_unitario)
    restante = produto.quantidade - quantidade
    anteriores = {'quantidade': produto.quantidade, 'peso_total': produto.peso_total}

    if restante == 0:
        atualizado = _transition(produto, REMOVIDO, {
            'localizacao_id': None,
            'metadados.ultima_localizacao_id': loc,
        }, usuario_id)
        location_service.release_location(loc)
    else:
        novo_peso = calcular_peso_total(restante, produto.peso_unitario)
        atualizado = _update_versioned(produto, {'quantidade': restante, 'peso_total': novo_peso}, usuario_id)
        location_service.adjust_location_weight(loc, novo_peso)

    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': SAIDA,
        'localizacao_origem_id': loc,
        'quantidade': quantidade,
        'peso': peso_saida,
        'motivo': motivo or 'Saída parcial',
        'metadados': {'tipo_operacao': 'saida_parcial', 'valores_anteriores': anteriores},
    }, usuario_id)
    return product_to_dict(atualizado)


def partial_move(produto_id, quantidade, nova_localizacao_id, usuario_id, motivo=None):
    """Separa parte do produto em um novo produto LOCADO em outra localização"""
    motivo = clean_text(motivo, 'motivo', 3, 200)
    origem = _require_product(produto_id)
    _require_status(origem, LOCADO, acao='movimentação parcial')
    quantidade = to_int(quantidade, 'quantidade', 1)
    if quantidade >= origem.quantidade:
        raise ValidationError('Para mover toda a quantidade use a movimentação completa')
    nova = require_object_id(nova_localizacao_id, 'localizacao_id')
    if nova == origem.localizacao_id:
        raise ValidationError('Nova localização deve ser diferente da atual')
    peso_movido = calcular_peso_total(quantidade, origem.peso_unitario)
    location_service.occupy_location(nova, peso_movido)

    rastreio = dict(origem.get('rastreio') or {})
    rastreio['produto_origem_id'] = origem._id
    novo = ProdutoMongo(
        nome=origem.get('nome'),
        lote=origem.get('lote'),
        tipo_semente_id=origem.get('tipo_semente_id'),
        quantidade=quantidade,
        peso_unitario=origem.peso_unitario,
        tipo_armazenamento=origem.get('tipo_armazenamento'),
        localizacao_id=nova,
        cliente_id=origem.get('cliente_id'),
        lote_produtos_id=origem.get('lote_produtos_id'),
        status=LOCADO,
        data_entrada=origem.get('data_entrada'),
        data_validade=origem.get('data_validade'),
        observacoes=origem.get('observacoes') or '',
        rastreio=rastreio,
        metadados={'criado_por': to_object_id(usuario_id), 'modificado_por': to_object_id(usuario_id)},
    )
    try:
        novo.save()
    except Exception:
        location_service.release_location(nova)
        raise

    restante = origem.quantidade - quantidade
    novo_peso_origem = calcular_peso_total(restante, origem.peso_unitario)
    try:
        atualizado = _update_versioned(origem, {'quantidade': restante, 'peso_total': novo_peso_origem}, usuario_id)
    except ServiceError:
        novo.delete()
        location_service.release_location(nova)
        raise
    location_service.adjust_location_weight(origem.localizacao_id, novo_peso_origem)

    movement_service.register_movement({
        'produto_id': origem._id,
        'tipo': TRANSFERENCIA,
        'localizacao_origem_id': origem.localizacao_id,
        'localizacao_destino_id': nova,
        'quantidade': quantidade,
        'peso': peso_movido,
        'motivo': motivo or 'Movimentação parcial',
        'metadados': {
            'tipo_operacao': 'movimentacao_parcial',
            'produto_destino_id': novo._id,
            'valores_anteriores': {'quantidade': origem.quantidade, 'peso_total': origem.peso_total},
        },
    }, usuario_id)
    movement_service.register_movement({
        'produto_id': novo._id,
        'tipo': ENTRADA,
        'localizacao_destino_id': nova,
        'quantidade': quantidade,
        'peso': peso_movido,
        'motivo': motivo or 'Movimentação parcial',
        'metadados': {'tipo_operacao': 'movimentacao_parcial', 'produto_origem_id': origem._id},
    }, usuario_id)
    return {'produto_origem': product_to_dict(atualizado), 'produto_novo': product_to_dict(novo)}


def add_stock(produto_id, quantidade, usuario_id, motivo=None, peso_unitario=None):
    motivo = clean_text(motivo, 'motivo', 3, 200)
    produto = _require_product(produto_id)
    _require_status(produto, LOCADO, acao='adição de estoque')
    quantidade = to_int(quantidade, 'quantidade', 1)
    peso_unit_adicional = to_float(peso_unitario, 'peso_unitario', 0.001, 1000, obrigatorio=False) or produto.peso_unitario
    peso_adicional = calcular_peso_total(quantidade, peso_unit_adicional)
    nova_quantidade = produto.quantidade + quantidade
    if peso_unit_adicional == produto.peso_unitario:
        novo_peso_unitario = produto.peso_unitario
    else:
        # peso unitário médio ponderado mantém peso_total == quantidade × peso_unitario
        novo_peso_unitario = round((produto.peso_total + peso_adicional) / nova_quantidade, 3)
    novo_peso_total = calcular_peso_total(nova_quantidade, novo_peso_unitario)

    loc = LocalizacaoMongo.find_by_id(produto.localizacao_id)
    if loc is None:
        raise NotFoundError('Localização do produto não encontrada')
    if novo_peso_total > loc.capacidade_maxima_kg:
        raise CapacityError(
            f'Capacidade insuficiente em {loc.codigo}',
            details={
                'capacidade_maxima_kg': loc.capacidade_maxima_kg,
                'peso_resultante': novo_peso_total,
                'deficit': round(novo_peso_total - loc.capacidade_maxima_kg, 3),
            },
        )
    anteriores = {'quantidade': produto.quantidade, 'peso_total': produto.peso_total, 'peso_unitario': produto.peso_unitario}
    atualizado = _update_versioned(produto, {
        'quantidade': nova_quantidade,
        'peso_unitario': novo_peso_unitario,
        'peso_total': novo_peso_total,
    }, usuario_id)
    location_service.adjust_location_weight(loc._id, novo_peso_total)
    movement_service.register_movement({
        'produto_id': produto._id,
        'tipo': AJUSTE,
        'localizacao_destino_id': loc._id,
        'quantidade': quantidade,
        'peso': peso_adicional,
        'motivo': motivo or 'Adição de estoque',
        'metadados': {'tipo_operacao': 'adicao_estoque', 'valores_anteriores': anteriores},
    }, usuario_id)
    return product_to_dict(atualizado)


def request_product_withdrawal(produto_id, dados, usuario_id):
    from services import withdrawal_service
    return withdrawal_service.create_withdrawal_request(
        produto_id, dados.get('tipo'), usuario_id,
        quantidade=dados.get('quantidade') or dados.get('quantidade_solicitada'),
        motivo=dados.get('motivo'), observacoes=dados.get('observacoes'),
    )


def confirm_product_withdrawal(solicitacao_id, usuario_id, observacoes=None):
    from services import withdrawal_service
    return withdrawal_service.confirm_withdrawal_request(solicitacao_id, usuario_id, observacoes)


# ---------------------------------------------------------------------------
# Consultas
# ---------------------------------------------------------------------------

def _status_filter(valor):
    status = [s.strip().upper() for s in str(valor).split(',') if s.strip()]
    invalidos = [s for s in status if s not in STATUS_PRODUTO]
    if invalidos:
        raise ValidationError(f"Status inválido: {', '.join(invalidos)}")
    return status[0] if len(status) == 1 else {'$in': status}


def list_products(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('status'):
        query['status'] = _status_filter(filtros['status'])
    for campo in ('tipo_semente_id', 'cliente_id', 'localizacao_id'):
        if filtros.get(campo):
            query[campo] = require_object_id(filtros[campo], campo)
    if filtros.get('lote_produtos_id'):
        query['lote_produtos_id'] = filtros['lote_produtos_id']
    if filtros.get('camara_id'):
        camara_oid = require_object_id(filtros['camara_id'], 'camara_id')
        locais = [d['_id'] for d in LocalizacaoMongo.get_collection().find({'camara_id': camara_oid}, {'_id': 1})]
        query['localizacao_id'] = {'$in': locais}
    if filtros.get('search'):
        termo = str(filtros['search']).strip()
        query['$or'] = [
            {'nome': {'$regex': termo, '$options': 'i'}},
            {'lote': {'$regex': termo, '$options': 'i'}},
        ]
    if filtros.get('vencendo_em_dias') is not None:
        dias = to_int(filtros['vencendo_em_dias'], 'vencendo_em_dias', 0)
        query['data_validade'] = {'$lte': datetime.utcnow() + timedelta(days=dias)}
    result = paginate_cursor(
        ProdutoMongo.get_collection(), query, page, per_page,
        sort=[('data_criacao', -1)], transform=lambda d: ProdutoMongo.from_doc(d).to_dict(),
    )
    enrich_products(result['items'])
    return result


def get_product(produto_id):
    produto = _require_product(produto_id)
    out = product_to_dict(produto)
    loc = LocalizacaoMongo.get_collection().find_one({'_id': produto.localizacao_id}) if produto.localizacao_id else None
    out['localizacao'] = location_service.location_to_dict(loc) if loc else None
    solicitacao = SolicitacaoRetiradaMongo.get_collection().find_one({'produto_id': produto._id, 'status': PENDENTE})
    out['solicitacao_pendente'] = SolicitacaoRetiradaMongo.from_doc(solicitacao).to_dict() if solicitacao else None
    out['movimentacoes_recentes'] = movement_service.list_movements({'produto_id': produto._id}, 1, 10)['items']
    out['transicoes_permitidas'] = TRANSICOES_VALIDAS.get(produto.status, [])
    return out


def _products_with_status(status, sort=None):
    docs = ProdutoMongo.get_collection().find({'status': status}).sort(sort or [('data_criacao', 1)])
    return enrich_products([ProdutoMongo.from_doc(d).to_dict() for d in docs])


def get_products_pending_location():
    return _products_with_status(AGUARDANDO_LOCACAO)


def get_products_pending_withdrawal():
    produtos = _products_with_status(AGUARDANDO_RETIRADA)
    ids = [to_object_id(p['id']) for p in produtos]
    solicitacoes = {
        str(s['produto_id']): SolicitacaoRetiradaMongo.from_doc(s).to_dict()
        for s in SolicitacaoRetiradaMongo.get_collection().find({'produto_id': {'$in': ids}, 'status': PENDENTE})
    }
    for p in produtos:
        p['solicitacao'] = solicitacoes.get(p['id'])
    return produtos


def get_products_pending_allocation_grouped():
    produtos = get_products_pending_location()
    lote_ids = list({p['lote_produtos_id'] for p in produtos if p.get('lote_produtos_id')})
    lotes = {d['_id']: d for d in LoteProdutosMongo.get_collection().find({'_id': {'$in': lote_ids}})}
    grupos, individuais = {}, []
    for p in produtos:
        lote_id = p.get('lote_produtos_id')
        if not lote_id:
            individuais.append(p)
            continue
        lote = lotes.get(lote_id) or {}
        grupo = grupos.setdefault(lote_id, {
            'lote_produtos_id': lote_id,
            'nome_lote': lote.get('nome') or 'Lote de Produtos',
            'cliente_id': p.get('cliente_id'),
            'nome_cliente': p.get('cliente_nome'),
            'data_criacao': serialize_doc(lote.get('data_criacao')),
            'quantidade_produtos': 0,
            'peso_total': 0.0,
            'produtos': [],
        })
        grupo['produtos'].append(p)
        grupo['quantidade_produtos'] += 1
        grupo['peso_total'] = round(grupo['peso_total'] + float(p.get('peso_total') or 0), 3)
    return {
        'lotes': list(grupos.values()),
        'individuais': individuais,
        'total_produtos': len(produtos),
    }


def get_products_by_batch(lote_id):
    lote = LoteProdutosMongo.find_by_id(lote_id)
    if lote is None:
        raise NotFoundError('Lote não encontrado')
    docs = ProdutoMongo.get_collection().find({'lote_produtos_id': lote._id}).sort('data_criacao', 1)
    produtos = enrich_products([ProdutoMongo.from_doc(d).to_dict() for d in docs])
    por_status = {}
    for p in produtos:
        por_status[p['status']] = por_status.get(p['status'], 0) + 1
    cliente = ClienteMongo.find_by_id(lote.get('cliente_id'))
    out = lote.to_dict()
    out['cliente_nome'] = cliente.get('nome') if cliente else None
    return {'lote': out, 'produtos': produtos, 'por_status': por_status}


def analyze_distribution():
    docs = list(ProdutoMongo.get_collection().find({'status': {'$nin': STATUS_FINAIS}}))
    itens = enrich_products([ProdutoMongo.from_doc(d).to_dict() for d in docs])
    dias_alerta = int(cfg('EXPIRATION_WARNING_DAYS', 30))
    dias_critico = int(cfg('EXPIRATION_CRITICAL_DAYS', 7))

    def _agrupar(chave):
        grupos = {}
        for item in itens:
            nome = chave(item) or 'Não informado'
            g = grupos.setdefault(nome, {'quantidade_produtos': 0, 'peso_total': 0.0})
            g['quantidade_produtos'] += 1
            g['peso_total'] = round(g['peso_total'] + float(item.get('peso_total') or 0), 3)
        return grupos

    validade = {}
    for d in docs:
        s = status_validade(d.get('data_validade'), dias_alerta=dias_alerta, dias_critico=dias_critico)['status_validade']
        validade[s] = validade.get(s, 0) + 1
    return {
        'total_produtos': len(itens),
        'peso_total': round(sum(float(i.get('peso_total') or 0) for i in itens), 3),
        'por_status': _agrupar(lambda i: i['status']),
        'por_tipo_semente': _agrupar(lambda i: i.get('tipo_semente_nome')),
        'por_camara': _agrupar(lambda i: i.get('camara_nome')),
        'por_tipo_armazenamento': _agrupar(lambda i: i.get('tipo_armazenamento')),
        'por_validade': validade,
        'em_localizacao': sum(1 for i in itens if i['status'] in STATUS_EM_LOCALIZACAO),
    }
