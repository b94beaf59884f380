"""
Importação e exportação de inventário em planilhas Excel (openpyxl)
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill

from models_mongo.base import to_object_id
from models_mongo.camara import CamaraMongo
from models_mongo.localizacao import LocalizacaoMongo, gerar_codigo
from models_mongo.movimentacao import ENTRADA
from models_mongo.produto import ProdutoMongo, LOCADO, STATUS_EM_LOCALIZACAO, calcular_peso_total
from models_mongo.tipo_semente import TipoSementeMongo
from services import location_service, movement_service
from services.common import get_logger, normalize_text
from services.errors import ServiceError, ValidationError

COLUNAS_OBRIGATORIAS = ('quadra', 'lado', 'fila', 'andar', 'produto', 'lote', 'quantidade')
TIPOS_CONHECIDOS = [
    'MILHO', 'SORGO', 'NUGRAIN', 'ENFORCE', 'NUSOL', 'FOX PREMIUM',
    'SANY', 'MIX NUCLEAR', 'GIRASSO', 'PRINA ESPECIAL',
]
TIPO_PADRAO = 'MILHO'
MOTIVO_IMPORTACAO = 'Importação via Excel'

CABECALHO_EXPORTACAO = [
    'Localização', 'Quadra', 'Lado', 'Fila', 'Andar', 'Produto', 'Lote',
    'Quantidade', 'Kg unitário', 'Kg total', 'Status', 'Validade',
]


@dataclass
class ImportRowError:
    linha: int
    mensagem: str


@dataclass
class ImportResult:
    sucesso: int = 0
    erros: List[ImportRowError] = field(default_factory=list)
    processadas: int = 0

    def erro(self, linha, mensagem):
        self.erros.append(ImportRowError(linha, mensagem))


def _cell(valor):
    if valor is None:
        return None
    if isinstance(valor, str):
        valor = valor.strip()
        return valor or None
    return valor


def _inteiro(valor):
    if valor is None or isinstance(valor, bool):
        return None
    try:
        numero = float(str(valor).replace(',', '.'))
    except ValueError:
        return None
    if not numero.is_integer() or numero < 1:
        return None
    return int(numero)


def _lado(valor):
    """Lado aceita número (1, 2) ou letra (A, B)"""
    numero = _inteiro(valor)
    if numero is not None:
        return numero
    texto = str(valor or '').strip().upper()
    if len(texto) == 1 and texto.isalpha():
        return ord(texto) - ord('A') + 1
    return None


def _peso(valor):
    if valor is None:
        return 1.0
    try:
        peso = float(str(valor).replace(',', '.'))
    except ValueError:
        return None
    return peso if peso > 0 else None


def match_seed_type_name(produto):
    """Tipo conhecido contido no nome do produto; MILHO quando nenhum bate"""
    nome = normalize_text(produto).upper()
    for tipo in TIPOS_CONHECIDOS:
        if tipo in nome:
            return tipo
    return TIPO_PADRAO


def _seed_type(nome, cache):
    if nome in cache:
        return cache[nome]
    tipo = TipoSementeMongo.find_one({'nome': {'$regex': f'^{re.escape(nome)}$', '$options': 'i'}})
    if tipo is None:
        tipo = TipoSementeMongo(
            nome=nome,
            descricao=f'Tipo de semente {nome}',
            temperatura_ideal=18,
            umidade_ideal=60,
            tempo_max_armazenamento_dias=365,
        ).save()
        get_logger().info(f"[Excel] Tipo de semente criado: {tipo.get('nome')}")
    cache[nome] = tipo
    return tipo


def read_rows(path):
    """Lê a primeira planilha; retorna (cabeçalhos normalizados, linhas com número)"""
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        linhas = ws.iter_rows(values_only=True)
        try:
            cabecalho = next(linhas)
        except StopIteration:
            raise ValidationError('Planilha vazia')
        headers = [normalize_text(h) if h is not None else '' for h in cabecalho]
        dados = [(numero, row) for numero, row in enumerate(linhas, start=2)]
    finally:
        wb.close()
    return headers, dados


def _chambers():
    ativas = list(CamaraMongo.get_collection().find({'status': 'ativa'}).sort('data_criacao', 1))
    if not ativas:
        raise ValidationError('Nenhuma câmara ativa encontrada; crie uma câmara antes de importar')
    por_nome = {normalize_text(c['nome']): c for c in ativas}
    return ativas[0], por_nome


def import_products_from_excel(path, usuario_id=None):
    headers, linhas = read_rows(path)
    faltando = [c for c in COLUNAS_OBRIGATORIAS if c not in headers]
    if faltando:
        raise ValidationError(f"Colunas não encontradas: {', '.join(faltando)}")
    col = {nome: headers.index(nome) for nome in headers if nome}
    camara_padrao, camaras = _chambers()
    tipos_cache = {}
    result = ImportResult()

    def valor(row, nome):
        idx = col.get(nome)
        if idx is None or idx >= len(row):
            return None
        return _cell(row[idx])

    for numero, row in linhas:
        if row is None or all(_cell(v) is None for v in row):
            continue
        result.processadas += 1
        coords = {
            'quadra': _inteiro(valor(row, 'quadra')),
            'lado': _lado(valor(row, 'lado')),
            'fila': _inteiro(valor(row, 'fila')),
            'andar': _inteiro(valor(row, 'andar')),
        }
        produto = valor(row, 'produto')
        lote = valor(row, 'lote')
        quantidade = _inteiro(valor(row, 'quantidade'))
        peso_unitario = _peso(valor(row, 'kg'))
        invalidos = [c for c, v in coords.items() if v is None]
        invalidos += [c for c, v in (('produto', produto), ('lote', lote), ('quantidade', quantidade),
                                     ('kg', peso_unitario)) if v is None]
        if invalidos:
            result.erro(numero, f"Campos inválidos: {', '.join(invalidos)}")
            continue

        nome_camara = valor(row, 'camara')
        camara = camaras.get(normalize_text(nome_camara)) if nome_camara else camara_padrao
        if camara is None:
            result.erro(numero, f'Câmara "{nome_camara}" não encontrada ou inativa')
            continue
        codigo = gerar_codigo(coords['quadra'], coords['lado'], coords['fila'], coords['andar'])
        loc = LocalizacaoMongo.find_one({'camara_id': camara['_id'], 'codigo': codigo})
        if loc is None:
            result.erro(numero, f"Localização {codigo} não encontrada na câmara {camara['nome']}")
            continue
        if loc.ocupada:
            result.erro(numero, f'Localização {codigo} já está ocupada')
            continue
        peso_total = calcular_peso_total(quantidade, peso_unitario)
        if peso_total > loc.capacidade_maxima_kg:
            result.erro(numero, f'Peso total ({peso_total}kg) excede a capacidade de {codigo} '
                                f'({loc.capacidade_maxima_kg}kg)')
            continue

        tipo = _seed_type(match_seed_type_name(produto), tipos_cache)
        try:
            _import_row(numero, loc, tipo, str(produto), str(lote), quantidade, peso_unitario, usuario_id)
        except ServiceError as e:
            result.erro(numero, e.message)
            continue
        result.sucesso += 1

    get_logger().info(f"[Excel] Importação: {result.sucesso} produtos, {len(result.erros)} erros")
    return result


def _import_row(numero, loc, tipo, produto, lote, quantidade, peso_unitario, usuario_id):
    novo = ProdutoMongo(
        nome=f'{produto} - Lote {lote}',
        lote=lote[:50],
        tipo_semente_id=tipo._id,
        quantidade=quantidade,
        peso_unitario=peso_unitario,
        tipo_armazenamento='saco',
        localizacao_id=loc._id,
        status=LOCADO,
        observacoes=f'Importado da planilha - Linha {numero}',
        metadados={'criado_por': to_object_id(usuario_id), 'importado': True},
    )
    location_service.occupy_location(loc._id, novo.peso_total)
    try:
        novo.save()
    except Exception:
        location_service.release_location(loc._id)
        raise
    movement_service.register_movement({
        'produto_id': novo._id,
        'tipo': ENTRADA,
        'localizacao_destino_id': loc._id,
        'quantidade': quantidade,
        'peso': novo.peso_total,
        'motivo': MOTIVO_IMPORTACAO,
        'metadados': {'tipo_operacao': 'importacao', 'linha': numero},
    }, usuario_id)
    return novo


def format_import_report(result):
    linhas = [
        '=' * 50,
        'RELATÓRIO DE IMPORTAÇÃO',
        '=' * 50,
        f'Linhas processadas: {result.processadas}',
        f'Produtos importados: {result.sucesso}',
        f'Erros: {len(result.erros)}',
    ]
    if result.processadas:
        linhas.append(f'Taxa de sucesso: {result.sucesso / result.processadas * 100:.1f}%')
    if result.erros:
        linhas.append('')
        linhas.append('Erros por linha:')
        linhas.extend(f'  Linha {e.linha}: {e.mensagem}' for e in result.erros)
    return '\n'.join(linhas)


def export_inventory_to_excel(path, filtros=None):
    """Grava os produtos armazenados, um por linha; retorna o total exportado"""
    filtros = dict(filtros or {})
    query = {'status': {'$in': STATUS_EM_LOCALIZACAO}}
    if filtros.get('camara'):
        camara = CamaraMongo.find_one({'nome': {'$regex': f"^{re.escape(filtros['camara'])}$", '$options': 'i'}})
        if camara is None:
            raise ValidationError(f"Câmara {filtros['camara']} não encontrada")
        filtros['camara_id'] = camara.id
    if filtros.get('camara_id'):
        loc_ids = [d['_id'] for d in LocalizacaoMongo.get_collection().find(
            {'camara_id': CamaraMongo.coerce_id(filtros['camara_id'])}, {'_id': 1})]
        query['localizacao_id'] = {'$in': loc_ids}
    docs = list(ProdutoMongo.get_collection().find(query))
    locais = {d['_id']: d for d in LocalizacaoMongo.get_collection().find(
        {'_id': {'$in': [d.get('localizacao_id') for d in docs]}})}
    docs.sort(key=lambda d: location_service.coord_key(locais.get(d.get('localizacao_id')) or {}))

    wb = Workbook()
    ws = wb.active
    ws.title = 'Inventário'
    ws.append(CABECALHO_EXPORTACAO)
    for cell in ws[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = PatternFill('solid', fgColor='2F5597')
    for d in docs:
        loc = locais.get(d.get('localizacao_id')) or {}
        c = loc.get('coordenadas') or {}
        validade = d.get('data_validade')
        ws.append([
            loc.get('codigo'), c.get('quadra'), c.get('lado'), c.get('fila'), c.get('andar'),
            d.get('nome'), d.get('lote'), d.get('quantidade'), d.get('peso_unitario'), d.get('peso_total'),
            d.get('status'), validade.strftime('%d/%m/%Y') if isinstance(validade, datetime) else '',
        ])
    for coluna in ws.columns:
        largura = max(len(str(cell.value or '')) for cell in coluna)
        ws.column_dimensions[coluna[0].column_letter].width = min(max(largura + 2, 10), 50)
    wb.save(path)
    get_logger().info(f"[Excel] {len(docs)} produtos exportados para {path}")
    return len(docs)

