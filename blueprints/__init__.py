"""
Blueprints da API REST e utilitários de leitura de parâmetros
"""
from flask import request, current_app
from extensions import response_cache

TRUE_VALUES = ('1', 'true', 'sim', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'nao', 'não', 'no', 'off')


def page_args(default_per_page=None):
    """(page, per_page) da query string, limitado a MAX_ITEMS_PER_PAGE"""
    default_per_page = default_per_page or current_app.config.get('ITEMS_PER_PAGE', 20)
    page = request.args.get('page', 1, type=int) or 1
    per_page = request.args.get('per_page', default_per_page, type=int) or default_per_page
    maximo = current_app.config.get('MAX_ITEMS_PER_PAGE', 100)
    return max(1, page), min(max(1, per_page), maximo)


def bool_arg(nome, default=None):
    """Converte 'true'/'false' da query string; valor ausente ou inválido vira default"""
    valor = request.args.get(nome)
    if valor is None:
        return default
    valor = valor.strip().lower()
    if valor in TRUE_VALUES:
        return True
    if valor in FALSE_VALUES:
        return False
    return default


def json_body():
    return request.get_json(silent=True) or {}


def query_filters(*nomes):
    """Somente os filtros informados e não vazios"""
    return {n: request.args.get(n) for n in nomes if request.args.get(n) not in (None, '')}


def invalidate_dashboard_cache():
    """Mutações tornam os resumos do painel obsoletos"""
    response_cache.clear_prefix('dashboard:')
