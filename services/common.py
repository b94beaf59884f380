"""
Utilitários compartilhados pelos serviços
"""
import logging
import re
import unicodedata
from datetime import datetime
from flask import current_app, has_app_context

from models_mongo.base import to_object_id, serialize_doc
from services.errors import NotFoundError, ValidationError

_fallback_logger = logging.getLogger('services')


def normalize_text(value) -> str:
    """Minúsculas, sem acentos e com espaços simples"""
    text = str(value or '').strip().lower()
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r'\s+', ' ', text)


def get_logger():
    if has_app_context():
        return current_app.logger
    return _fallback_logger


def cfg(key, default=None):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def require_doc(model, doc_id, rotulo='Registro'):
    """Busca o documento ou levanta NotFoundError com mensagem legível"""
    instance = model.find_by_id(doc_id)
    if instance is None:
        raise NotFoundError(f'{rotulo} não encontrado(a)')
    return instance


def require_object_id(value, campo='id'):
    oid = to_object_id(value)
    if oid is None:
        raise ValidationError(f'{campo} inválido')
    return oid


def parse_datetime(value, campo='data'):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{campo} deve estar no formato ISO (AAAA-MM-DD)')
    # Armazenamos datas ingênuas em UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def to_int(value, campo, minimo=None, maximo=None, obrigatorio=True):
    if value is None or value == '':
        if obrigatorio:
            raise ValidationError(f'{campo} é obrigatório')
        return None
    try:
        if isinstance(value, bool):
            raise ValueError
        if isinstance(value, float) and not value.is_integer():
            raise ValueError
        numero = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{campo} deve ser um número inteiro')
    if minimo is not None and numero < minimo:
        raise ValidationError(f'{campo} deve ser no mínimo {minimo}')
    if maximo is not None and numero > maximo:
        raise ValidationError(f'{campo} deve ser no máximo {maximo}')
    return numero


def to_float(value, campo, minimo=None, maximo=None, obrigatorio=True):
    if value is None or value == '':
        if obrigatorio:
            raise ValidationError(f'{campo} é obrigatório')
        return None
    try:
        if isinstance(value, bool):
            raise ValueError
        numero = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{campo} deve ser numérico')
    if minimo is not None and numero < minimo:
        raise ValidationError(f'{campo} deve ser no mínimo {minimo}')
    if maximo is not None and numero > maximo:
        raise ValidationError(f'{campo} deve ser no máximo {maximo}')
    return numero


def clean_text(value, campo, min_length=0, max_length=255, obrigatorio=False):
    texto = (value or '').strip() if isinstance(value, str) or value is None else None
    if texto is None:
        raise ValidationError(f'{campo} deve ser um texto')
    if not texto:
        if obrigatorio:
            raise ValidationError(f'{campo} é obrigatório')
        return ''
    if len(texto) < min_length:
        raise ValidationError(f'{campo} deve ter pelo menos {min_length} caracteres')
    if len(texto) > max_length:
        raise ValidationError(f'{campo} deve ter no máximo {max_length} caracteres')
    return texto


def paginate_cursor(collection, filtro, page=1, per_page=20, sort=None, transform=None, max_per_page=100):
    """Paginação no servidor com o mesmo formato de resposta em toda a API"""
    page = max(1, int(page or 1))
    per_page = min(max_per_page, max(1, int(per_page or 20)))
    total = collection.count_documents(filtro)
    cursor = collection.find(filtro)
    if sort:
        cursor = cursor.sort(sort)
    cursor = cursor.skip((page - 1) * per_page).limit(per_page)
    transform = transform or serialize_doc
    items = [transform(doc) for doc in cursor]
    pages = (total + per_page - 1) // per_page
    has_next = page < pages
    has_prev = page > 1
    return {
        'items': items,
        'page': page,
        'per_page': per_page,
        'total': total,
        'pages': pages,
        'has_next': has_next,
        'has_prev': has_prev,
        'next_num': page + 1 if has_next else None,
        'prev_num': page - 1 if has_prev else None,
    }
