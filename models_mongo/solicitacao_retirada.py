"""
Modelo MongoDB para solicitações de retirada de produtos
"""
from datetime import datetime
from typing import Dict, Any
from .base import BaseMongoModel


PENDENTE = 'PENDENTE'
CONFIRMADO = 'CONFIRMADO'
CANCELADO = 'CANCELADO'
STATUS_RETIRADA = [PENDENTE, CONFIRMADO, CANCELADO]

TOTAL = 'TOTAL'
PARCIAL = 'PARCIAL'
TIPOS_RETIRADA = [TOTAL, PARCIAL]


class SolicitacaoRetiradaMongo(BaseMongoModel):
    """Solicitação criada por um ADMIN e confirmada por um OPERATOR"""

    collection_name = 'solicitacoes_retirada'

    def __init__(self, **kwargs):
        if kwargs.get('tipo') not in TIPOS_RETIRADA:
            raise ValueError("Tipo de retirada deve ser TOTAL ou PARCIAL")
        kwargs.setdefault('status', PENDENTE)
        kwargs.setdefault('quantidade_solicitada', None)
        kwargs.setdefault('motivo', '')
        kwargs.setdefault('observacoes', '')
        kwargs.setdefault('data_solicitacao', datetime.utcnow())
        kwargs.setdefault('data_confirmacao', None)
        kwargs.setdefault('confirmado_por', None)
        kwargs.setdefault('data_cancelamento', None)
        kwargs.setdefault('cancelado_por', None)
        kwargs.setdefault('metadados', {})
        super().__init__(**kwargs)

    def virtuals(self) -> Dict[str, Any]:
        solicitada = self.data.get('data_solicitacao') or datetime.utcnow()
        fim = self.data.get('data_confirmacao') or self.data.get('data_cancelamento') or datetime.utcnow()
        dias = max((fim - solicitada).days, 0)
        if self.data.get('status') != PENDENTE:
            urgencia = 'resolvida'
        elif dias > 7:
            urgencia = 'atrasada'
        elif dias > 3:
            urgencia = 'urgente'
        else:
            urgencia = 'normal'
        return {'dias_espera': dias, 'urgencia': urgencia}
