"""
Modelo MongoDB para movimentações (trilha de auditoria append-only dos produtos)
"""
from datetime import datetime
from .base import BaseMongoModel


ENTRADA = 'entrada'
SAIDA = 'saida'
TRANSFERENCIA = 'transferencia'
AJUSTE = 'ajuste'
TIPOS_MOVIMENTACAO = [ENTRADA, SAIDA, TRANSFERENCIA, AJUSTE]

STATUS_MOVIMENTACAO = ['concluida', 'pendente', 'cancelada']


class MovimentacaoMongo(BaseMongoModel):
    """Registro imutável de uma mudança de estado de produto"""

    collection_name = 'movimentacoes'

    def __init__(self, **kwargs):
        if kwargs.get('tipo') not in TIPOS_MOVIMENTACAO:
            raise ValueError(f"Tipo de movimentação inválido: {kwargs.get('tipo')}")
        kwargs.setdefault('localizacao_origem_id', None)
        kwargs.setdefault('localizacao_destino_id', None)
        kwargs['peso'] = round(float(kwargs.get('peso') or 0), 3)
        kwargs.setdefault('observacoes', '')
        kwargs.setdefault('data_movimentacao', datetime.utcnow())
        kwargs.setdefault('status', 'concluida')
        kwargs.setdefault('metadados', {})
        kwargs['metadados'].setdefault('automatica', True)
        kwargs.setdefault('verificacao', {
            'verificada': False,
            'verificada_por': None,
            'verificada_em': None,
            'observacoes': '',
        })
        super().__init__(**kwargs)

    def save(self) -> 'MovimentacaoMongo':
        # Movimentações só são inseridas; alterações passam por verify_movement
        if self._id:
            raise RuntimeError("Movimentações não podem ser alteradas")
        return super().save()
