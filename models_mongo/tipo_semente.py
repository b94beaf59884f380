"""
Modelo MongoDB para tipos de semente
"""
from typing import Dict, Any
from .base import BaseMongoModel


def titulo(nome: str) -> str:
    return ' '.join(p.capitalize() for p in (nome or '').strip().split())


class TipoSementeMongo(BaseMongoModel):
    """Metadados de armazenamento de um tipo de semente"""

    collection_name = 'tipos_semente'

    def __init__(self, **kwargs):
        kwargs['nome'] = titulo(kwargs.get('nome'))
        if not kwargs['nome']:
            raise ValueError("Nome do tipo de semente é obrigatório")
        kwargs.setdefault('descricao', '')
        kwargs.setdefault('temperatura_ideal', None)
        kwargs.setdefault('umidade_ideal', None)
        kwargs.setdefault('tempo_max_armazenamento_dias', None)
        kwargs.setdefault('especificacoes', {})
        kwargs.setdefault('observacoes_armazenamento', '')
        kwargs.setdefault('ativo', True)
        super().__init__(**kwargs)

    def virtuals(self) -> Dict[str, Any]:
        if not self.data.get('ativo', True):
            status = 'Inativo'
        else:
            preenchidos = sum(1 for campo in ('temperatura_ideal', 'umidade_ideal', 'tempo_max_armazenamento_dias')
                              if self.data.get(campo) is not None)
            if preenchidos == 3:
                status = 'Completo'
            elif preenchidos > 0:
                status = 'Parcial'
            else:
                status = 'Básico'
        return {'status_configuracao': status}
