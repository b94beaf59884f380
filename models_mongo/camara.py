"""
Modelo MongoDB para câmaras frias
"""
from datetime import datetime
from typing import Dict, Any, Optional
from .base import BaseMongoModel


STATUS_CAMARA = ['ativa', 'manutencao', 'inativa']

LIMITES_DIMENSOES = {
    'quadras': (1, 100),
    'lados': (1, 100),
    'filas': (1, 100),
    'andares': (1, 20),
}
MAX_LOCALIZACOES = 100000


def total_localizacoes(dimensoes: Dict[str, int]) -> int:
    total = 1
    for campo in LIMITES_DIMENSOES:
        total *= int((dimensoes or {}).get(campo) or 0)
    return total


def _status_faixa(valor: Optional[float], limites: Optional[Dict[str, Any]]) -> str:
    if valor is None:
        return 'desconhecida'
    limites = limites or {}
    minimo, maximo = limites.get('min'), limites.get('max')
    if minimo is not None and valor < minimo:
        return 'baixa'
    if maximo is not None and valor > maximo:
        return 'alta'
    return 'normal'


def status_condicoes(doc: Dict[str, Any]) -> Dict[str, str]:
    limites = ((doc.get('configuracoes') or {}).get('limites_alerta')) or {}
    temp = _status_faixa(doc.get('temperatura_atual'), limites.get('temperatura'))
    umid = _status_faixa(doc.get('umidade_atual'), limites.get('umidade'))
    if temp == 'desconhecida' and umid == 'desconhecida':
        geral = 'desconhecida'
    elif temp in ('baixa', 'alta') or umid in ('baixa', 'alta'):
        geral = 'alerta'
    else:
        geral = 'otima'
    return {'status_temperatura': temp, 'status_umidade': umid, 'status_condicoes': geral}


class CamaraMongo(BaseMongoModel):
    """Modelo MongoDB para câmaras de armazenamento refrigerado"""

    collection_name = 'camaras'

    def __init__(self, **kwargs):
        if not (kwargs.get('nome') or '').strip():
            raise ValueError("Nome da câmara é obrigatório")
        kwargs.setdefault('descricao', '')
        kwargs.setdefault('temperatura_atual', None)
        kwargs.setdefault('umidade_atual', None)
        kwargs.setdefault('status', 'ativa')
        kwargs.setdefault('configuracoes', {})
        kwargs.setdefault('ultima_manutencao', None)
        kwargs.setdefault('proxima_manutencao', None)
        super().__init__(**kwargs)

    @property
    def nome(self):
        return self.data.get('nome')

    @property
    def status(self):
        return self.data.get('status')

    @property
    def dimensoes(self):
        return self.data.get('dimensoes') or {}

    def virtuals(self) -> Dict[str, Any]:
        out = status_condicoes(self.data)
        out['total_localizacoes'] = total_localizacoes(self.dimensoes)
        proxima = self.data.get('proxima_manutencao')
        out['precisa_manutencao'] = bool(isinstance(proxima, datetime) and proxima <= datetime.utcnow())
        return out
