"""
Modelo MongoDB para localizações (posições Quadra/Lado/Fila/Andar de uma câmara)
"""
from typing import Dict, Any
from .base import BaseMongoModel


CAPACIDADE_MIN_KG = 1
CAPACIDADE_MAX_KG = 50000
COORDENADAS = ('quadra', 'lado', 'fila', 'andar')


def gerar_codigo(quadra: int, lado: int, fila: int, andar: int) -> str:
    return f"Q{quadra}-L{lado}-F{fila}-A{andar}"


def nivel_acesso(andar: int) -> str:
    if andar <= 2:
        return 'terreo'
    if andar <= 5:
        return 'elevado'
    return 'alto'


def score_acessibilidade(andar: int) -> str:
    if andar <= 2:
        return 'alta'
    if andar <= 5:
        return 'media'
    return 'baixa'


def status_capacidade(percentual: float) -> str:
    if percentual <= 0:
        return 'vazia'
    if percentual < 50:
        return 'baixa'
    if percentual < 80:
        return 'media'
    if percentual < 100:
        return 'alta'
    return 'cheia'


def capacidade_info(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Campos calculados de capacidade a partir de um documento de localização"""
    maxima = float(doc.get('capacidade_maxima_kg') or 0)
    atual = float(doc.get('peso_atual_kg') or 0)
    percentual = (atual / maxima * 100) if maxima > 0 else 0
    return {
        'capacidade_disponivel_kg': round(max(maxima - atual, 0), 3),
        'percentual_ocupacao': round(percentual),
        'status_capacidade': status_capacidade(percentual),
    }


class LocalizacaoMongo(BaseMongoModel):
    """Modelo MongoDB para uma posição de armazenamento"""

    collection_name = 'localizacoes'

    def __init__(self, **kwargs):
        coordenadas = kwargs.get('coordenadas') or {}
        for campo in COORDENADAS:
            valor = coordenadas.get(campo)
            if not isinstance(valor, int) or valor < 1:
                raise ValueError(f"Coordenada {campo} deve ser um inteiro >= 1")
        if not kwargs.get('camara_id'):
            raise ValueError("camara_id é obrigatório")

        kwargs['codigo'] = gerar_codigo(coordenadas['quadra'], coordenadas['lado'], coordenadas['fila'], coordenadas['andar'])
        kwargs.setdefault('capacidade_maxima_kg', 1000)
        kwargs.setdefault('peso_atual_kg', 0.0)
        kwargs['ocupada'] = float(kwargs['peso_atual_kg']) > 0
        metadados = kwargs.setdefault('metadados', {})
        metadados['nivel_acesso'] = nivel_acesso(coordenadas['andar'])
        metadados.setdefault('observacoes', '')
        super().__init__(**kwargs)

    @property
    def codigo(self):
        return self.data.get('codigo')

    @property
    def ocupada(self):
        return bool(self.data.get('ocupada'))

    @property
    def capacidade_maxima_kg(self):
        return float(self.data.get('capacidade_maxima_kg') or 0)

    @property
    def peso_atual_kg(self):
        return float(self.data.get('peso_atual_kg') or 0)

    @property
    def coordenadas(self):
        return self.data.get('coordenadas') or {}

    def virtuals(self) -> Dict[str, Any]:
        out = capacidade_info(self.data)
        out['score_acessibilidade'] = score_acessibilidade(int(self.coordenadas.get('andar') or 1))
        return out
