"""
Modelos MongoDB para produtos armazenados e lotes de produtos
"""
from datetime import datetime
from typing import Dict, Any, Optional
import uuid
from .base import BaseMongoModel


# Ciclo de vida do produto
CADASTRADO = 'CADASTRADO'
AGUARDANDO_LOCACAO = 'AGUARDANDO_LOCACAO'
LOCADO = 'LOCADO'
AGUARDANDO_RETIRADA = 'AGUARDANDO_RETIRADA'
RETIRADO = 'RETIRADO'
REMOVIDO = 'REMOVIDO'

STATUS_PRODUTO = [CADASTRADO, AGUARDANDO_LOCACAO, LOCADO, AGUARDANDO_RETIRADA, RETIRADO, REMOVIDO]

TRANSICOES_VALIDAS = {
    CADASTRADO: [AGUARDANDO_LOCACAO, LOCADO],
    AGUARDANDO_LOCACAO: [LOCADO, REMOVIDO],
    LOCADO: [AGUARDANDO_RETIRADA, REMOVIDO],
    AGUARDANDO_RETIRADA: [RETIRADO, LOCADO],
    RETIRADO: [],
    REMOVIDO: [],
}

STATUS_FINAIS = [RETIRADO, REMOVIDO]
# Produtos que ocupam fisicamente uma localização
STATUS_EM_LOCALIZACAO = [LOCADO, AGUARDANDO_RETIRADA]
STATUS_ATIVOS = [CADASTRADO, AGUARDANDO_LOCACAO, LOCADO, AGUARDANDO_RETIRADA]

TIPOS_ARMAZENAMENTO = ['saco', 'bag']
GRAUS_QUALIDADE = ['A', 'B', 'C', 'D']


def pode_transicionar(status_atual: str, novo_status: str) -> bool:
    return novo_status in TRANSICOES_VALIDAS.get(status_atual, [])


def calcular_peso_total(quantidade, peso_unitario) -> float:
    return round(float(quantidade) * float(peso_unitario), 3)


def status_validade(data_validade: Optional[datetime], agora: Optional[datetime] = None,
                    dias_alerta: int = 30, dias_critico: int = 7) -> Dict[str, Any]:
    """Classifica a validade: vencido, critico, alerta, bom ou sem_validade"""
    if not data_validade:
        return {'status_validade': 'sem_validade', 'dias_para_vencer': None}
    agora = agora or datetime.utcnow()
    dias = (data_validade - agora).days
    if dias < 0:
        status = 'vencido'
    elif dias <= dias_critico:
        status = 'critico'
    elif dias <= dias_alerta:
        status = 'alerta'
    else:
        status = 'bom'
    return {'status_validade': status, 'dias_para_vencer': dias}


class ProdutoMongo(BaseMongoModel):
    """Modelo MongoDB para produtos (sementes) armazenados nas câmaras"""

    collection_name = 'produtos'

    def __init__(self, **kwargs):
        if not (kwargs.get('nome') or '').strip():
            raise ValueError("Nome do produto é obrigatório")
        if not kwargs.get('tipo_semente_id'):
            raise ValueError("tipo_semente_id é obrigatório")

        kwargs.setdefault('status', CADASTRADO)
        kwargs.setdefault('localizacao_id', None)
        kwargs.setdefault('cliente_id', None)
        kwargs.setdefault('lote_produtos_id', None)
        kwargs.setdefault('tipo_armazenamento', 'saco')
        kwargs.setdefault('data_entrada', datetime.utcnow())
        kwargs.setdefault('data_validade', None)
        kwargs.setdefault('observacoes', '')
        kwargs.setdefault('rastreio', {})
        kwargs.setdefault('metadados', {})
        kwargs.setdefault('versao', 0)
        kwargs['peso_total'] = calcular_peso_total(kwargs.get('quantidade', 0), kwargs.get('peso_unitario', 0))

        super().__init__(**kwargs)

    @property
    def status(self):
        return self.data.get('status')

    @property
    def quantidade(self):
        return int(self.data.get('quantidade') or 0)

    @property
    def peso_unitario(self):
        return float(self.data.get('peso_unitario') or 0)

    @property
    def peso_total(self):
        return float(self.data.get('peso_total') or 0)

    @property
    def localizacao_id(self):
        return self.data.get('localizacao_id')

    @property
    def versao(self):
        return int(self.data.get('versao') or 0)

    def virtuals(self) -> Dict[str, Any]:
        out = status_validade(self.data.get('data_validade'))
        entrada = self.data.get('data_entrada')
        out['dias_armazenado'] = (datetime.utcnow() - entrada).days if isinstance(entrada, datetime) else None
        return out


class LoteProdutosMongo(BaseMongoModel):
    """Agrupa produtos cadastrados juntos aguardando locação individual"""

    collection_name = 'lotes_produtos'

    def __init__(self, **kwargs):
        if not kwargs.get('cliente_id'):
            raise ValueError("cliente_id é obrigatório para o lote")
        kwargs.setdefault('_id', str(uuid.uuid4()))
        nome = (kwargs.get('nome') or '').strip()
        if len(nome) < 3:
            nome = f"Lote de Produtos - {datetime.utcnow().strftime('%d/%m/%Y')}"
        kwargs['nome'] = nome[:100]
        kwargs.setdefault('descricao', '')
        kwargs.setdefault('metadados', {'total_produtos': 0, 'peso_total': 0.0})
        super().__init__(**kwargs)

    @classmethod
    def coerce_id(cls, doc_id):
        # Lotes usam UUID em string como _id
        if doc_id is None:
            return None
        value = str(doc_id).strip()
        if not value or value == 'undefined':
            return None
        return value

    def save(self) -> 'LoteProdutosMongo':
        collection = self.get_collection()
        self.data['data_atualizacao'] = datetime.utcnow()
        if collection.find_one({'_id': self._id}) is None:
            collection.insert_one(self.data)
        else:
            collection.update_one({'_id': self._id}, {'$set': {k: v for k, v in self.data.items() if k != '_id'}})
        return self
