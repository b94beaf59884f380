# MongoDB Models package
from .base import BaseMongoModel, serialize_doc, to_object_id
from .usuario import UsuarioMongo
from .camara import CamaraMongo
from .localizacao import LocalizacaoMongo
from .tipo_semente import TipoSementeMongo
from .cliente import ClienteMongo
from .produto import ProdutoMongo, LoteProdutosMongo
from .movimentacao import MovimentacaoMongo
from .solicitacao_retirada import SolicitacaoRetiradaMongo

__all__ = [
    'BaseMongoModel',
    'serialize_doc',
    'to_object_id',
    'UsuarioMongo',
    'CamaraMongo',
    'LocalizacaoMongo',
    'TipoSementeMongo',
    'ClienteMongo',
    'ProdutoMongo',
    'LoteProdutosMongo',
    'MovimentacaoMongo',
    'SolicitacaoRetiradaMongo',
]
