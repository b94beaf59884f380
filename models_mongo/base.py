"""
Modelo base para MongoDB com funcionalidades comuns
"""
from datetime import datetime, date
from typing import Dict, Any, Optional, List
from bson import ObjectId
from bson.errors import InvalidId
from extensions import get_mongo_db


def to_object_id(value) -> Optional[ObjectId]:
    """Converte string/ObjectId em ObjectId; retorna None se inválido"""
    if value is None or value == '':
        return None
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(value):
    """Padroniza documentos para a resposta da API (_id -> id, ObjectId/datetime -> str)."""
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if key == '_id':
                out['id'] = serialize_doc(item)
            elif key == 'password_hash':
                continue
            else:
                out[key] = serialize_doc(item)
        return out
    if isinstance(value, (list, tuple)):
        return [serialize_doc(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class BaseMongoModel:
    """Classe base para todos os modelos MongoDB"""

    collection_name = None  # Deve ser definido nas subclasses

    def __init__(self, **kwargs):
        """Inicializa o modelo com os dados fornecidos"""
        self._id = kwargs.get('_id')
        self.data = kwargs

        # Adiciona timestamps se não existirem
        if 'data_criacao' not in self.data:
            self.data['data_criacao'] = datetime.utcnow()
        if 'data_atualizacao' not in self.data:
            self.data['data_atualizacao'] = datetime.utcnow()

    @property
    def id(self):
        """Retorna o ID do documento"""
        return str(self._id) if self._id else None

    def get(self, key, default=None):
        return self.data.get(key, default)

    @classmethod
    def get_collection(cls):
        """Retorna a coleção MongoDB para este modelo"""
        if not cls.collection_name:
            raise ValueError(f"collection_name não definido para {cls.__name__}")
        mongo_db = get_mongo_db()
        if mongo_db is None:
            raise RuntimeError("MongoDB não está inicializado")
        return mongo_db[cls.collection_name]

    @classmethod
    def coerce_id(cls, doc_id):
        """Converte o identificador recebido da API para o tipo armazenado em _id"""
        return to_object_id(doc_id)

    def save(self) -> 'BaseMongoModel':
        """Salva o documento no MongoDB"""
        collection = self.get_collection()
        self.data['data_atualizacao'] = datetime.utcnow()

        if self._id:
            collection.update_one(
                {'_id': self._id},
                {'$set': {k: v for k, v in self.data.items() if k != '_id'}}
            )
        else:
            result = collection.insert_one(self.data)
            self._id = result.inserted_id

        return self

    def delete(self) -> bool:
        """Remove o documento do MongoDB"""
        if not self._id:
            return False

        collection = self.get_collection()
        result = collection.delete_one({'_id': self._id})
        return result.deleted_count > 0

    @classmethod
    def from_doc(cls, doc):
        if not doc:
            return None
        instance = cls.__new__(cls)
        BaseMongoModel.__init__(instance, **doc)
        instance._id = doc['_id']
        return instance

    @classmethod
    def find_by_id(cls, doc_id) -> Optional['BaseMongoModel']:
        """Encontra um documento pelo ID"""
        key = cls.coerce_id(doc_id)
        if key is None:
            return None
        return cls.from_doc(cls.get_collection().find_one({'_id': key}))

    @classmethod
    def find_one(cls, filter_dict: Dict[str, Any]) -> Optional['BaseMongoModel']:
        """Encontra um documento pelos filtros"""
        return cls.from_doc(cls.get_collection().find_one(filter_dict))

    @classmethod
    def find_many(cls, filter_dict: Dict[str, Any] = None,
                  limit: int = None, skip: int = None,
                  sort: List[tuple] = None) -> List['BaseMongoModel']:
        """Encontra múltiplos documentos"""
        collection = cls.get_collection()
        cursor = collection.find(filter_dict or {})

        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)

        return [cls.from_doc(doc) for doc in cursor]

    @classmethod
    def count(cls, filter_dict: Dict[str, Any] = None) -> int:
        """Conta documentos na coleção"""
        return cls.get_collection().count_documents(filter_dict or {})

    def virtuals(self) -> Dict[str, Any]:
        """Campos calculados expostos na API"""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Converte o modelo para dicionário"""
        result = serialize_doc(self.data)
        if self._id:
            result['id'] = str(self._id)
        result.update(serialize_doc(self.virtuals()))
        return result

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.id}>"
