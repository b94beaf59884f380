from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import ServerSelectionTimeoutError, AutoReconnect
from werkzeug.security import generate_password_hash
from datetime import datetime
import os
import time

# MongoDB (persistência oficial)
mongo_client: MongoClient | None = None
mongo_db = None

COLLECTIONS = [
    'usuarios',
    'camaras',
    'localizacoes',
    'tipos_semente',
    'clientes',
    'lotes_produtos',
    'produtos',
    'movimentacoes',
    'solicitacoes_retirada',
    'logs_auditoria',
]

class SimpleTTLCache:
    def __init__(self, max_size: int = 1000):
        self.store = {}
        self.order = []
        self.max_size = max_size

    def get(self, key):
        val = self.store.get(key)
        if not val:
            return None
        data, exp = val
        if exp is not None and exp < time.time():
            self.store.pop(key, None)
            return None
        return data

    def set(self, key, data, ttl: int = 30):
        exp = (time.time() + ttl) if ttl and ttl > 0 else None
        self.store[key] = (data, exp)
        self.order.append(key)
        if len(self.order) > self.max_size:
            old = self.order.pop(0)
            self.store.pop(old, None)

    def clear_prefix(self, prefix: str):
        keys = [k for k in list(self.store.keys()) if str(k).startswith(prefix)]
        for k in keys:
            self.store.pop(k, None)

    def clear(self):
        self.store.clear()
        self.order.clear()

response_cache = SimpleTTLCache(2000)


def get_mongo_db():
    return mongo_db


def ensure_collections_and_indexes(db, logger=None):
    """Cria coleções essenciais e índices (idempotente)."""
    try:
        existing = set(db.list_collection_names())
        for name in COLLECTIONS:
            if name not in existing:
                db.create_collection(name)
        # Índices essenciais
        db['usuarios'].create_index([('email', ASCENDING)], unique=True, name='idx_unique_email')
        db['camaras'].create_index([('nome', ASCENDING)], unique=True, name='idx_unique_camara_nome')
        db['localizacoes'].create_index(
            [('camara_id', ASCENDING), ('codigo', ASCENDING)], unique=True, name='idx_unique_loc_codigo'
        )
        db['localizacoes'].create_index(
            [
                ('camara_id', ASCENDING),
                ('coordenadas.quadra', ASCENDING),
                ('coordenadas.lado', ASCENDING),
                ('coordenadas.fila', ASCENDING),
                ('coordenadas.andar', ASCENDING),
            ],
            unique=True,
            name='idx_unique_loc_coordenadas',
        )
        db['localizacoes'].create_index([('ocupada', ASCENDING)], name='idx_loc_ocupada')
        db['tipos_semente'].create_index([('nome', ASCENDING)], unique=True, name='idx_unique_tipo_nome')
        db['clientes'].create_index([('nome', ASCENDING)], unique=True, name='idx_unique_cliente_nome')
        db['produtos'].create_index([('status', ASCENDING)], name='idx_prod_status')
        db['produtos'].create_index([('localizacao_id', ASCENDING)], name='idx_prod_localizacao')
        db['produtos'].create_index([('lote_produtos_id', ASCENDING)], name='idx_prod_lote_produtos')
        db['produtos'].create_index([('data_validade', ASCENDING)], name='idx_prod_validade')
        db['movimentacoes'].create_index([('produto_id', ASCENDING), ('data_movimentacao', DESCENDING)], name='idx_mov_prod_data')
        db['movimentacoes'].create_index([('tipo', ASCENDING)], name='idx_mov_tipo')
        db['movimentacoes'].create_index([('usuario_id', ASCENDING)], name='idx_mov_usuario')
        db['solicitacoes_retirada'].create_index([('status', ASCENDING)], name='idx_ret_status')
        db['solicitacoes_retirada'].create_index([('produto_id', ASCENDING)], name='idx_ret_produto')
        db['logs_auditoria'].create_index([('timestamp', ASCENDING)], name='idx_audit_time')
        db['logs_auditoria'].create_index([('usuario_id', ASCENDING)], name='idx_audit_user')
    except Exception as e:
        if logger is not None:
            logger.error(f'[Mongo Init] Falha ao criar coleções/índices: {e}')
        else:
            print(f'[Mongo Init] Falha ao criar coleções/índices: {e}')


def _sanitize_mongo_uri(uri: str) -> str:
    """Mascara credenciais em uma URI Mongo para evitar exposição em logs."""
    try:
        if '://' in uri and '@' in uri:
            scheme, rest = uri.split('://', 1)
            creds, host_and_path = rest.split('@', 1)
            masked_creds = '***:***' if ':' in creds else '***'
            return f"{scheme}://{masked_creds}@{host_and_path}"
        return uri
    except Exception:
        return '<hidden>'


def _seed_user(usuarios_col, email, nome, senha, role, logger=None):
    existing = usuarios_col.find_one({'email': email})
    if existing is None:
        usuarios_col.insert_one({
            'email': email,
            'nome': nome,
            'password_hash': generate_password_hash(senha),
            'role': role,
            'ativo': True,
            'ultimo_login': None,
            'data_criacao': datetime.utcnow(),
            'data_atualizacao': datetime.utcnow(),
        })
        if logger is not None:
            logger.info(f'[Mongo Seed] Usuário {email} criado.')
    else:
        usuarios_col.update_one({'_id': existing['_id']}, {'$set': {'ativo': True, 'role': role}})


def seed_default_users(app, db):
    """Semeia o administrador inicial e, em dev/test, um operador de testes."""
    usuarios_col = db['usuarios']
    is_dev_or_test = bool(app.config.get('DEBUG')) or bool(app.config.get('TESTING'))
    admin_email = (os.environ.get('INITIAL_ADMIN_EMAIL') or 'admin@local').lower()
    initial_pwd = os.environ.get('INITIAL_ADMIN_PASSWORD') or ('admin' if is_dev_or_test else None)
    if initial_pwd is not None:
        _seed_user(usuarios_col, admin_email, 'Administrador', initial_pwd, 'ADMIN', app.logger)
    elif usuarios_col.find_one({'email': admin_email}) is None:
        app.logger.info('[Mongo Seed] Usuário admin NÃO criado (sem INITIAL_ADMIN_PASSWORD e ambiente de produção).')

    if is_dev_or_test or (os.environ.get('SEED_TEST_USERS', 'false').lower() == 'true'):
        test_pwd = os.environ.get('TEST_OPERATOR_PASSWORD') or 'operador123'
        _seed_user(usuarios_col, 'operador@local', 'Operador de Testes', test_pwd, 'OPERATOR', app.logger)


def _connect_real(app, mongo_uri, dbname):
    # Ler ajustes de tempo e TLS via ambiente
    timeout_select = int(os.environ.get('MONGO_TIMEOUT_SELECT_MS', '15000'))
    timeout_connect = int(os.environ.get('MONGO_TIMEOUT_CONNECT_MS', '12000'))
    timeout_socket = int(os.environ.get('MONGO_TIMEOUT_SOCKET_MS', '12000'))
    allow_invalid = os.environ.get('MONGO_TLS_ALLOW_INVALID', 'false').lower() == 'true'
    app.logger.info(f"[Mongo Init] Conectando em URI={_sanitize_mongo_uri(mongo_uri)} DB={dbname}")
    app.logger.info(f"[Mongo Init] Options: select={timeout_select}ms connect={timeout_connect}ms socket={timeout_socket}ms tlsAllowInvalid={allow_invalid}")
    client_kwargs = {
        'serverSelectionTimeoutMS': timeout_select,
        'connectTimeoutMS': timeout_connect,
        'socketTimeoutMS': timeout_socket,
    }
    if allow_invalid:
        client_kwargs['tlsAllowInvalidCertificates'] = True
    elif mongo_uri.startswith('mongodb+srv://') or 'tls=true' in mongo_uri.lower():
        import certifi
        client_kwargs['tlsCAFile'] = certifi.where()
    client = MongoClient(mongo_uri, **client_kwargs)
    # Testar conectividade rapidamente para evitar travar o startup
    client.admin.command('ping')
    return client


def _connect_mock():
    import mongomock
    return mongomock.MongoClient()


def init_mongo(app):
    """Inicializa cliente MongoDB usando configurações do app e semeia usuários padrão se necessário."""
    global mongo_client, mongo_db
    mongo_uri = app.config.get('MONGO_URI')
    dbname = app.config.get('MONGO_DB')
    if mongo_client is None:
        force_mock = bool(app.config.get('FORCE_MOCK_DB')) or (os.environ.get('USE_MONGOMOCK', 'false').lower() == 'true')
        if force_mock:
            app.logger.info('[Mongo Init] Usando mongomock (forçado por configuração)')
            mongo_client = _connect_mock()
        else:
            try:
                mongo_client = _connect_real(app, mongo_uri, dbname)
            except (ServerSelectionTimeoutError, AutoReconnect, Exception) as e:
                # Fallback controlado para ambiente de desenvolvimento/teste usando mongomock
                if bool(app.config.get('ALLOW_MOCK_DB')):
                    app.logger.warning(f"[Mongo Init] Usando mongomock (fallback) por indisponibilidade: {type(e).__name__}: {e}")
                    try:
                        mongo_client = _connect_mock()
                    except Exception as e2:
                        app.logger.error(f"[Mongo Init] Fallback mongomock falhou: {type(e2).__name__}: {e2}")
                        mongo_client = None
                        mongo_db = None
                        raise RuntimeError(f"MongoDB indisponível e fallback falhou: {type(e).__name__}: {e} / {type(e2).__name__}: {e2}")
                else:
                    # Não usar mongomock em produção: sempre exigir MongoDB real
                    app.logger.error(f"[Mongo Init] Conexão MongoDB indisponível: {type(e).__name__}: {e}")
                    mongo_client = None
                    mongo_db = None
                    raise RuntimeError(f"MongoDB indisponível: {type(e).__name__}: {e}")

    mongo_db = mongo_client[dbname]

    # Em ambiente de testes, limpar coleções a cada app para isolamento dos testes
    if app.config.get('TESTING'):
        for name in COLLECTIONS:
            mongo_db.drop_collection(name)
        response_cache.clear()

    # Garantir coleções e índices
    ensure_collections_and_indexes(mongo_db, logger=app.logger)

    try:
        seed_default_users(app, mongo_db)
    except Exception as e:
        app.logger.error(f'[Mongo Seed] Falha ao semear usuários: {e}')
    return mongo_client, mongo_db
