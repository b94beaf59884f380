import argparse
import sys
import os

# Garantir que o diretório raiz do projeto esteja no PYTHONPATH
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Importa o app para inicializar o Mongo via extensions.init_mongo
from app import app
import extensions
from models_mongo.usuario import ADMIN


def reset_database(preserve_admin: bool = True) -> dict:
    """Limpa todas as coleções do banco MongoDB.

    - Preserva os usuários ADMIN por padrão (remove os demais em 'usuarios').
    - Mantém índices (usa delete_many, não drop_database).
    - Semeia novamente os usuários padrão conforme o ambiente.
    """
    db = extensions.mongo_db
    if db is None:
        raise RuntimeError('MongoDB não inicializado. Verifique MONGO_URI/MONGO_DB e inicialização do app.')

    result = {
        'database': db.name,
        'collections_cleared': {},
    }

    for name in db.list_collection_names():
        coll = db[name]
        if name == 'usuarios' and preserve_admin:
            del_res = coll.delete_many({'role': {'$ne': ADMIN}})
        else:
            del_res = coll.delete_many({})
        result['collections_cleared'][name] = del_res.deleted_count

    # Garante coleções/índices essenciais novamente (idempotente)
    extensions.ensure_collections_and_indexes(db)
    extensions.seed_default_users(app, db)
    extensions.response_cache.clear()
    result['admins'] = db['usuarios'].count_documents({'role': ADMIN})
    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description='Limpa o banco de dados')
    parser.add_argument('--yes', action='store_true', help='não pedir confirmação')
    parser.add_argument('--remove-admin', action='store_true', help='remove também os administradores')
    args = parser.parse_args(argv)
    if extensions.mongo_db is None:
        print('[Reset Mongo] MongoDB não inicializado')
        return 1
    if not args.yes:
        resposta = input(f"Apagar todos os dados de '{extensions.mongo_db.name}'? [s/N] ")
        if resposta.strip().lower() not in ('s', 'sim', 'y', 'yes'):
            print('[Reset Mongo] Cancelado')
            return 1
    with app.app_context():
        summary = reset_database(preserve_admin=not args.remove_admin)
    print('[Reset Mongo] Banco:', summary['database'])
    print('[Reset Mongo] Coleções limpas:')
    for k, v in sorted(summary['collections_cleared'].items()):
        print(f'  - {k}: {v} documentos removidos')
    print('[Reset Mongo] Administradores:', summary['admins'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
