"""Migra dados legados para os papéis ADMIN/OPERATOR e o ciclo de vida atual dos produtos.

- status legados: stored -> LOCADO, reserved -> AGUARDANDO_RETIRADA, removed -> REMOVIDO
- produtos sem localização e fora dos estados finais -> AGUARDANDO_LOCACAO
- produtos sem 'versao' -> 0
- papéis: admin -> ADMIN, qualquer outro -> OPERATOR

Uso: python scripts/migrate_roles_fsm.py [--dry-run]
"""
import argparse
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
import extensions
from models_mongo.produto import (
    LOCADO, AGUARDANDO_RETIRADA, AGUARDANDO_LOCACAO, REMOVIDO, STATUS_FINAIS, STATUS_PRODUTO,
)
from models_mongo.usuario import ADMIN, OPERATOR, ROLES

STATUS_LEGADOS = {
    'stored': LOCADO,
    'reserved': AGUARDANDO_RETIRADA,
    'removed': REMOVIDO,
}


def _update(coll, filtro, update, dry_run):
    if dry_run:
        return coll.count_documents(filtro)
    return coll.update_many(filtro, update).modified_count


def migrate(db, dry_run=False):
    produtos = db['produtos']
    usuarios = db['usuarios']
    agora = datetime.utcnow()
    resumo = {}

    for legado, novo in STATUS_LEGADOS.items():
        resumo[f'status {legado} -> {novo}'] = _update(
            produtos, {'status': legado}, {'$set': {'status': novo, 'data_atualizacao': agora}}, dry_run,
        )

    sem_local = {
        'localizacao_id': None,
        'status': {'$nin': STATUS_FINAIS + [AGUARDANDO_LOCACAO]},
    }
    resumo[f'sem localização -> {AGUARDANDO_LOCACAO}'] = _update(
        produtos, sem_local, {'$set': {'status': AGUARDANDO_LOCACAO, 'data_atualizacao': agora}}, dry_run,
    )

    resumo['versao ausente -> 0'] = _update(
        produtos, {'versao': {'$exists': False}}, {'$set': {'versao': 0}}, dry_run,
    )
    desconhecidos = produtos.count_documents({'status': {'$nin': STATUS_PRODUTO + list(STATUS_LEGADOS)}})
    resumo['status desconhecidos (não alterados)'] = desconhecidos

    resumo[f'papel admin -> {ADMIN}'] = _update(
        usuarios, {'role': {'$in': ['admin', 'super_admin']}}, {'$set': {'role': ADMIN}}, dry_run,
    )
    resumo[f'outros papéis -> {OPERATOR}'] = _update(
        usuarios, {'role': {'$nin': ROLES + ['admin', 'super_admin']}}, {'$set': {'role': OPERATOR}}, dry_run,
    )
    return resumo


def main(argv=None):
    parser = argparse.ArgumentParser(description='Migra papéis e status de produtos legados')
    parser.add_argument('--dry-run', action='store_true', help='apenas conta os documentos afetados')
    args = parser.parse_args(argv)
    db = extensions.mongo_db
    if db is None:
        print('[Migração] MongoDB não inicializado')
        return 1
    with app.app_context():
        resumo = migrate(db, dry_run=args.dry_run)
    prefixo = '[Migração][dry-run]' if args.dry_run else '[Migração]'
    for descricao, total in resumo.items():
        print(f'{prefixo} {descricao}: {total}')
    return 0


if __name__ == '__main__':
    sys.exit(main())
