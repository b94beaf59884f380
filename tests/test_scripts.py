"""
Scripts de manutenção executados contra um banco mongomock isolado
"""
import importlib.util
import os

import mongomock
import pytest
from bson import ObjectId

from tests.conftest import PROJECT_ROOT


def _load_script(nome):
    caminho = os.path.join(PROJECT_ROOT, 'scripts', f'{nome}.py')
    spec = importlib.util.spec_from_file_location(f'scripts_{nome}', caminho)
    modulo = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(modulo)
    return modulo


@pytest.fixture
def db():
    return mongomock.MongoClient().db


def test_check_data_finds_and_fixes_inconsistencies(db):
    check_data = _load_script('check_data')
    livre, fantasma = ObjectId(), ObjectId()
    db['localizacoes'].insert_many([
        {'_id': livre, 'codigo': 'Q1-L1-F1-A1', 'ocupada': False, 'peso_atual_kg': 0, 'capacidade_maxima_kg': 100},
        {'_id': fantasma, 'codigo': 'Q1-L1-F1-A2', 'ocupada': True, 'peso_atual_kg': 0, 'capacidade_maxima_kg': 100},
    ])
    db['produtos'].insert_many([
        {'status': 'LOCADO', 'localizacao_id': livre, 'quantidade': 5, 'peso_unitario': 10, 'peso_total': 50},
        {'status': 'AGUARDANDO_LOCACAO', 'localizacao_id': None, 'quantidade': 2, 'peso_unitario': 10,
         'peso_total': 25, 'lote_produtos_id': 'undefined'},
    ])

    problemas = check_data.check(db)
    assert len(problemas) == 4
    assert db['localizacoes'].find_one({'_id': livre})['ocupada'] is False

    check_data.check(db, fix=True)
    assert check_data.check(db) == []
    loc = db['localizacoes'].find_one({'_id': livre})
    assert loc['ocupada'] is True
    assert loc['peso_atual_kg'] == 50
    assert db['localizacoes'].find_one({'_id': fantasma})['ocupada'] is False
    assert db['produtos'].find_one({'quantidade': 2})['peso_total'] == 20


def test_migrate_roles_and_legacy_status(db):
    migrate_roles_fsm = _load_script('migrate_roles_fsm')
    db['usuarios'].insert_many([
        {'email': 'chefe@local', 'role': 'admin'},
        {'email': 'gestor@local', 'role': 'gestor'},
        {'email': 'op@local', 'role': 'OPERATOR'},
    ])
    db['produtos'].insert_many([
        {'nome': 'A', 'status': 'stored', 'localizacao_id': ObjectId()},
        {'nome': 'B', 'status': 'removed', 'localizacao_id': None},
        {'nome': 'C', 'status': 'CADASTRADO', 'localizacao_id': None},
    ])

    resumo = migrate_roles_fsm.migrate(db, dry_run=True)
    assert resumo['status stored -> LOCADO'] == 1
    assert resumo['versao ausente -> 0'] == 3
    assert db['produtos'].find_one({'nome': 'A'})['status'] == 'stored'

    migrate_roles_fsm.migrate(db)
    status = {p['nome']: p['status'] for p in db['produtos'].find({})}
    assert status == {'A': 'LOCADO', 'B': 'REMOVIDO', 'C': 'AGUARDANDO_LOCACAO'}
    assert db['produtos'].count_documents({'versao': 0}) == 3
    roles = {u['email']: u['role'] for u in db['usuarios'].find({})}
    assert roles == {'chefe@local': 'ADMIN', 'gestor@local': 'OPERATOR', 'op@local': 'OPERATOR'}
