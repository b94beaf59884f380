# Config package for the seed cold-storage system
# This file makes the config directory a Python package

import os
from pathlib import Path
from dotenv import load_dotenv

# Sempre carregar o .env da raiz do projeto
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / '.env')

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Configuração de banco de dados MongoDB (persistência oficial)
    MONGO_URI = os.environ.get('MONGO_URI') or 'mongodb://localhost:27017/camaras_sementes'
    MONGO_DB = os.environ.get('MONGO_DB') or 'camaras_sementes'

    # Configurações da aplicação
    ITEMS_PER_PAGE = 20
    MAX_ITEMS_PER_PAGE = 100

    # Regras de armazenamento
    DEFAULT_LOCATION_CAPACITY_KG = 1000
    CAPACITY_SAFETY_MARGIN = 0.05
    DUPLICATE_MOVEMENT_WINDOW_MINUTES = 5
    EXPIRATION_WARNING_DAYS = 30
    EXPIRATION_CRITICAL_DAYS = 7

    # Configurações de segurança
    SESSION_COOKIE_SECURE = False  # True em produção com HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Configurações de sessão
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hora em segundos

    # Configurações de cookies de lembrar
    REMEMBER_COOKIE_DURATION = 86400 * 7  # 7 dias em segundos
    REMEMBER_COOKIE_SECURE = False  # True em produção com HTTPS
    REMEMBER_COOKIE_HTTPONLY = True
    # Controles de segurança dinâmicos
    DISABLE_LOGIN_RATE_LIMIT = True  # Pode ser sobrescrito em produção
    # Permitir fallback de banco simulado em dev/test
    ALLOW_MOCK_DB = True
    # Permitir leitura pública de endpoints GET da API em dev/test
    ALLOW_PUBLIC_API_READ = True
    # Desabilitar CSRF para JSON em dev/test
    DISABLE_API_CSRF = True

class DevelopmentConfig(Config):
    DEBUG = True

class ProductionConfig(Config):
    DEBUG = False

    # Configurações de segurança para produção
    SESSION_COOKIE_SECURE = True  # Requer HTTPS
    REMEMBER_COOKIE_SECURE = True  # Requer HTTPS
    DISABLE_LOGIN_RATE_LIMIT = False
    ALLOW_MOCK_DB = False
    ALLOW_PUBLIC_API_READ = False
    DISABLE_API_CSRF = False

class TestingConfig(Config):
    TESTING = True
    MONGO_DB = 'camaras_sementes_test'
    # Testes sempre em banco simulado, com CSRF e autenticação reais
    ALLOW_MOCK_DB = True
    FORCE_MOCK_DB = True
    ALLOW_PUBLIC_API_READ = False
    DISABLE_API_CSRF = False
    DISABLE_LOGIN_RATE_LIMIT = False

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
