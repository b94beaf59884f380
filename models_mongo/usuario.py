"""
Modelo MongoDB para usuários do sistema
"""
from werkzeug.security import generate_password_hash
from .base import BaseMongoModel


ADMIN = 'ADMIN'
OPERATOR = 'OPERATOR'
ROLES = [ADMIN, OPERATOR]

SENHA_MIN = 6


class UsuarioMongo(BaseMongoModel):
    """Modelo MongoDB para usuários com papel ADMIN/OPERATOR"""

    collection_name = 'usuarios'

    def __init__(self, **kwargs):
        if kwargs.get('role', OPERATOR) not in ROLES:
            raise ValueError(f"Papel inválido: {kwargs.get('role')}")
        kwargs['email'] = (kwargs.get('email') or '').strip().lower()
        senha = kwargs.pop('password', None)
        if senha is not None:
            kwargs['password_hash'] = generate_password_hash(senha)
        kwargs.setdefault('role', OPERATOR)
        kwargs.setdefault('ativo', True)
        kwargs.setdefault('ultimo_login', None)
        super().__init__(**kwargs)

    @property
    def email(self):
        return self.data.get('email')

    @property
    def role(self):
        return self.data.get('role')
