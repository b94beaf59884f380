# Regras de negócio do armazenamento de sementes
