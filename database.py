from supabase import create_client, Client

import config
from logging_setup import get_logger

logger = get_logger("database")


class ConfigurationError(Exception):
    """Supabase não configurado no .env"""
    pass


class DatabaseError(Exception):
    """Exceção customizada para erros de banco de dados"""
    pass


class AuthenticationError(Exception):
    """Exceção customizada para erros de autenticação"""
    pass


class NotFoundError(DatabaseError):
    """Registro inexistente ou de outro usuário"""
    pass


class ValidationError(DatabaseError):
    """Dados inconsistentes com as categorias do usuário"""
    pass


class ReferencedEntityError(DatabaseError):
    """Exclusão recusada: ainda existem transações vinculadas"""
    pass


def error_message(error: Exception) -> str:
    """Extrai a mensagem legível de erros do PostgREST/GoTrue"""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def create_supabase_client() -> Client:
    """Cria cliente anônimo (chave anon) para operações de autenticação"""
    if not config.is_supabase_configured():
        logger.error(
            "Variáveis SUPABASE_URL e SUPABASE_ANON_KEY não encontradas no .env. "
            "Obtenha os valores em Supabase Dashboard > Project Settings > API"
        )
        raise ConfigurationError("Supabase não configurado")
    return create_client(config.SUPABASE_URL, config.SUPABASE_ANON_KEY)


def create_user_client(access_token: str) -> Client:
    """Cria cliente cujas requisições ao PostgREST carregam o JWT do usuário (RLS)"""
    client = create_supabase_client()
    client.postgrest.auth(access_token)
    return client


def check_connection(client: Client) -> bool:
    """Testa a conexão consultando a tabela de perfis"""
    try:
        client.table("profiles").select("id").limit(1).execute()
        logger.info("Conexão com Supabase bem-sucedida")
        return True
    except Exception as e:
        logger.warning("Falha no teste de conexão com Supabase: %s", error_message(e))
        return False
