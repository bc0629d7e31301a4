"""
Ponto de entrada principal da aplicação
Configura logs e executa a API FastAPI
"""
import config
from database import check_connection, create_supabase_client
from logging_setup import configure_logging, get_logger

configure_logging(config.LOG_LEVEL)
logger = get_logger("main")

from web_api import app  # noqa: E402,F401


def check_supabase() -> bool:
    """Registra se o Supabase está configurado e testa a conexão"""
    if not config.is_supabase_configured():
        logger.warning(
            "Supabase não configurado. Defina SUPABASE_URL e SUPABASE_ANON_KEY no .env "
            "(Supabase Dashboard > Project Settings > API)"
        )
        return False

    logger.info("Supabase configurado: %s", config.SUPABASE_URL)
    return check_connection(create_supabase_client())


if __name__ == "__main__":
    import uvicorn

    print(f"🚀 Iniciando Controle Financeiro na porta {config.PORT}...")
    print(f"📖 Documentação em: http://localhost:{config.PORT}/docs")
    check_supabase()

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=False,
        log_level=config.LOG_LEVEL.lower()
    )
