"""
Configurações da aplicação carregadas do ambiente (.env)
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
# Segredo JWT do projeto (Settings > API). Se ausente, tokens são validados no Supabase
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")
SUPABASE_JWT_AUDIENCE = "authenticated"

PASSWORD_RESET_REDIRECT_URL = os.getenv(
    "PASSWORD_RESET_REDIRECT_URL", "http://localhost:5173/reset-password"
)

# Servidor
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Dados financeiros em memória por usuário
STATE_IDLE_TIMEOUT = float(os.getenv("STATE_IDLE_TIMEOUT", 1800))
STATE_MAX_USERS = int(os.getenv("STATE_MAX_USERS", 500))

_PLACEHOLDERS = ("your_supabase_project_url_here", "your_supabase_anon_key_here")


def is_supabase_configured(url: str = None, key: str = None) -> bool:
    """Verifica se URL e chave do Supabase estão definidas e não são placeholders"""
    url = SUPABASE_URL if url is None else url
    key = SUPABASE_ANON_KEY if key is None else key

    if not url or not key:
        return False
    return not any(placeholder in url or placeholder in key for placeholder in _PLACEHOLDERS)
