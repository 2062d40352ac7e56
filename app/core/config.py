import os
from dotenv import load_dotenv

# Carregar variáveis do arquivo .env
load_dotenv()


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    return int(value) if value else default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    return float(value) if value else default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Provedores de busca (ordem da cadeia de fallback)
    # 1. Primary: Brave Search
    BRAVE_SEARCH_API_KEY: str = os.getenv("BRAVE_SEARCH_API_KEY", "")
    BRAVE_BASE_URL: str = "https://api.search.brave.com/res/v1/web/search"

    # 2. Secondary: Serper (Google)
    SERPER_API_KEY: str = os.getenv("SERPER_API_KEY", "")
    SERPER_BASE_URL: str = "https://google.serper.dev/search"

    # 3. Tertiary: Google Custom Search
    GOOGLE_CSE_API_KEY: str = os.getenv("GOOGLE_CSE_API_KEY", "")
    GOOGLE_CSE_CX: str = os.getenv("GOOGLE_CSE_CX", "")
    GOOGLE_CSE_BASE_URL: str = "https://www.googleapis.com/customsearch/v1"

    # 4. Último recurso: URL adivinhada (sem I/O, sem cota)
    LINKEDIN_URL_GUESS_ENABLED: bool = _env_bool("LINKEDIN_URL_GUESS_ENABLED", True)

    # Cotas (Brave free tier: 2000/mês)
    LINKEDIN_DAILY_LIMIT: int = _env_int("LINKEDIN_DAILY_LIMIT", 500)
    LINKEDIN_MONTHLY_LIMIT: int = _env_int("LINKEDIN_MONTHLY_LIMIT", 2000)

    # Cache e política de confiança
    LINKEDIN_CACHE_TTL_DAYS: int = _env_int("LINKEDIN_CACHE_TTL_DAYS", 7)
    LINKEDIN_CONFIDENCE_THRESHOLD: float = _env_float("LINKEDIN_CONFIDENCE_THRESHOLD", 0.7)
    LINKEDIN_AUTO_SELECT_THRESHOLD: float = _env_float("LINKEDIN_AUTO_SELECT_THRESHOLD", 0.9)

    # Timeout por chamada de provider (segundos)
    LINKEDIN_PROVIDER_TIMEOUT: float = _env_float("LINKEDIN_PROVIDER_TIMEOUT", 5.0)

    # Limite por cliente no endpoint /discover (requisições por hora)
    LINKEDIN_CLIENT_HOURLY_LIMIT: int = _env_int("LINKEDIN_CLIENT_HOURLY_LIMIT", 20)

    # Banco de dados (vazio = stores em memória)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DATABASE_SCHEMA: str = os.getenv("DATABASE_SCHEMA", "public")
    DATABASE_POOL_MIN_SIZE: int = _env_int("DATABASE_POOL_MIN_SIZE", 1)
    DATABASE_POOL_MAX_SIZE: int = _env_int("DATABASE_POOL_MAX_SIZE", 10)
    # Timeout por comando SQL (segundos)
    DATABASE_COMMAND_TIMEOUT: float = _env_float("DATABASE_COMMAND_TIMEOUT", 5.0)

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")

settings = Settings()
