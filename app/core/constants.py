"""
Constantes globais do LinkedIn Discovery.

Este arquivo centraliza constantes que são usadas em múltiplos módulos.
Constantes específicas de cada módulo devem ficar em seus próprios arquivos.
"""

# Versão do sistema
VERSION = "1.0.0"

# Score de confiança (determinístico, sem pesos aprendidos)
BASE_CONFIDENCE = 0.6        # URL de empresa LinkedIn válida
NAME_MATCH_BONUS = 0.25      # Nome extraído contém o termo (ou vice-versa)
TOP_RANK_BONUS = 0.10        # Primeiro resultado do provider
SLUG_MATCH_BONUS = 0.05      # Vanity name contém o termo
MAX_CONFIDENCE = 0.95        # Teto: sempre deixa espaço para override manual
URL_GUESS_CONFIDENCE = 0.3   # URL construída sem verificação

# Limites de resultado
MAX_RESULTS_PER_SEARCH = 3
MAX_DESCRIPTION_LENGTH = 200
MIN_TERM_LENGTH = 2

UNKNOWN_COMPANY = "Unknown Company"

# Timeouts globais (em segundos)
DEFAULT_PROVIDER_TIMEOUT = 5.0

# Cache
DEFAULT_CACHE_TTL_DAYS = 7
EXPIRED_GRACE_DAYS = 1       # Entradas expiradas ficam visíveis 1 dia para analytics

# URLs LinkedIn
LINKEDIN_COMPANY_URL_TEMPLATE = "https://www.linkedin.com/company/{vanity}/"
LINKEDIN_SEARCH_PREFIX = "site:linkedin.com/company"
