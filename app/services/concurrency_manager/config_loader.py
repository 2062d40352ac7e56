import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Diretório padrão para arquivos de configuração (apenas JSON, sem código).
CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "configs"

# Cache por arquivo para evitar re-leituras frequentes.
_CONFIG_CACHE: Dict[str, Dict[str, Any]] = {}


def load_config(name: str, *, use_cache: bool = True) -> Dict[str, Any]:
    """
    Carrega um arquivo JSON de configuração pelo nome (sem extensão).

    Exemplo: load_config("discovery") -> app/configs/discovery.json
    """
    if use_cache and name in _CONFIG_CACHE:
        return _CONFIG_CACHE[name]

    config_path = CONFIG_DIR / f"{name}.json"
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if use_cache:
            _CONFIG_CACHE[name] = data
        return data
    except FileNotFoundError:
        logger.warning(f"[config_loader] Arquivo não encontrado: {config_path}")
    except json.JSONDecodeError as exc:
        logger.warning(f"[config_loader] JSON inválido em {config_path}: {exc}")
    return {}


def get_section(path: str, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Retorna uma seção aninhada de um arquivo de config.

    O primeiro segmento é o arquivo, os demais são chaves:
    get_section("discovery/providers/brave") -> discovery.json["providers"]["brave"]
    """
    file_name, *keys = path.split("/")
    node: Any = load_config(file_name)
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            return dict(default or {})
        node = node[key]
    if not isinstance(node, dict) or not node:
        return dict(default or {})
    return node


def reset_cache() -> None:
    """Limpa cache em memória (útil para testes)."""
    _CONFIG_CACHE.clear()
