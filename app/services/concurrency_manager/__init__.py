"""
Concurrency Manager - Fila de prioridades e configuração.

- Fila de prioridades com workers assíncronos (HIGH > NORMAL > LOW, FIFO)
- Loader dos arquivos JSON de configuração (app/configs)
"""

from .priority_queue import (
    PriorityQueue,
    Priority,
    QueueFull,
    QueueItem,
)
from .config_loader import (
    load_config,
    get_section,
    reset_cache,
)

__all__ = [
    # Priority Queue
    "PriorityQueue",
    "Priority",
    "QueueFull",
    "QueueItem",
    # Config Loader
    "load_config",
    "get_section",
    "reset_cache",
]
