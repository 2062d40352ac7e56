"""
Priority Queue - Fila de prioridades com workers.

Ordem estrita: HIGH antes de NORMAL antes de LOW; dentro do mesmo nível,
FIFO pelo número de sequência. O número de workers limita quantas tarefas
rodam ao mesmo tempo.
"""

import asyncio
import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Níveis de prioridade (menor número = maior prioridade)."""
    HIGH = 0
    NORMAL = 1
    LOW = 2

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Aceita Priority, nome ('high') ou valor inteiro."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Prioridade inválida: {value!r}") from None
        return cls(value)


@dataclass(order=True)
class QueueItem:
    """Item na fila de prioridades."""
    priority: int
    sequence: int
    task_id: str = field(compare=False)
    callback: Callable[[], Awaitable[Any]] = field(compare=False, repr=False)
    enqueued_at: float = field(default_factory=time.monotonic, compare=False)
    metadata: dict = field(default_factory=dict, compare=False)


class QueueFull(Exception):
    """Fila atingiu max_size."""


class PriorityQueue:
    """
    Fila de prioridades com pool fixo de workers.

    Uso típico:
    1. start() cria os workers
    2. enqueue(callback, priority) devolve um task_id
    3. promote(task_id, priority) sobe a prioridade de item ainda na fila
    4. stop() espera os workers terminarem o item atual
    """

    def __init__(self, max_size: int = 1000, num_workers: int = 5, name: str = "queue"):
        """
        Args:
            max_size: Tamanho máximo da fila (itens aguardando)
            num_workers: Número de workers paralelos
            name: Nome para logs
        """
        self._max_size = max_size
        self._num_workers = num_workers
        self._name = name

        self._queue: List[QueueItem] = []  # heap
        self._index: Dict[str, QueueItem] = {}
        self._not_empty = asyncio.Condition()
        self._sequence = itertools.count()

        self._running = False
        self._workers: List[asyncio.Task] = []
        self._active = 0

        # Métricas
        self._enqueued = 0
        self._processed = 0
        self._failed = 0
        self._rejected = 0
        self._promoted = 0

        logger.info(f"PriorityQueue[{name}]: max_size={max_size}, workers={num_workers}")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active(self) -> int:
        """Tarefas sendo executadas por workers neste momento."""
        return self._active

    def __len__(self) -> int:
        return len(self._queue)

    async def enqueue(
        self,
        callback: Callable[[], Awaitable[Any]],
        priority: Priority = Priority.NORMAL,
        metadata: Optional[dict] = None,
    ) -> str:
        """
        Adiciona tarefa à fila.

        Raises:
            QueueFull: Se a fila atingiu max_size
        """
        async with self._not_empty:
            if len(self._queue) >= self._max_size:
                self._rejected += 1
                logger.warning(f"[PriorityQueue:{self._name}] Fila cheia, tarefa rejeitada")
                raise QueueFull(f"fila {self._name} cheia ({self._max_size})")

            sequence = next(self._sequence)
            item = QueueItem(
                priority=int(priority),
                sequence=sequence,
                task_id=f"task_{sequence}",
                callback=callback,
                metadata=metadata or {},
            )
            heapq.heappush(self._queue, item)
            self._index[item.task_id] = item
            self._enqueued += 1
            self._not_empty.notify()

        return item.task_id

    async def promote(self, task_id: str, priority: Priority) -> bool:
        """
        Sobe a prioridade de um item ainda na fila (mantém a sequência).

        Returns:
            True se promoveu; False se o item já saiu da fila ou já tinha
            prioridade igual ou maior.
        """
        async with self._not_empty:
            item = self._index.get(task_id)
            if item is None or item.priority <= int(priority):
                return False
            item.priority = int(priority)
            heapq.heapify(self._queue)
            self._promoted += 1
            logger.debug(f"[PriorityQueue:{self._name}] {task_id} promovido para {priority.name}")
            return True

    async def _dequeue(self) -> Optional[QueueItem]:
        """Remove e retorna item de maior prioridade (None ao parar)."""
        async with self._not_empty:
            while not self._queue and self._running:
                await self._not_empty.wait()
            if not self._running:
                return None
            item = heapq.heappop(self._queue)
            self._index.pop(item.task_id, None)
            self._active += 1
            return item

    async def _worker(self, worker_id: int):
        logger.debug(f"[PriorityQueue:{self._name}] Worker {worker_id} iniciado")
        while self._running:
            item = await self._dequeue()
            if item is None:
                break
            try:
                await item.callback()
                self._processed += 1
            except Exception as e:
                self._failed += 1
                logger.error(
                    f"[PriorityQueue:{self._name}] Worker {worker_id} erro ao processar "
                    f"{item.task_id}: {e}",
                    exc_info=True,
                )
            finally:
                self._active -= 1

    async def start(self):
        """Inicia os workers de processamento."""
        if self._running:
            return
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(i)) for i in range(self._num_workers)
        ]
        logger.info(f"[PriorityQueue:{self._name}] {self._num_workers} workers iniciados")

    async def stop(self, timeout: float = 10.0) -> List[QueueItem]:
        """
        Para os workers.

        Returns:
            Itens que ficaram na fila sem processamento
        """
        if not self._running:
            return []
        self._running = False

        async with self._not_empty:
            self._not_empty.notify_all()
            leftover = sorted(self._queue)
            self._queue = []
            self._index.clear()

        if self._workers:
            _, pending = await asyncio.wait(self._workers, timeout=timeout)
            for task in pending:
                task.cancel()
        self._workers = []
        logger.info(
            f"[PriorityQueue:{self._name}] Workers parados ({len(leftover)} itens descartados)"
        )
        return leftover

    def get_queue_size(self) -> dict:
        sizes = {p.name: 0 for p in Priority}
        for item in self._queue:
            sizes[Priority(item.priority).name] += 1
        return {"total": len(self._queue), "by_priority": sizes}

    def get_status(self) -> dict:
        return {
            "size": len(self._queue),
            "max_size": self._max_size,
            "running": self._running,
            "num_workers": self._num_workers,
            "active": self._active,
            "metrics": {
                "enqueued": self._enqueued,
                "processed": self._processed,
                "failed": self._failed,
                "rejected": self._rejected,
                "promoted": self._promoted,
            },
            "by_priority": self.get_queue_size()["by_priority"],
        }
