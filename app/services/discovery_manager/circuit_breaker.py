"""
Circuit Breaker - Controle de falhas por provider de busca.

Após N falhas consecutivas de um provider (timeout, erro de rede, 5xx),
o circuito abre e a fallback chain pula o tier sem gastar quota nem
esperar timeout. Depois de `recovery_timeout` segundos uma chamada de
teste é permitida (HALF_OPEN).
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Estados possíveis do circuit breaker."""
    CLOSED = "closed"      # Normal - permite chamadas
    OPEN = "open"          # Aberto - tier é pulado
    HALF_OPEN = "half_open"  # Semi-aberto - permite teste


@dataclass
class ProviderCircuit:
    """Estado do circuito de um provider."""
    provider: str
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    last_failure_time: float = 0
    last_success_time: float = 0
    opened_at: float = 0
    half_open_tests: int = 0


class CircuitBreaker:
    """
    Circuit Breaker com um circuito por provider.

    Estados:
    - CLOSED: Normal. Abre após `failure_threshold` falhas consecutivas.
    - OPEN: Rejeita chamadas. Passa a HALF_OPEN após `recovery_timeout`.
    - HALF_OPEN: Permite `half_open_max_tests` chamadas de teste.
      Sucesso fecha, falha reabre.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max_tests: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._half_open_max_tests = half_open_max_tests
        self._clock = clock

        self._circuits: Dict[str, ProviderCircuit] = {}
        self._total_blocked = 0
        self._total_opened = 0

        logger.info(
            f"CircuitBreaker: threshold={failure_threshold}, "
            f"recovery={recovery_timeout}s"
        )

    def _get_circuit(self, provider: str) -> ProviderCircuit:
        if provider not in self._circuits:
            self._circuits[provider] = ProviderCircuit(provider=provider)
        return self._circuits[provider]

    def _update_state(self, circuit: ProviderCircuit) -> None:
        if circuit.state == CircuitState.OPEN:
            if self._clock() - circuit.opened_at >= self._recovery_timeout:
                circuit.state = CircuitState.HALF_OPEN
                circuit.half_open_tests = 0
                logger.info(
                    f"🔄 Circuit HALF_OPEN para {circuit.provider} "
                    f"(recuperação após {self._recovery_timeout}s)"
                )

    def allow_request(self, provider: str) -> bool:
        """
        True se o provider pode ser chamado agora.

        Em HALF_OPEN conta a chamada como teste; excedido o limite de
        testes, novas chamadas são bloqueadas até o resultado do teste.
        """
        circuit = self._get_circuit(provider)
        self._update_state(circuit)

        if circuit.state == CircuitState.OPEN:
            self._total_blocked += 1
            logger.debug(f"[CircuitBreaker] Bloqueado: {provider} (OPEN)")
            return False

        if circuit.state == CircuitState.HALF_OPEN:
            if circuit.half_open_tests >= self._half_open_max_tests:
                self._total_blocked += 1
                return False
            circuit.half_open_tests += 1
            logger.debug(f"[CircuitBreaker] Teste HALF_OPEN: {provider}")

        return True

    def record_failure(self, provider: str) -> None:
        circuit = self._get_circuit(provider)
        now = self._clock()
        circuit.failures += 1
        circuit.last_failure_time = now

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.state = CircuitState.OPEN
            circuit.opened_at = now
            logger.warning(f"🔌 Circuit REABERTO para {provider} (falha em teste HALF_OPEN)")

        elif circuit.state == CircuitState.CLOSED and circuit.failures >= self._failure_threshold:
            circuit.state = CircuitState.OPEN
            circuit.opened_at = now
            self._total_opened += 1
            logger.warning(
                f"🔌 Circuit OPEN para {provider} ({circuit.failures} falhas consecutivas)"
            )

    def record_success(self, provider: str) -> None:
        circuit = self._get_circuit(provider)
        circuit.successes += 1
        circuit.last_success_time = self._clock()

        if circuit.state == CircuitState.HALF_OPEN:
            logger.info(f"✅ Circuit CLOSED para {provider} (recuperado)")
        circuit.state = CircuitState.CLOSED
        circuit.failures = 0

    def get_state(self, provider: str) -> CircuitState:
        circuit = self._get_circuit(provider)
        self._update_state(circuit)
        return circuit.state

    def reset(self, provider: Optional[str] = None) -> None:
        if provider:
            self._circuits.pop(provider, None)
            logger.info(f"🔄 Circuit resetado para {provider}")
        else:
            self._circuits.clear()
            logger.info("🔄 Circuit breaker resetado para todos os providers")

    def get_provider_status(self, provider: str) -> dict:
        circuit = self._get_circuit(provider)
        self._update_state(circuit)
        return {
            "state": circuit.state.value,
            "failures": circuit.failures,
            "successes": circuit.successes,
            "remaining_timeout": (
                max(0.0, self._recovery_timeout - (self._clock() - circuit.opened_at))
                if circuit.state == CircuitState.OPEN else 0.0
            ),
        }

    def get_status(self) -> dict:
        states = {"closed": 0, "open": 0, "half_open": 0}
        for circuit in self._circuits.values():
            self._update_state(circuit)
            states[circuit.state.value] += 1
        return {
            "providers_tracked": len(self._circuits),
            "states": states,
            "total_blocked": self._total_blocked,
            "total_opened": self._total_opened,
            "config": {
                "failure_threshold": self._failure_threshold,
                "recovery_timeout": self._recovery_timeout,
                "half_open_max_tests": self._half_open_max_tests,
            },
        }
