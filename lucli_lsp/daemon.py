"""
daemon.py - Ciclo de vida do daemon LuCLI

Propósito:
    Garantir que existe um daemon LuCLI escutando na porta de loopback
    configurada antes de enviar requisições de lint pelo socket.

Componentes principais:
    - DaemonEndpoint: Host de loopback + porta
    - probe_socket: Teste pontual de conexão TCP (nunca levanta exceção)
    - DaemonState: ABSENT → STARTING → LISTENING (→ DEAD → ABSENT)
    - DaemonManager: Dono do único processo daemon da sessão

Notas de implementação:
    - O daemon é um binário externo sem sinal de "pronto"; a prontidão é
      detectada por polling da porta em intervalo fixo
    - Número máximo de tentativas evita espera infinita se o bind falhar
    - Um asyncio.Lock serializa as decisões de spawn entre chamadas
      concorrentes (no máximo um processo por sessão)
    - stdio do daemon é descartado (DEVNULL)
    - shutdown() também roda via atexit, para não deixar o daemon órfão
      quando o servidor sai sem o request LSP de shutdown
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from lucli_lsp.errors import DaemonUnavailableError, ToolInvocationError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 10000
DEFAULT_POLL_INTERVAL = 0.25
DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_PROBE_TIMEOUT = 0.5


@dataclass(frozen=True)
class DaemonEndpoint:
    """Endereço do daemon. Só há um daemon lógico por porta."""

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class DaemonState(Enum):
    ABSENT = "absent"
    STARTING = "starting"
    LISTENING = "listening"
    DEAD = "dead"


async def probe_socket(
    endpoint: DaemonEndpoint, timeout: float = DEFAULT_PROBE_TIMEOUT
) -> bool:
    """
    Verifica se o endpoint aceita conexões TCP neste instante.

    Uma única tentativa limitada por timeout. Retorna False para qualquer
    erro de conexão e fecha o socket nos dois casos.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(endpoint.host, endpoint.port),
            timeout=timeout,
        )
    except (OSError, asyncio.TimeoutError):
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def spawn_daemon(command: Sequence[str]) -> subprocess.Popen:
    """Inicia o daemon em background com stdio descartado."""
    return subprocess.Popen(
        list(command),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


class DaemonManager:
    """
    Gerencia o processo daemon da sessão.

    Attributes:
        interval: Segundos entre tentativas de probe após o spawn
        max_attempts: Número de probes antes de desistir
        spawn_count: Quantos processos esta sessão já iniciou

    Uma instância por sessão do servidor, injetada no orquestrador;
    spawn e probe são injetáveis para testes com processo/socket falsos.
    """

    def __init__(
        self,
        spawn: Callable[[Sequence[str]], subprocess.Popen] = spawn_daemon,
        probe: Callable[[DaemonEndpoint], Awaitable[bool]] = probe_socket,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._spawn = spawn
        self._probe = probe
        self.interval = interval
        self.max_attempts = max_attempts
        self.spawn_count = 0
        self._process: Optional[subprocess.Popen] = None
        self._state = DaemonState.ABSENT
        self._endpoint: Optional[DaemonEndpoint] = None
        self._lock = asyncio.Lock()
        self._atexit_registered = False

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def process(self) -> Optional[subprocess.Popen]:
        return self._process

    def _process_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    async def ensure_running(
        self, endpoint: DaemonEndpoint, command: Sequence[str]
    ) -> None:
        """
        Garante que o daemon está escutando no endpoint.

        Fluxo:
            1. Probe: se a porta já aceita conexões, retorna (daemon próprio
               ou iniciado externamente)
            2. Sem processo próprio, ou processo já terminou: spawn
            3. Polling a cada `interval` por até `max_attempts` tentativas;
               processo próprio que termina antes de abrir a porta falha na hora

        Raises:
            DaemonUnavailableError: Porta não abriu dentro das tentativas, ou
                o processo terminou antes
            ToolInvocationError: Não foi possível iniciar o processo
        """
        async with self._lock:
            self._endpoint = endpoint

            if await self._probe(endpoint):
                self._state = DaemonState.LISTENING
                return

            if not self._process_alive():
                if self._process is not None:
                    logger.warning(
                        f"Daemon anterior (pid={self._process.pid}) terminou, reiniciando"
                    )
                    self._state = DaemonState.DEAD
                self._start(command)
            else:
                logger.debug(
                    f"Daemon pid={self._process.pid} vivo mas porta {endpoint.port} fechada"
                )

            self._state = DaemonState.STARTING
            for attempt in range(1, self.max_attempts + 1):
                await asyncio.sleep(self.interval)
                if await self._probe(endpoint):
                    logger.info(
                        f"Daemon escutando em {endpoint} (tentativa {attempt})"
                    )
                    self._state = DaemonState.LISTENING
                    return
                if self._process is not None and self._process.poll() is not None:
                    returncode = self._process.returncode
                    logger.warning(
                        f"Daemon pid={self._process.pid} terminou com código "
                        f"{returncode} antes de escutar em {endpoint}"
                    )
                    self._state = DaemonState.DEAD
                    raise DaemonUnavailableError(endpoint.port, attempt, returncode)

            self._state = DaemonState.DEAD if not self._process_alive() else DaemonState.STARTING
            raise DaemonUnavailableError(endpoint.port, self.max_attempts)

    def _start(self, command: Sequence[str]) -> None:
        logger.info(f"Iniciando daemon LuCLI: {' '.join(command)}")
        try:
            self._process = self._spawn(command)
        except OSError as e:
            self._process = None
            self._state = DaemonState.ABSENT
            raise ToolInvocationError(f"Failed to start LuCLI daemon: {e}") from e
        self.spawn_count += 1
        if not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True

    def shutdown(self) -> None:
        """
        Encerra o daemon iniciado por esta sessão (best-effort).

        Processo já terminado ou erro do SO não são tratados como falha.
        Daemons iniciados externamente não são tocados. Não espera o
        processo terminar: roda no event loop e no atexit.
        """
        process = self._process
        self._process = None
        self._state = DaemonState.ABSENT
        if process is None:
            return

        try:
            if process.poll() is None:
                logger.info(f"Encerrando daemon LuCLI (pid={process.pid})")
                process.kill()
                # Coleta sem bloquear; se ainda não saiu, o Popen coleta depois
                process.poll()
        except OSError as e:
            logger.debug(f"Falha ao encerrar daemon (ignorado): {e}")

    def status(self) -> dict:
        """Resumo do estado para o comando de debug."""
        return {
            "state": self._state.value,
            "pid": self._process.pid if self._process is not None else None,
            "alive": self._process_alive(),
            "port": self._endpoint.port if self._endpoint else None,
            "spawn_count": self.spawn_count,
        }
