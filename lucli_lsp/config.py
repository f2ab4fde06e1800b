"""
config.py - Configuração do cliente LuCLI

Propósito:
    Ler a seção `lucli` enviada pelo editor em
    workspace/didChangeConfiguration.

Chaves reconhecidas (todas opcionais):
    lucli.path                Caminho do executável ou JAR do LuCLI
    lucli.storagePath         Diretório de storage com JARs baixados (bin/)
    lucli.lint.enabled        Habilita o lint (padrão: true)
    lucli.daemon.enabled      Usa o daemon em vez de subprocesso (padrão: false)
    lucli.daemon.port         Porta do daemon em 127.0.0.1 (padrão: 10000)
    lucli.daemon.args         argv do daemon; "{port}" é substituído
    lucli.daemon.timeout      Timeout de socket em segundos (padrão: 30)

Notas de implementação:
    - Payload pode vir como {"lucli": {...}} ou já como a seção
    - Valores inválidos caem no padrão; nunca levanta exceção
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from lucli_lsp.daemon import DEFAULT_PORT

logger = logging.getLogger(__name__)

DEFAULT_DAEMON_ARGS = ["daemon", "--port", "{port}"]
DEFAULT_SOCKET_TIMEOUT = 30.0


def _section(config, key: str) -> dict:
    value = config.get(key) if isinstance(config, dict) else None
    return value if isinstance(value, dict) else {}


def _as_bool(value, default: bool) -> bool:
    return value if isinstance(value, bool) else default


@dataclass
class LucliSettings:
    """Configuração efetiva do servidor."""

    path: str = ""
    storage_path: str = ""
    lint_enabled: bool = True
    daemon_enabled: bool = False
    daemon_port: int = DEFAULT_PORT
    daemon_args: List[str] = field(default_factory=lambda: list(DEFAULT_DAEMON_ARGS))
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT

    @classmethod
    def from_settings(cls, settings) -> "LucliSettings":
        """Constrói a configuração a partir do payload do editor."""
        if not isinstance(settings, dict):
            return cls()

        config = settings.get("lucli", settings)
        if not isinstance(config, dict):
            return cls()

        lint_config = _section(config, "lint")
        daemon_config = _section(config, "daemon")

        result = cls(
            lint_enabled=_as_bool(lint_config.get("enabled"), True),
            daemon_enabled=_as_bool(daemon_config.get("enabled"), False),
        )

        path = config.get("path")
        if isinstance(path, str):
            result.path = path.strip()

        storage_path = config.get("storagePath")
        if isinstance(storage_path, str):
            result.storage_path = storage_path.strip()

        port = daemon_config.get("port")
        if isinstance(port, int) and not isinstance(port, bool) and 0 < port < 65536:
            result.daemon_port = port
        elif port is not None:
            logger.warning(f"lucli.daemon.port inválido ({port!r}), usando {DEFAULT_PORT}")

        args = daemon_config.get("args")
        if isinstance(args, list) and all(isinstance(arg, str) for arg in args):
            result.daemon_args = list(args)

        timeout = daemon_config.get("timeout")
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
            result.socket_timeout = float(timeout)

        return result

    def daemon_arguments(self) -> List[str]:
        """argv do daemon com {port} substituído."""
        return [arg.replace("{port}", str(self.daemon_port)) for arg in self.daemon_args]
