"""
errors.py - Hierarquia de exceções do cliente LuCLI

Propósito:
    Separar as falhas de uma passada de lint por origem, para que o
    orquestrador limpe diagnósticos e mostre uma mensagem única ao usuário.

Componentes principais:
    - LucliError: Base de todas as falhas do cliente
    - ToolInvocationError: Ferramenta não executou ou saiu sem saída útil
    - TransportError: Falha de socket ao falar com o daemon
    - ProtocolError: Resposta do daemon vazia ou com JSON inválido
    - DaemonUnavailableError: Daemon não abriu a porta dentro do orçamento
"""

from __future__ import annotations

from typing import Optional


class LucliError(Exception):
    """Base para erros de invocação do LuCLI."""


class ToolInvocationError(LucliError):
    """Executável ausente, falha de spawn ou exit code != 0 sem saída."""


class TransportError(LucliError):
    """Conexão recusada, reset, timeout ou falha de escrita no socket."""


class ProtocolError(LucliError):
    """Linha de resposta do daemon não é um envelope JSON válido."""

    def __init__(self, message: str, raw_line: Optional[str] = None):
        if raw_line is not None:
            message = f"{message}: {raw_line!r}"
        super().__init__(message)
        self.raw_line = raw_line


class DaemonUnavailableError(LucliError):
    """Daemon não respondeu na porta (esgotou tentativas ou terminou antes)."""

    def __init__(self, port: int, attempts: int, returncode: Optional[int] = None):
        if returncode is None:
            message = (
                f"LuCLI daemon did not start listening on port {port} "
                f"after {attempts} attempts"
            )
        else:
            message = (
                f"LuCLI daemon exited with code {returncode} before listening "
                f"on port {port}"
            )
        super().__init__(message)
        self.port = port
        self.attempts = attempts
        self.returncode = returncode
