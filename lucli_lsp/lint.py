"""
lint.py - Orquestração de uma passada de lint

Propósito:
    Escolher entre modo subprocesso e modo daemon, executar o LuCLI,
    converter a saída em Diagnostics e publicá-los por documento.

Componentes principais:
    - lint_arguments: argv `lint file=... format=tsc [cwdOverride=...]`
    - LintOrchestrator: Coordena DaemonManager, protocolo, subprocesso e parser

Notas de implementação:
    - Diagnósticos do documento são sempre substituídos, nunca mesclados
    - Qualquer falha limpa os diagnósticos do documento (sem resultado velho)
      e gera uma única mensagem para o usuário
    - Número de sequência por documento: só a passada mais recente publica
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from lsprotocol.types import Diagnostic

from lucli_lsp.config import LucliSettings
from lucli_lsp.converters import build_diagnostics, parse_lint_report
from lucli_lsp.daemon import DaemonEndpoint, DaemonManager
from lucli_lsp.errors import LucliError, ToolInvocationError
from lucli_lsp.process import run_tool as default_run_tool
from lucli_lsp.protocol import CLIENT_ID, DaemonRequest
from lucli_lsp.protocol import send_request as default_send_request
from lucli_lsp.resolver import ToolResolver

logger = logging.getLogger(__name__)

LINT_FORMAT = "tsc"

PathLike = Union[str, Path]


def lint_arguments(file_path: PathLike, cwd: Optional[PathLike] = None) -> List[str]:
    """
    Monta o argv do comando lint.

    `cwdOverride` só é usado no modo daemon: o daemon não tem diretório de
    trabalho por requisição.
    """
    args = ["lint", f"file={file_path}", f"format={LINT_FORMAT}"]
    if cwd is not None:
        args.append(f"cwdOverride={cwd}")
    return args


class LintOrchestrator:
    """
    Coordenador de lint por documento.

    Attributes:
        daemon_manager: Dono do processo daemon da sessão
        resolver: Resolve o executável efetivo do LuCLI
        publish: Callback (uri, diagnostics) — ls.publish_diagnostics
        notify: Callback (mensagem) para erros visíveis ao usuário
    """

    def __init__(
        self,
        daemon_manager: DaemonManager,
        resolver: ToolResolver,
        publish: Callable[[str, List[Diagnostic]], None],
        notify: Optional[Callable[[str], None]] = None,
        run_tool=default_run_tool,
        send_request=default_send_request,
    ):
        self.daemon_manager = daemon_manager
        self.resolver = resolver
        self.publish = publish
        self.notify = notify
        self._run_tool = run_tool
        self._send_request = send_request
        self._sequence: dict[str, int] = {}
        self._counter = 0

    def _next_sequence(self, uri: str) -> int:
        self._counter += 1
        self._sequence[uri] = self._counter
        return self._counter

    def is_current(self, uri: str, sequence: int) -> bool:
        return self._sequence.get(uri) == sequence

    def forget(self, uri: str) -> None:
        """Descarta o rastreamento do documento; passadas em voo são ignoradas."""
        self._sequence.pop(uri, None)

    async def run_daemon(
        self, file_path: PathLike, settings: LucliSettings, cwd: PathLike
    ) -> str:
        endpoint = DaemonEndpoint(port=settings.daemon_port)
        command = self.resolver.command_for(settings, settings.daemon_arguments())
        await self.daemon_manager.ensure_running(endpoint, command)

        request = DaemonRequest(argv=lint_arguments(file_path, cwd), id=CLIENT_ID)
        response = await self._send_request(
            endpoint, request, timeout=settings.socket_timeout
        )
        if response.exit_code != 0 and not response.output:
            raise ToolInvocationError(
                f"LuCLI daemon exited with code {response.exit_code} and no output"
            )
        return response.output

    async def run_process(
        self, file_path: PathLike, settings: LucliSettings, cwd: PathLike
    ) -> str:
        command = self.resolver.command_for(settings, lint_arguments(file_path))
        return await self._run_tool(command, cwd)

    async def lint(
        self,
        uri: str,
        file_path: PathLike,
        settings: LucliSettings,
        cwd: PathLike,
    ) -> Optional[List[Diagnostic]]:
        """
        Executa uma passada de lint e publica o resultado.

        Returns:
            Diagnostics publicados, ou None se a passada falhou, foi
            descartada por ser antiga, ou o lint está desabilitado
        """
        if not settings.lint_enabled:
            logger.debug(f"Lint desabilitado, limpando: {uri}")
            self.forget(uri)
            self.publish(uri, [])
            return None

        sequence = self._next_sequence(uri)
        mode = "daemon" if settings.daemon_enabled else "process"
        logger.info(f"Lint ({mode}) #{sequence}: {file_path}")

        try:
            if settings.daemon_enabled:
                output = await self.run_daemon(file_path, settings, cwd)
            else:
                output = await self.run_process(file_path, settings, cwd)
            report = parse_lint_report(output)
            diagnostics = build_diagnostics(report.records)
        except (LucliError, OSError) as e:
            if not self.is_current(uri, sequence):
                logger.debug(f"Falha de passada antiga #{sequence} ignorada: {uri}")
                return None
            logger.warning(f"Lint falhou para {uri}: {e}")
            self.publish(uri, [])
            if self.notify is not None:
                self.notify(f"LuCLI lint failed: {e}")
            return None

        if not self.is_current(uri, sequence):
            logger.debug(f"Resultado da passada antiga #{sequence} descartado: {uri}")
            return None

        self.publish(uri, diagnostics)
        logger.info(
            f"Lint completo: {uri} - {len(diagnostics)} ocorrências, "
            f"{report.skipped} linhas ignoradas"
        )
        return diagnostics
