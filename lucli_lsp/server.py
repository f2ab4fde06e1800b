"""
server.py - Servidor LSP de lint LuCLI usando pygls

Propósito:
    Servidor Language Server Protocol que publica os diagnósticos do
    `lucli lint` para arquivos CFML (.cfc, .cfm, .cfs) em editores compatíveis.

Componentes principais:
    - LucliLanguageServer: Servidor principal com pygls
    - lint_document: Executa o lint de um documento e publica diagnósticos
    - Event handlers: did_open, did_save, did_close, configuração, shutdown

Dependências críticas:
    - pygls: Framework LSP
    - lucli_lsp.lint: Orquestração subprocesso/daemon
    - lucli_lsp.converters: Conversão da saída textual

Exemplo de uso:
    lucli-lsp

Notas de implementação:
    - Comunica via STDIO (entrada/saída padrão)
    - Lint em did_open e did_save (o LuCLI lê o arquivo do disco)
    - Um único daemon por sessão, encerrado no shutdown
    - Tratamento robusto de exceções (nunca crasha)
    - Lint pode ser desabilitado via lucli.lint.enabled
"""

from __future__ import annotations

import logging
import sys
from importlib import metadata
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from lsprotocol.types import (
    SHUTDOWN,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    DidChangeConfigurationParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    DidSaveTextDocumentParams,
    MessageType,
)
from pygls.server import LanguageServer

from lucli_lsp import __version__
from lucli_lsp.config import LucliSettings
from lucli_lsp.daemon import DaemonManager
from lucli_lsp.lint import LintOrchestrator
from lucli_lsp.resolver import ToolResolver

# Configuração de logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
_startup_logged = False


class LucliLanguageServer(LanguageServer):
    """
    Servidor LSP especializado para o LuCLI.

    Attributes:
        settings: Configuração atual (seção `lucli` do editor)
        open_documents: URIs abertos, revalidados quando o lint é reativado
        resolver: Resolve o executável efetivo (config → JAR baixado → PATH)
        daemon_manager: Dono do processo daemon da sessão
        orchestrator: Executa passadas de lint e publica diagnósticos
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.settings: LucliSettings = LucliSettings()
        self.open_documents: set[str] = set()
        self.resolver: ToolResolver = ToolResolver()
        self.daemon_manager: DaemonManager = DaemonManager()
        self.orchestrator: LintOrchestrator = LintOrchestrator(
            daemon_manager=self.daemon_manager,
            resolver=self.resolver,
            publish=self.publish_diagnostics,
            notify=self._notify_error,
        )

    def _notify_error(self, message: str) -> None:
        self.show_message(message, MessageType.Error)


# Instância global do servidor
server = LucliLanguageServer("lucli-lsp", f"v{__version__}")


def _uri_to_path(uri) -> Optional[Path]:
    """
    Converte file URI (ou caminho) em Path.

    Mantém o caminho sem resolve() para evitar dependência do filesystem.
    """
    if not uri or not isinstance(uri, str):
        return None

    if not uri.startswith("file://"):
        scheme = urlparse(uri).scheme
        # Windows drive: d:/path ou d:\path chega com scheme "d"
        if scheme and len(scheme) > 1:
            return None
        return Path(uri)

    parsed = urlparse(uri)
    path_str = unquote(parsed.path or "")

    # UNC paths: file://server/share/path -> //server/share/path
    if parsed.netloc:
        path_str = f"//{parsed.netloc}{path_str}"

    # Windows drive: /d:/path -> d:/path
    if len(path_str) >= 3 and path_str[0] == "/" and path_str[2] == ":":
        path_str = path_str[1:]

    return Path(path_str)


def _resolve_working_directory(ls: LucliLanguageServer, file_path: Path) -> Path:
    """
    Diretório de trabalho da invocação.

    Usa a pasta de workspace que contém o arquivo; senão, o diretório do arquivo.
    """
    workspace = getattr(ls, "workspace", None)
    folders = getattr(workspace, "folders", None) if workspace else None
    if folders:
        candidates = []
        for folder in folders.values():
            folder_path = _uri_to_path(getattr(folder, "uri", None))
            if folder_path is None:
                continue
            try:
                file_path.relative_to(folder_path)
            except ValueError:
                continue
            candidates.append(folder_path)
        if candidates:
            # Pasta mais interna vence em workspaces aninhados
            return max(candidates, key=lambda p: len(p.parts))

    return file_path.parent


async def lint_document(ls: LucliLanguageServer, uri: str) -> None:
    """
    Executa o lint de um documento e publica diagnósticos.

    Args:
        ls: Instância do servidor
        uri: URI do documento

    Fluxo:
        1. Converte URI em caminho no disco (só file://)
        2. Resolve diretório de trabalho
        3. Delega ao LintOrchestrator (modo daemon ou subprocesso)

    Tratamento de Erros:
        - Erros esperados (LuCLI, socket, protocolo) são tratados no
          orquestrador: limpa diagnósticos e mostra mensagem
        - Erros inesperados são logados e também limpam os diagnósticos
    """
    file_path = _uri_to_path(uri)
    if file_path is None:
        logger.debug(f"URI sem caminho local, ignorando: {uri}")
        return

    try:
        cwd = _resolve_working_directory(ls, file_path)
        await ls.orchestrator.lint(uri, file_path, ls.settings, cwd)
    except Exception as e:
        logger.error(f"Erro ao executar lint de {uri}: {e}", exc_info=True)
        ls.publish_diagnostics(uri, [])


@server.feature(TEXT_DOCUMENT_DID_OPEN)
async def did_open(ls: LucliLanguageServer, params: DidOpenTextDocumentParams) -> None:
    """Executa o lint quando o usuário abre um arquivo."""
    uri = params.text_document.uri
    logger.info(f"Documento aberto: {uri}")
    ls.open_documents.add(uri)
    await lint_document(ls, uri)


@server.feature(TEXT_DOCUMENT_DID_SAVE)
async def did_save(ls: LucliLanguageServer, params: DidSaveTextDocumentParams) -> None:
    """
    Handler para salvamento de documento.

    O LuCLI lê o arquivo do disco, então o lint só é refeito no save
    (não em didChange).
    """
    uri = params.text_document.uri
    logger.info(f"Documento salvo: {uri}")
    ls.open_documents.add(uri)
    await lint_document(ls, uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: LucliLanguageServer, params: DidCloseTextDocumentParams) -> None:
    """
    Handler para fechamento de documento.

    Limpa diagnósticos e remove documento do rastreamento.
    """
    uri = params.text_document.uri
    logger.info(f"Documento fechado: {uri}")

    ls.orchestrator.forget(uri)
    ls.open_documents.discard(uri)
    ls.publish_diagnostics(uri, [])


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION)
async def did_change_configuration(
    ls: LucliLanguageServer, params: DidChangeConfigurationParams
) -> None:
    """
    Handler para mudanças na configuração do workspace.

    Nota: A configuração vem diretamente no params.settings quando o cliente
    sincroniza via configurationSection: 'lucli' no LanguageClientOptions.
    """
    try:
        old_settings = ls.settings
        ls.settings = LucliSettings.from_settings(params.settings)
        ls.resolver.invalidate()

        logger.info(
            f"Configuração atualizada: lint.enabled = {ls.settings.lint_enabled}, "
            f"daemon.enabled = {ls.settings.daemon_enabled}, "
            f"daemon.port = {ls.settings.daemon_port}"
        )

        # Daemon próprio em porta antiga ou modo daemon desligado
        if old_settings.daemon_enabled and (
            not ls.settings.daemon_enabled
            or old_settings.daemon_port != ls.settings.daemon_port
        ):
            ls.daemon_manager.shutdown()

        if not ls.settings.lint_enabled:
            if old_settings.lint_enabled:
                logger.info("Lint desativado, limpando diagnósticos")
            for doc_uri in list(ls.open_documents):
                ls.orchestrator.forget(doc_uri)
                ls.publish_diagnostics(doc_uri, [])
        elif old_settings != ls.settings:
            logger.info("Configuração mudou, refazendo lint dos documentos abertos")
            for doc_uri in list(ls.open_documents):
                await lint_document(ls, doc_uri)

    except Exception as e:
        logger.error(f"Erro ao processar mudança de configuração: {e}", exc_info=True)


@server.feature(SHUTDOWN)
def shutdown(ls: LucliLanguageServer, *args) -> None:
    """Encerra o daemon iniciado pela sessão (erros ignorados)."""
    logger.info("Shutdown solicitado, encerrando daemon")
    ls.daemon_manager.shutdown()


def _first_param(params, key: str):
    """Extrai `key` de params dict ou de uma lista com dict/str."""
    if isinstance(params, dict):
        return params.get(key)
    if isinstance(params, (list, tuple)) and len(params) > 0:
        first = params[0]
        if isinstance(first, dict):
            return first.get(key)
        if isinstance(first, str):
            return first
    return None


@server.command("lucli/lint")
async def cmd_lint(ls: LucliLanguageServer, params) -> dict:
    """Executa o lint do documento indicado e retorna a contagem."""
    uri = _first_param(params, "uri")
    if not uri:
        return {"success": False, "error": "URI não informado"}

    file_path = _uri_to_path(uri)
    if file_path is None:
        return {"success": False, "error": f"URI inválido: {uri}"}

    try:
        cwd = _resolve_working_directory(ls, file_path)
        diagnostics = await ls.orchestrator.lint(uri, file_path, ls.settings, cwd)
    except Exception as e:
        logger.error(f"lucli/lint falhou: {e}", exc_info=True)
        ls.publish_diagnostics(uri, [])
        return {"success": False, "error": str(e)}

    if diagnostics is None:
        return {"success": False, "error": "Lint não produziu resultado"}
    return {"success": True, "count": len(diagnostics)}


@server.command("lucli/stopDaemon")
def cmd_stop_daemon(ls: LucliLanguageServer, params) -> dict:
    """Encerra o daemon iniciado por esta sessão."""
    ls.daemon_manager.shutdown()
    return {"success": True, "daemon": ls.daemon_manager.status()}


@server.command("lucli/debug/status")
def debug_status(ls: LucliLanguageServer, params) -> dict:
    """
    Debug command to check lint configuration and daemon status.

    Returns dict with settings, the effective LuCLI command and daemon state.
    """
    settings = ls.settings
    status = {
        "lint_enabled": settings.lint_enabled,
        "daemon_enabled": settings.daemon_enabled,
        "daemon_port": settings.daemon_port,
        "open_documents": len(ls.open_documents),
    }
    try:
        status["effective_path"] = ls.resolver.effective_path(settings)
        status["command"] = ls.resolver.command_for(settings, [])
        status["daemon"] = ls.daemon_manager.status()
    except Exception as e:
        status["error"] = str(e)
    return {"success": True, "status": status}


def main() -> None:
    """
    Ponto de entrada principal do servidor.

    Inicia servidor LSP em modo STDIO para comunicação com o editor.
    """
    global _startup_logged
    logger.info("Iniciando LuCLI Language Server...")
    if not _startup_logged:
        _startup_logged = True
        logger.info("Python executable: %s", sys.executable)
        try:
            logger.info("lucli-lsp package: %s", metadata.version("lucli-lsp"))
        except metadata.PackageNotFoundError:
            logger.info("lucli-lsp package: %s (não instalado)", __version__)
    server.start_io()


if __name__ == "__main__":
    main()
