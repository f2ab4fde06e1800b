"""
test_server.py - Testes para handlers e comandos do servidor LSP

Propósito:
    Validar que os handlers de documento disparam o lint, limpam
    diagnósticos e reagem à configuração, sem executar o LuCLI de verdade.
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from lucli_lsp.config import LucliSettings
from lucli_lsp.daemon import DaemonManager
from lucli_lsp.lint import LintOrchestrator
from lucli_lsp.resolver import ToolResolver


def _mock_server(settings=None):
    """MagicMock com os atributos usados pelos handlers."""
    ls = MagicMock()
    ls.settings = settings or LucliSettings()
    ls.open_documents = set()
    ls.workspace.folders = {}
    ls.orchestrator.lint = AsyncMock(return_value=[])
    return ls


def _doc_params(uri):
    return SimpleNamespace(text_document=SimpleNamespace(uri=uri))


class FakeServer:
    """Mock mínimo de LucliLanguageServer com orquestrador real."""

    def __init__(self, output=""):
        self.settings = LucliSettings()
        self.open_documents: set[str] = set()
        self.workspace = None
        self.published: list[tuple[str, list]] = []
        self.resolver = ToolResolver()
        self.daemon_manager = DaemonManager()
        self.commands: list[list[str]] = []

        async def run_tool(command, cwd):
            self.commands.append(list(command))
            return output

        self.orchestrator = LintOrchestrator(
            daemon_manager=self.daemon_manager,
            resolver=self.resolver,
            publish=self.publish_diagnostics,
            run_tool=run_tool,
        )

    def publish_diagnostics(self, uri, diagnostics):
        self.published.append((uri, list(diagnostics)))


# --- Conversão de URI e diretório de trabalho ---

def test_uri_to_path():
    from lucli_lsp.server import _uri_to_path

    assert _uri_to_path("file:///proj/a%20b.cfc") == Path("/proj/a b.cfc")
    assert _uri_to_path("file:///d:/proj/a.cfc") == Path("d:/proj/a.cfc")
    assert _uri_to_path("file://server/share/a.cfc") == Path("//server/share/a.cfc")
    assert _uri_to_path("/plain/path.cfc") == Path("/plain/path.cfc")
    assert _uri_to_path("untitled:Untitled-1") is None
    assert _uri_to_path("") is None
    assert _uri_to_path(None) is None


def test_uri_to_path_other_schemes():
    """Buffers não salvos e esquemas remotos não têm caminho local."""
    from lucli_lsp.server import _uri_to_path

    assert _uri_to_path("untitled:/proj/novo.cfc") is None
    assert _uri_to_path("vscode-notebook-cell:/proj/a.cfc#1") is None
    assert _uri_to_path("git:/proj/a.cfc?ref=HEAD") is None
    assert _uri_to_path("vscode-remote://ssh/proj/a.cfc") is None
    assert _uri_to_path("d:/proj/a.cfc") == Path("d:/proj/a.cfc")
    assert _uri_to_path("relative/a.cfc") == Path("relative/a.cfc")


def test_working_directory_from_workspace_folder():
    from lucli_lsp.server import _resolve_working_directory

    ls = MagicMock()
    ls.workspace.folders = {
        "file:///proj": SimpleNamespace(uri="file:///proj"),
        "file:///proj/sub": SimpleNamespace(uri="file:///proj/sub"),
        "file:///other": SimpleNamespace(uri="file:///other"),
    }

    assert _resolve_working_directory(ls, Path("/proj/sub/x/a.cfc")) == Path("/proj/sub")
    assert _resolve_working_directory(ls, Path("/proj/b.cfc")) == Path("/proj")


def test_working_directory_falls_back_to_parent():
    from lucli_lsp.server import _resolve_working_directory

    ls = MagicMock()
    ls.workspace.folders = {}
    assert _resolve_working_directory(ls, Path("/tmp/x/a.cfc")) == Path("/tmp/x")


# --- Handlers de documento ---

@pytest.mark.asyncio
async def test_did_open_lints():
    from lucli_lsp.server import did_open

    ls = _mock_server()
    await did_open(ls, _doc_params("file:///proj/a.cfc"))

    assert "file:///proj/a.cfc" in ls.open_documents
    ls.orchestrator.lint.assert_awaited_once_with(
        "file:///proj/a.cfc", Path("/proj/a.cfc"), ls.settings, Path("/proj")
    )


@pytest.mark.asyncio
async def test_did_save_lints():
    from lucli_lsp.server import did_save

    ls = _mock_server()
    await did_save(ls, _doc_params("file:///proj/a.cfc"))

    ls.orchestrator.lint.assert_awaited_once()


@pytest.mark.asyncio
async def test_non_file_uri_ignored():
    from lucli_lsp.server import did_open

    ls = _mock_server()
    await did_open(ls, _doc_params("untitled:Untitled-1"))

    ls.orchestrator.lint.assert_not_awaited()


@pytest.mark.asyncio
async def test_unexpected_error_clears():
    """Erro inesperado no lint é logado e limpa diagnósticos (sem crash)."""
    from lucli_lsp.server import lint_document

    ls = _mock_server()
    ls.orchestrator.lint = AsyncMock(side_effect=RuntimeError("boom"))

    await lint_document(ls, "file:///proj/a.cfc")

    ls.publish_diagnostics.assert_called_once_with("file:///proj/a.cfc", [])


def test_did_close_clears():
    from lucli_lsp.server import did_close

    ls = _mock_server()
    ls.open_documents.add("file:///proj/a.cfc")

    did_close(ls, _doc_params("file:///proj/a.cfc"))

    ls.publish_diagnostics.assert_called_once_with("file:///proj/a.cfc", [])
    ls.orchestrator.forget.assert_called_once_with("file:///proj/a.cfc")
    assert ls.open_documents == set()


@pytest.mark.asyncio
async def test_end_to_end_publish():
    """Saída do LuCLI chega como Diagnostics publicados no documento."""
    from lucli_lsp.server import did_open

    ls = FakeServer(output="/proj/a.cfc(3,2,3,10): error: [ BAD_TAG ]  Unexpected tag\n")
    await did_open(ls, _doc_params("file:///proj/a.cfc"))

    assert ls.commands == [["lucli", "lint", "file=/proj/a.cfc", "format=tsc"]]
    uri, diagnostics = ls.published[0]
    assert uri == "file:///proj/a.cfc"
    assert diagnostics[0].code == "BAD_TAG"
    assert diagnostics[0].range.start.line == 2


# --- Configuração ---

@pytest.mark.asyncio
async def test_configuration_disable_clears_open_documents():
    from lucli_lsp.server import did_change_configuration

    ls = _mock_server()
    ls.open_documents = {"file:///a.cfc", "file:///b.cfc"}

    await did_change_configuration(
        ls, SimpleNamespace(settings={"lucli": {"lint": {"enabled": False}}})
    )

    assert ls.settings.lint_enabled is False
    cleared = {call.args[0] for call in ls.publish_diagnostics.call_args_list}
    assert cleared == {"file:///a.cfc", "file:///b.cfc"}
    ls.orchestrator.lint.assert_not_awaited()


@pytest.mark.asyncio
async def test_configuration_change_relints():
    from lucli_lsp.server import did_change_configuration

    ls = _mock_server()
    ls.open_documents = {"file:///proj/a.cfc"}

    await did_change_configuration(
        ls, SimpleNamespace(settings={"lucli": {"path": "/opt/lucli"}})
    )

    ls.resolver.invalidate.assert_called_once()
    ls.orchestrator.lint.assert_awaited_once()
    assert ls.orchestrator.lint.await_args.args[2].path == "/opt/lucli"


@pytest.mark.asyncio
async def test_configuration_unchanged_does_not_relint():
    from lucli_lsp.server import did_change_configuration

    ls = _mock_server()
    ls.open_documents = {"file:///proj/a.cfc"}

    await did_change_configuration(ls, SimpleNamespace(settings={"lucli": {}}))

    ls.orchestrator.lint.assert_not_awaited()


@pytest.mark.asyncio
async def test_configuration_daemon_disabled_stops_daemon():
    from lucli_lsp.server import did_change_configuration

    ls = _mock_server(LucliSettings(daemon_enabled=True))

    await did_change_configuration(
        ls, SimpleNamespace(settings={"lucli": {"daemon": {"enabled": False}}})
    )

    ls.daemon_manager.shutdown.assert_called_once()


@pytest.mark.asyncio
async def test_configuration_error_does_not_crash():
    from lucli_lsp.server import did_change_configuration

    ls = _mock_server()
    ls.resolver.invalidate.side_effect = RuntimeError("boom")

    await did_change_configuration(ls, SimpleNamespace(settings={}))  # Não deve lançar exceção


def test_shutdown_stops_daemon():
    from lucli_lsp.server import shutdown

    ls = _mock_server()
    shutdown(ls, None)
    ls.daemon_manager.shutdown.assert_called_once()


# --- Comandos ---

@pytest.mark.asyncio
async def test_cmd_lint():
    from lucli_lsp.server import cmd_lint

    ls = FakeServer(output="/proj/a.cfc(1,1,1,2): warning: [ W ]  w\n")
    result = await cmd_lint(ls, [{"uri": "file:///proj/a.cfc"}])

    assert result == {"success": True, "count": 1}


@pytest.mark.asyncio
async def test_cmd_lint_without_uri():
    from lucli_lsp.server import cmd_lint

    result = await cmd_lint(FakeServer(), [])
    assert result["success"] is False


def test_cmd_stop_daemon():
    from lucli_lsp.server import cmd_stop_daemon

    ls = FakeServer()
    result = cmd_stop_daemon(ls, [])

    assert result["success"] is True
    assert result["daemon"]["state"] == "absent"


def test_debug_status():
    from lucli_lsp.server import debug_status

    ls = FakeServer()
    ls.settings = LucliSettings(daemon_enabled=True, path="/opt/lucli.jar")
    ls.open_documents = {"file:///a.cfc"}

    result = debug_status(ls, {})

    assert result["success"] is True
    status = result["status"]
    assert status["daemon_enabled"] is True
    assert status["daemon_port"] == 10000
    assert status["open_documents"] == 1
    assert status["command"] == ["java", "-jar", "/opt/lucli.jar"]
    assert status["daemon"]["spawn_count"] == 0
