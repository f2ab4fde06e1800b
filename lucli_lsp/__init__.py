"""
lucli_lsp - Language Server de lint para o LuCLI

Propósito:
    Servidor LSP que publica os diagnósticos do `lucli lint` para arquivos
    CFML no VSCode e outros editores compatíveis com LSP.

Componentes principais:
    - server: Servidor principal usando pygls
    - lint: Orquestração modo subprocesso / modo daemon
    - daemon: Ciclo de vida do daemon LuCLI (spawn + polling da porta)
    - protocol: Cliente JSON de linha única para o daemon
    - converters: Saída textual do LuCLI → LSP Diagnostic

Dependências críticas:
    - pygls: Framework LSP
    - lsprotocol: Tipos do protocolo

Exemplo de uso:
    lucli-lsp

Notas de implementação:
    - Comunica via STDIO com o cliente do editor
    - Daemon em 127.0.0.1, porta configurável (padrão 10000)
"""
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
import re


def _read_version_from_pyproject() -> str:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:
        return "0.0.0"
    match = re.search(r'(?m)^version = "([^"]+)"\s*$', text)
    return match.group(1) if match else "0.0.0"


try:
    __version__ = _pkg_version("lucli-lsp")
except PackageNotFoundError:
    __version__ = _read_version_from_pyproject()

__all__ = ["server", "lint", "daemon", "protocol", "converters"]
