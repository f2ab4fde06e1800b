"""
test_process.py - Testes para a invocação do LuCLI como subprocesso

Propósito:
    Validar saída combinada, tratamento de exit code e erros de spawn
    usando o próprio interpretador Python como ferramenta falsa.
"""

from __future__ import annotations

import sys

import pytest

from lucli_lsp.errors import ToolInvocationError
from lucli_lsp.process import run_tool


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.asyncio
async def test_success_output():
    output = await run_tool(_python("print('/a.cfc(1,1,1,2): error: [ X ]  bad')"))
    assert output.strip() == "/a.cfc(1,1,1,2): error: [ X ]  bad"


@pytest.mark.asyncio
async def test_nonzero_exit_with_findings_is_success():
    """Exit != 0 com stdout é resultado de lint, não erro."""
    code = "import sys; print('finding'); sys.stderr.write('warn\\n'); sys.exit(1)"
    output = await run_tool(_python(code))
    assert output == "finding\nwarn\n"


@pytest.mark.asyncio
async def test_nonzero_exit_stderr_only_fails():
    """Exit 2, stdout vazio, stderr preenchido → erro com o texto do stderr."""
    code = "import sys; sys.stderr.write('Unknown command: lint'); sys.exit(2)"
    with pytest.raises(ToolInvocationError) as excinfo:
        await run_tool(_python(code))
    assert str(excinfo.value) == "Unknown command: lint"


@pytest.mark.asyncio
async def test_nonzero_exit_without_output():
    """Exit != 0 sem nenhuma saída devolve texto vazio (zero ocorrências)."""
    output = await run_tool(_python("import sys; sys.exit(3)"))
    assert output == ""


@pytest.mark.asyncio
async def test_zero_exit_stderr_only_is_success():
    output = await run_tool(_python("import sys; sys.stderr.write('note')"))
    assert output == "note"


@pytest.mark.asyncio
async def test_cwd(tmp_path):
    output = await run_tool(_python("import os; print(os.getcwd())"), cwd=tmp_path)
    assert output.strip() == str(tmp_path.resolve()) or output.strip() == str(tmp_path)


@pytest.mark.asyncio
async def test_missing_executable(tmp_path):
    with pytest.raises(ToolInvocationError) as excinfo:
        await run_tool([str(tmp_path / "no-such-lucli"), "lint"])
    assert "not found" in str(excinfo.value)


@pytest.mark.asyncio
async def test_empty_command():
    with pytest.raises(ToolInvocationError):
        await run_tool([])
