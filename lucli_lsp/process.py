"""
process.py - Invocação do LuCLI como subprocesso único

Propósito:
    Executar `lucli lint ...` (ou `java -jar lucli.jar lint ...`) uma vez por
    chamada e devolver stdout + stderr combinados.

Notas de implementação:
    - O LuCLI sinaliza achados de lint pelo exit code, então exit != 0 com
      saída é sucesso
    - Exit != 0 com stdout vazio e stderr preenchido é erro de invocação
    - Nenhum processo é reutilizado entre chamadas
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

from lucli_lsp.errors import ToolInvocationError

logger = logging.getLogger(__name__)


async def run_tool(
    command: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
) -> str:
    """
    Executa o comando e retorna a saída combinada.

    Args:
        command: argv completo (executável + argumentos)
        cwd: Diretório de trabalho do processo

    Returns:
        stdout seguido de stderr, decodificados como UTF-8

    Raises:
        ToolInvocationError: Executável não encontrado, falha de spawn, ou
            exit code != 0 com stdout vazio e stderr não vazio
    """
    if not command:
        raise ToolInvocationError("Empty LuCLI command")

    logger.debug(f"Executando: {' '.join(command)} (cwd={cwd})")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
        stdout_bytes, stderr_bytes = await process.communicate()
    except FileNotFoundError as e:
        raise ToolInvocationError(f"LuCLI executable not found: {e}") from e
    except OSError as e:
        raise ToolInvocationError(f"Failed to run LuCLI: {e}") from e

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")

    if process.returncode != 0 and not stdout and stderr:
        logger.warning(f"LuCLI saiu com código {process.returncode}: {stderr.strip()}")
        raise ToolInvocationError(stderr)

    logger.debug(
        f"LuCLI terminou com código {process.returncode} "
        f"({len(stdout)} bytes stdout, {len(stderr)} bytes stderr)"
    )
    return stdout + stderr
