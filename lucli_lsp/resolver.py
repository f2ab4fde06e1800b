"""
resolver.py - Resolução do executável efetivo do LuCLI

Propósito:
    Decidir qual comando executar para invocar o LuCLI.

Ordem de resolução:
    1. lucli.path configurado pelo usuário
    2. JAR mais recente em <storagePath>/bin (ordem lexicográfica)
    3. "lucli" no PATH

Notas de implementação:
    - Artefatos .jar são executados via `java -jar`
    - Resultado do scan fica memorizado por diretório até a configuração mudar
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from lucli_lsp.config import LucliSettings

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "lucli"
JAVA_EXECUTABLE = "java"


def find_newest_jar(storage_dir: Path) -> Optional[Path]:
    """Retorna o JAR de maior nome em storage_dir/bin, ou None."""
    bin_dir = storage_dir / "bin"
    if not bin_dir.is_dir():
        return None
    try:
        jars = sorted(p for p in bin_dir.iterdir() if p.suffix == ".jar")
    except OSError as e:
        logger.warning(f"Erro ao listar {bin_dir}: {e}")
        return None
    return jars[-1] if jars else None


class ToolResolver:
    """Resolve o caminho efetivo do LuCLI e monta o argv."""

    def __init__(self):
        # storagePath -> JAR mais recente (None = nenhum encontrado)
        self._jars: dict[str, Optional[Path]] = {}

    def downloaded_jar(self, settings: LucliSettings) -> Optional[Path]:
        if not settings.storage_path:
            return None

        storage_dir = Path(settings.storage_path)
        key = storage_dir.as_posix()
        if key not in self._jars:
            self._jars[key] = find_newest_jar(storage_dir)
            logger.info(f"Artefato LuCLI em {key}: {self._jars[key]}")
        return self._jars[key]

    def effective_path(self, settings: LucliSettings) -> str:
        """Caminho configurado, JAR baixado, ou "" (usar PATH)."""
        if settings.path:
            return settings.path
        jar = self.downloaded_jar(settings)
        return str(jar) if jar else ""

    def command_for(self, settings: LucliSettings, args: Sequence[str]) -> List[str]:
        """Monta o argv completo para executar o LuCLI com `args`."""
        path = self.effective_path(settings)
        if not path:
            return [DEFAULT_EXECUTABLE, *args]
        if path.lower().endswith(".jar"):
            return [JAVA_EXECUTABLE, "-jar", path, *args]
        return [path, *args]

    def invalidate(self) -> None:
        if self._jars:
            logger.info(f"Cache de artefatos limpo ({len(self._jars)} entradas)")
        self._jars.clear()
