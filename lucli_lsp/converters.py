"""
converters.py - Conversão da saída textual do LuCLI para Diagnostics LSP

Propósito:
    Interpretar o relatório linha-a-linha de `lucli lint format=tsc` e
    convertê-lo em tipos do protocolo LSP.
    Garante mapeamento correto de coordenadas (linhas 1-based → 0-based).

Componentes principais:
    - parse_lint_line: linha de texto → LintRecord (ou None)
    - parse_lint_report: texto completo → LintReport (registros + ignoradas)
    - convert_severity: severidade textual → DiagnosticSeverity
    - build_diagnostic: LintRecord → Diagnostic

Formato de entrada (uma ocorrência por linha):
    <arquivo>(<linha>,<col>,<linhaFim>,<colFim>): <severidade>: [ <código> ]  <mensagem>

Exemplo de uso:
    from lucli_lsp.converters import build_diagnostics, parse_lint_output

    diagnostics = build_diagnostics(parse_lint_output(output))

Notas de implementação:
    - Linhas LuCLI são 1-based; LSP é 0-based (subtrai 1 só das linhas)
    - Colunas são usadas como vieram, com mínimo 0
    - Linhas que não casam com o formato (banners, logs) são ignoradas
    - Ordem de saída = ordem de entrada, sem deduplicação
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from lsprotocol.types import (
    Diagnostic,
    DiagnosticSeverity,
    Position,
    Range,
)

logger = logging.getLogger(__name__)

DIAGNOSTIC_SOURCE = "lucli"

LINT_LINE_PATTERN = re.compile(
    r"^(?P<file>.+)\((?P<start_line>\d+),(?P<start_col>\d+),(?P<end_line>\d+),(?P<end_col>\d+)\): "
    r"(?P<severity>info|warning|error): "
    r"\[ (?P<code>[^\]]*?) \]\s*(?P<message>.*)$",
    re.IGNORECASE,
)

_SEVERITY_MAP = {
    "error": DiagnosticSeverity.Error,
    "warning": DiagnosticSeverity.Warning,
    "info": DiagnosticSeverity.Information,
}


@dataclass
class LintRecord:
    """Uma ocorrência de lint, já com linhas 0-based."""

    file_path: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    severity: DiagnosticSeverity
    code: str
    message: str


@dataclass
class LintReport:
    """Resultado do parse: registros válidos e quantas linhas foram ignoradas."""

    records: List[LintRecord] = field(default_factory=list)
    skipped: int = 0


def convert_severity(severity: str) -> DiagnosticSeverity:
    """
    Mapeia severidade textual do LuCLI para DiagnosticSeverity do LSP.

    Mapeamento:
        error   → DiagnosticSeverity.Error (1)
        warning → DiagnosticSeverity.Warning (2)
        info    → DiagnosticSeverity.Information (3)

    A comparação é exata; qualquer outro valor (inclusive "WARNING"
    em maiúsculas) cai em Error.
    """
    return _SEVERITY_MAP.get(severity, DiagnosticSeverity.Error)


def parse_lint_line(line: str) -> Optional[LintRecord]:
    """
    Interpreta uma linha do relatório.

    Returns:
        LintRecord se a linha casa com o formato completo, None caso contrário
    """
    match = LINT_LINE_PATTERN.match(line.rstrip("\r\n"))
    if not match:
        return None

    return LintRecord(
        file_path=match.group("file"),
        start_line=max(0, int(match.group("start_line")) - 1),
        start_column=max(0, int(match.group("start_col"))),
        end_line=max(0, int(match.group("end_line")) - 1),
        end_column=max(0, int(match.group("end_col"))),
        severity=convert_severity(match.group("severity")),
        code=match.group("code"),
        message=match.group("message"),
    )


def parse_lint_report(output: str) -> LintReport:
    """
    Interpreta a saída completa do LuCLI.

    Linhas em branco não contam como ignoradas; as demais linhas que não
    casam são contadas em `skipped` e registradas em debug.
    """
    report = LintReport()
    for line in output.split("\n"):
        line = line.rstrip("\r")
        record = parse_lint_line(line)
        if record is not None:
            report.records.append(record)
        elif line.strip():
            report.skipped += 1
            logger.debug(f"Linha ignorada na saída do LuCLI: {line!r}")

    if report.skipped:
        logger.debug(
            f"{len(report.records)} ocorrências, {report.skipped} linhas ignoradas"
        )
    return report


def parse_lint_output(output: str) -> List[LintRecord]:
    """Atalho para parse_lint_report(output).records."""
    return parse_lint_report(output).records


def convert_range(record: LintRecord) -> Range:
    """Converte as coordenadas (já 0-based) do registro em Range LSP."""
    return Range(
        start=Position(line=record.start_line, character=record.start_column),
        end=Position(line=record.end_line, character=record.end_column),
    )


def build_diagnostic(record: LintRecord) -> Diagnostic:
    """
    Converte um LintRecord em Diagnostic do LSP.

    Notas:
        - source="lucli", code = código da regra entre colchetes
        - Código vazio vira None (o editor não mostra "[]")
    """
    return Diagnostic(
        range=convert_range(record),
        severity=record.severity,
        code=record.code or None,
        source=DIAGNOSTIC_SOURCE,
        message=record.message,
    )


def build_diagnostics(records: Iterable[LintRecord]) -> List[Diagnostic]:
    """Converte todos os registros, preservando a ordem."""
    return [build_diagnostic(record) for record in records]
