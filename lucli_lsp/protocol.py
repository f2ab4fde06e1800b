"""
protocol.py - Cliente do protocolo de linha única do daemon LuCLI

Propósito:
    Enviar uma requisição JSON ao daemon e ler o envelope de resposta.

Protocolo (TCP em loopback, uma requisição por conexão):
    Requisição: {"id": "<cliente>", "argv": ["lint", ...]} + "\\n",
                seguido de half-close do lado de escrita
    Resposta:   bytes UTF-8 até o daemon fechar a conexão; só a primeira
                linha é interpretada, como {"id"?, "exitCode", "output"}

Notas de implementação:
    - Lê até EOF mesmo usando só a primeira linha (dados extras ignorados)
    - Sem retry nesta camada
    - O writer é fechado em todos os caminhos (sucesso, erro de parse,
      erro de transporte)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from lucli_lsp.daemon import DaemonEndpoint
from lucli_lsp.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

CLIENT_ID = "lucli-lsp"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class DaemonRequest:
    """Envelope de requisição: id do cliente + argv do comando."""

    argv: tuple[str, ...]
    id: str = CLIENT_ID

    def __post_init__(self):
        object.__setattr__(self, "argv", tuple(self.argv))

    def to_dict(self) -> dict:
        return {"id": self.id, "argv": list(self.argv)}

    def to_json_line(self) -> bytes:
        return (json.dumps(self.to_dict()) + "\n").encode("utf-8")


@dataclass
class DaemonResponse:
    """Envelope de resposta do daemon."""

    exit_code: int
    output: str = ""
    id: Optional[str] = field(default=None)

    @classmethod
    def from_line(cls, line: str) -> "DaemonResponse":
        """
        Interpreta uma linha JSON como envelope de resposta.

        Raises:
            ProtocolError: JSON inválido ou campos com tipo errado
        """
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON from LuCLI daemon ({e.msg})", line) from e

        if not isinstance(payload, dict):
            raise ProtocolError("LuCLI daemon response is not an object", line)

        exit_code = payload.get("exitCode")
        output = payload.get("output", "")
        response_id = payload.get("id")
        # bool é subclasse de int
        if not isinstance(exit_code, int) or isinstance(exit_code, bool):
            raise ProtocolError("LuCLI daemon response has no integer exitCode", line)
        if output is None:
            output = ""
        if not isinstance(output, str):
            raise ProtocolError("LuCLI daemon response output is not a string", line)
        if response_id is not None and not isinstance(response_id, str):
            response_id = str(response_id)

        return cls(exit_code=exit_code, output=output, id=response_id)


def first_line(data: bytes) -> str:
    """
    Decodifica e retorna a primeira linha, delimitada só por "\n".

    U+2028, U+2029 e NEL podem aparecer crus dentro de strings JSON.
    """
    text = data.decode("utf-8", errors="replace")
    return text.split("\n", 1)[0].rstrip("\r")


async def send_request(
    endpoint: DaemonEndpoint,
    request: DaemonRequest,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> DaemonResponse:
    """
    Envia uma requisição ao daemon e aguarda a resposta completa.

    Args:
        endpoint: Endereço do daemon
        request: Envelope da requisição
        timeout: Limite em segundos para conectar e para ler até EOF
            (None = padrão do SO)

    Returns:
        DaemonResponse da primeira linha recebida

    Raises:
        TransportError: Falha de conexão, escrita, leitura ou timeout
        ProtocolError: Resposta vazia ou linha JSON inválida
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(endpoint.host, endpoint.port),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise TransportError(f"Timed out connecting to LuCLI daemon at {endpoint}") from e
    except OSError as e:
        raise TransportError(f"Cannot connect to LuCLI daemon at {endpoint}: {e}") from e

    try:
        writer.write(request.to_json_line())
        await writer.drain()
        if writer.can_write_eof():
            writer.write_eof()
        data = await asyncio.wait_for(reader.read(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(f"Timed out waiting for LuCLI daemon at {endpoint}") from e
    except OSError as e:
        raise TransportError(f"LuCLI daemon connection failed: {e}") from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    logger.debug(f"Recebidos {len(data)} bytes do daemon em {endpoint}")
    line = first_line(data)
    if not line.strip():
        raise ProtocolError("Empty response from LuCLI daemon", line)
    return DaemonResponse.from_line(line)
