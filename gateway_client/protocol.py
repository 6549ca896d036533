# =============================================================================
# Gateway Client -- Wire Protocol Codec
# =============================================================================
#
# Envelope format (both directions):
#   {"op": int, "d": any, "s": int|null, "t": str|null,
#    "code": int (error frames), "message": str (error frames)}
#
# Outgoing envelopes only carry "op" and "d".
# =============================================================================

from __future__ import annotations

import json
from typing import Any

from ._logging import logger
from .types import GatewayEnvelope

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


class EnvelopeCodec:
    """Encode and decode gateway envelopes as JSON text frames.

    Decoding never raises: frames that are not JSON objects or lack an
    integer ``op`` are logged and reported as ``None`` so the read
    loop can skip them.
    """

    def encode(self, opcode: int, data: Any = None) -> str:
        """Encode an outgoing ``{op, d}`` envelope."""
        return _json_dumps({"op": int(opcode), "d": data})

    def encode_envelope(self, envelope: GatewayEnvelope) -> str:
        """Encode every populated field of *envelope*."""
        message: dict[str, Any] = {"op": int(envelope.opcode), "d": envelope.data}
        if envelope.sequence is not None:
            message["s"] = envelope.sequence
        if envelope.event_name is not None:
            message["t"] = envelope.event_name
        if envelope.error_code is not None:
            message["code"] = envelope.error_code
        if envelope.message is not None:
            message["message"] = envelope.message
        return _json_dumps(message)

    def decode(self, data: str | bytes) -> GatewayEnvelope | None:
        """Decode an incoming frame."""
        try:
            parsed = _json_loads(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug("Failed to parse frame as JSON: %s", e)
            return None

        return self._parsed_to_envelope(parsed)

    def _parsed_to_envelope(self, parsed: Any) -> GatewayEnvelope | None:
        if not isinstance(parsed, dict):
            logger.debug("Frame is not a JSON object, dropping")
            return None

        op = parsed.get("op")
        if not isinstance(op, int) or isinstance(op, bool):
            logger.debug("Frame has no integer opcode, dropping: %r", op)
            return None

        seq = parsed.get("s")
        event = parsed.get("t")
        code = parsed.get("code")
        message = parsed.get("message")

        return GatewayEnvelope(
            opcode=op,
            data=parsed.get("d"),
            sequence=_int_or_none(seq),
            event_name=event if isinstance(event, str) else None,
            error_code=_int_or_none(code),
            message=message if isinstance(message, str) else None,
        )


def _int_or_none(value: Any) -> int | None:
    # JSON true/false decode to bool, which is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value
