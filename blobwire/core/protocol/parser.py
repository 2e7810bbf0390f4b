"""
Validating parse and encode for channel frames.

Parsing is total: every input yields a ``ParseResult`` holding either a
validated message or a ``ProtocolValidationError``. Nothing here raises for
bad input.
"""
import json
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..exceptions import ProtocolValidationError
from .messages import ClientMessage, ServerMessage, CLIENT_MESSAGE_TYPES, SERVER_MESSAGE_TYPES


_CLIENT_ADAPTER = TypeAdapter(ClientMessage)
_SERVER_ADAPTER = TypeAdapter(ServerMessage)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one frame."""
    message: Optional[BaseModel] = None
    error: Optional[ProtocolValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, reason: str, message: str, raw: Any, **kwargs) -> 'ParseResult':
        return cls(error=ProtocolValidationError(reason, message, raw=raw, **kwargs))


def parse_server_frame(raw: Union[str, bytes, dict, BaseModel]) -> ParseResult:
    """Parse a frame received from the server."""
    return _parse(raw, _SERVER_ADAPTER, SERVER_MESSAGE_TYPES)


def parse_client_frame(raw: Union[str, bytes, dict, BaseModel]) -> ParseResult:
    """Parse (or re-validate) a frame the client is about to send."""
    return _parse(raw, _CLIENT_ADAPTER, CLIENT_MESSAGE_TYPES)


def _parse(raw: Any, adapter: TypeAdapter, known_types: FrozenSet[str]) -> ParseResult:
    if isinstance(raw, BaseModel):
        # already-built models are checked for direction, not re-serialized
        payload = raw
        message_type = getattr(raw, 'type', None)
    else:
        try:
            payload = _decode(raw)
        except (ValueError, RecursionError) as e:
            return ParseResult.failure('invalid_json', f"Frame is not valid JSON: {e}", raw)

        if not isinstance(payload, dict):
            return ParseResult.failure(
                'not_an_object', f"Frame must be a JSON object, got {type(payload).__name__}", raw
            )
        message_type = payload.get('type')

    if not isinstance(message_type, str) or message_type not in known_types:
        return ParseResult.failure(
            'unknown_type',
            f"Unknown message type: {message_type!r}",
            raw,
            message_type=message_type if isinstance(message_type, str) else None
        )

    try:
        message = adapter.validate_python(payload)
    except ValidationError as e:
        details = [
            {'loc': list(err.get('loc', ())), 'msg': err.get('msg'), 'type': err.get('type')}
            for err in e.errors()
        ]
        summary = '; '.join(
            f"{'.'.join(str(p) for p in d['loc']) or '<root>'}: {d['msg']}" for d in details
        )
        return ParseResult.failure(
            'schema',
            f"Invalid {message_type} message: {summary}",
            raw,
            message_type=message_type,
            details=details
        )

    return ParseResult(message=message)


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode('utf-8')
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def encode(message: BaseModel) -> str:
    """Serialize a validated message to JSON text."""
    return json.dumps(message.model_dump(mode='json', exclude_none=True), separators=(',', ':'))
