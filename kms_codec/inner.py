"""
Inner codecs.

The envelope codec hands plaintext serialization to one of a closed set of
inner codecs, selected by name at registration:

- plain: the event's ``message`` as-is; decoding yields one event
- line: one message per line; empty lines are events, newlines in a
  message are rejected
- json: one JSON document; an array decodes to one event per element
- json_lines: one JSON object per line
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Mapping, Type

from .errors import ConfigurationError, SerializationError

Event = Dict[str, Any]

MESSAGE_FIELD = "message"


class InnerCodec(ABC):
    """Serializes events to bytes and parses text back into events."""

    name: str = ""

    def __init__(self, charset: str = "utf-8") -> None:
        self.charset = charset

    @abstractmethod
    def encode(self, event: Mapping[str, Any]) -> bytes:
        """Serialize a single event."""
        ...

    @abstractmethod
    def decode(self, text: str) -> Iterator[Event]:
        """Parse text into zero or more events."""
        ...

    def _to_bytes(self, text: str) -> bytes:
        try:
            return text.encode(self.charset)
        except UnicodeEncodeError as e:
            raise SerializationError(f"Cannot encode event as {self.charset}: {e}")

    @staticmethod
    def _message(event: Mapping[str, Any]) -> str:
        try:
            message = event[MESSAGE_FIELD]
        except KeyError:
            raise SerializationError(f"Event has no '{MESSAGE_FIELD}' field")
        return message if isinstance(message, str) else str(message)


class PlainCodec(InnerCodec):
    name = "plain"

    def encode(self, event: Mapping[str, Any]) -> bytes:
        return self._to_bytes(self._message(event))

    def decode(self, text: str) -> Iterator[Event]:
        yield {MESSAGE_FIELD: text}


class LineCodec(InnerCodec):
    name = "line"
    delimiter = "\n"

    def encode(self, event: Mapping[str, Any]) -> bytes:
        message = self._message(event)
        if self.delimiter in message:
            raise SerializationError("Line codec messages cannot contain a newline")
        return self._to_bytes(message + self.delimiter)

    def decode(self, text: str) -> Iterator[Event]:
        lines = text.split(self.delimiter)
        # A terminated last line leaves an empty segment behind it
        if lines[-1] == "":
            lines.pop()
        for line in lines:
            yield {MESSAGE_FIELD: line.rstrip("\r")}


class JsonCodec(InnerCodec):
    name = "json"

    def encode(self, event: Mapping[str, Any]) -> bytes:
        try:
            text = json.dumps(dict(event), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Event is not JSON serializable: {e}")
        return self._to_bytes(text)

    @staticmethod
    def _parse(text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError as e:
            raise SerializationError(f"Invalid JSON payload: {e}")

    @staticmethod
    def _as_event(value: Any) -> Event:
        if not isinstance(value, dict):
            raise SerializationError(
                f"JSON payload must be an object, got {type(value).__name__}"
            )
        return value

    def decode(self, text: str) -> Iterator[Event]:
        document = self._parse(text)
        if isinstance(document, list):
            for item in document:
                yield self._as_event(item)
        else:
            yield self._as_event(document)


class JsonLinesCodec(JsonCodec):
    name = "json_lines"
    delimiter = "\n"

    def encode(self, event: Mapping[str, Any]) -> bytes:
        return super().encode(event) + self._to_bytes(self.delimiter)

    def decode(self, text: str) -> Iterator[Event]:
        for line in text.split(self.delimiter):
            if line.strip():
                yield self._as_event(self._parse(line))


INNER_CODECS: Dict[str, Type[InnerCodec]] = {
    codec.name: codec for codec in (PlainCodec, LineCodec, JsonCodec, JsonLinesCodec)
}


def create_inner_codec(name: str, charset: str = "utf-8") -> InnerCodec:
    """
    Instantiate an inner codec by name.

    Raises:
        ConfigurationError: If the name is not a known codec
    """
    try:
        codec_class = INNER_CODECS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown inner codec '{name}', expected one of: {', '.join(sorted(INNER_CODECS))}"
        )
    return codec_class(charset=charset)
