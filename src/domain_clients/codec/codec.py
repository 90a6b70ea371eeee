"""ProtoCodec — encode/decode package messages to the chain wire format.

The codec is a registration table: each package dataclass is bound to a
generated protobuf class and a pair of converter functions. Callers only
ever see dataclasses, ``bytes`` and type URL strings.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from google.protobuf.message import DecodeError, Message

from domain_clients.codec.messages import ProtoMessage
from domain_clients.errors.tx_errors import EncodingError

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True)
class _Binding:
    type_url: str
    py_type: type
    pb_type: type[Message]
    to_proto: Callable[[Any], Message]
    from_proto: Callable[[Any], Any]


class ProtoCodec:
    """Registry-backed protobuf codec.

    Usage::

        codec = default_codec()
        data = codec.encode(MsgSend(...))
        msg = codec.decode("/cosmos.bank.v1beta1.MsgSend", data)
    """

    def __init__(self) -> None:
        self._by_type: dict[type, _Binding] = {}
        self._by_url: dict[str, _Binding] = {}

    def register(
        self,
        py_type: type,
        pb_type: type[Message],
        *,
        to_proto: Callable[[Any], Message],
        from_proto: Callable[[Any], Any],
        type_url: str | None = None,
    ) -> None:
        """Bind ``py_type`` to a generated protobuf class.

        Args:
            py_type: Package dataclass.
            pb_type: Generated protobuf message class.
            to_proto: Converts an instance of ``py_type`` into ``pb_type``.
            from_proto: Converts a ``pb_type`` instance back.
            type_url: Override; defaults to ``/<proto full name>``.

        Raises:
            ValueError: If either the type or the URL is already registered.
        """
        url = type_url or f"/{pb_type.DESCRIPTOR.full_name}"
        if py_type in self._by_type or url in self._by_url:
            msg = f"Message type already registered: {url}"
            raise ValueError(msg)
        binding = _Binding(url, py_type, pb_type, to_proto, from_proto)
        self._by_type[py_type] = binding
        self._by_url[url] = binding

    def supports(self, type_url: str) -> bool:
        return type_url in self._by_url

    @property
    def type_urls(self) -> list[str]:
        return sorted(self._by_url)

    def type_url_of(self, message: object) -> str:
        return self._binding_for(message).type_url

    def type_url_for(self, py_type: type) -> str:
        binding = self._by_type.get(py_type)
        if binding is None:
            msg = f"Unregistered message type: {py_type.__name__}"
            raise EncodingError(msg)
        return binding.type_url

    # ------------------------------------------------------------------
    # Encode / decode
    # ------------------------------------------------------------------

    def encode(self, message: object) -> bytes:
        """Serialise a registered message deterministically.

        Raises:
            EncodingError: Unregistered type or a field value the wire
                format cannot hold.
        """
        binding = self._binding_for(message)
        try:
            pb = binding.to_proto(message)
            return pb.SerializeToString(deterministic=True)
        except (TypeError, ValueError, AttributeError) as exc:
            msg = f"Cannot encode {type(message).__name__}: {exc}"
            raise EncodingError(msg, type_url=binding.type_url) from exc

    def pack(self, message: object) -> ProtoMessage:
        """Encode and tag with the type URL."""
        return ProtoMessage(type_url=self.type_url_of(message), value=self.encode(message))

    def decode(self, type_url: str, data: bytes) -> Any:
        """Parse bytes of the given type URL into its package dataclass.

        Raises:
            EncodingError: Unknown type URL or malformed bytes.
        """
        binding = self._by_url.get(type_url)
        if binding is None:
            msg = f"Unknown type URL: {type_url}"
            raise EncodingError(msg, type_url=type_url)
        pb = binding.pb_type()
        try:
            pb.ParseFromString(data)
            return binding.from_proto(pb)
        except (DecodeError, TypeError, ValueError) as exc:
            msg = f"Malformed {type_url} payload: {exc}"
            raise EncodingError(msg, type_url=type_url) from exc

    def unpack(self, packed: ProtoMessage) -> Any:
        return self.decode(packed.type_url, packed.value)

    def _binding_for(self, message: object) -> _Binding:
        binding = self._by_type.get(type(message))
        if binding is None:
            msg = f"Unregistered message type: {type(message).__name__}"
            raise EncodingError(msg)
        return binding


@functools.lru_cache(maxsize=1)
def default_codec() -> ProtoCodec:
    """Return the process-wide codec with all built-in messages registered."""
    from domain_clients.codec.bindings import register_defaults

    codec = ProtoCodec()
    register_defaults(codec)
    return codec
