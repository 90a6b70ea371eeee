"""Transaction lifecycle error taxonomy.

Fatal errors propagate out of :class:`TxLifecycleManager` immediately;
``NetworkError`` is absorbed by the retry policy until the attempt budget
is spent, then surfaces as ``NetworkExhausted``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from domain_clients.errors.client_errors import ClientError

if TYPE_CHECKING:
    from domain_clients.chain.models import RejectionKind


class BuildError(ClientError):
    """Malformed intent or a simulation rejected it."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="build-error", **context)


class EncodingError(ClientError):
    """Codec mismatch — unknown type URL or malformed bytes."""

    def __init__(self, message: str, *, type_url: str = "", **context: Any) -> None:
        super().__init__(message, code="encoding-error", **context)
        self.type_url = type_url


class SequenceConflict(ClientError):
    """The chain rejected the transaction's sequence / nonce."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="sequence-conflict", **context)


class InsufficientFunds(ClientError):
    """Account cannot cover the amount plus fees. Message is the node's text."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="insufficient-funds", **context)


class NetworkError(ClientError):
    """Transient transport failure (timeout, node unavailable, mempool full)."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="network-error", **context)


class NetworkExhausted(NetworkError):
    """Transient failures persisted until the attempt budget or the deadline ran out.

    ``deadline_expired`` is set when the intent deadline stopped the retries
    before ``max_attempts`` was reached.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        deadline_expired: bool = False,
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.code = "network-exhausted"
        self.attempts = attempts
        self.deadline_expired = deadline_expired


class BroadcastRejected(ClientError):
    """Chain-level rejection at broadcast time (e.g. invalid signature)."""

    def __init__(
        self,
        message: str,
        *,
        rejection: RejectionKind | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, code="broadcast-rejected", **context)
        self.rejection = rejection


class ConfirmationTimeout(ClientError):
    """No terminal status within the confirmation deadline.

    The transaction may still be included later; re-query by ``tx_hash``.
    """

    def __init__(self, message: str, *, tx_hash: str = "", **context: Any) -> None:
        super().__init__(message, code="confirmation-timeout", **context)
        self.tx_hash = tx_hash


class TransactionFailed(ClientError):
    """Transaction was included with a non-zero result code, or dropped."""

    def __init__(
        self,
        message: str,
        *,
        tx_hash: str = "",
        result_code: int | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, code="transaction-failed", **context)
        self.tx_hash = tx_hash
        self.result_code = result_code


class TransferTimeout(ClientError):
    """Cross-chain packet expired and the refund could not be confirmed."""

    def __init__(self, message: str, *, state: Any = None, **context: Any) -> None:
        super().__init__(message, code="transfer-timeout", **context)
        self.state = state
