"""ClientError — base exception class for all domain client errors."""

from __future__ import annotations

from typing import Self


class ClientError(Exception):
    """Base error for all domain client operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
        chain_id: Chain the failing operation targeted (empty if unknown).
        address: Account address involved (empty if unknown).
        sequence: Sequence / nonce that was attempted, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "client-error",
        chain_id: str = "",
        address: str = "",
        sequence: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.chain_id = chain_id
        self.address = address
        self.sequence = sequence

    def attach(
        self,
        *,
        chain_id: str | None = None,
        address: str | None = None,
        sequence: int | None = None,
    ) -> Self:
        """Fill in missing context fields and return ``self`` for re-raising."""
        if chain_id and not self.chain_id:
            self.chain_id = chain_id
        if address and not self.address:
            self.address = address
        if sequence is not None and self.sequence is None:
            self.sequence = sequence
        return self

    def __str__(self) -> str:
        context = [
            f"{name}={value}"
            for name, value in (
                ("chain_id", self.chain_id),
                ("address", self.address),
                ("sequence", self.sequence),
            )
            if value not in ("", None)
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"
