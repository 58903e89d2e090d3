"""
Exception hierarchy.

Everything raised on purpose inherits from GameError, so the service layer and the orchestrator can catch one type.
Two families matter for the retry policy: RetryableError (infrastructure hiccups) and everything else (never retried).
"""

from typing import Any


class GameError(Exception):
    """Base exception.

    Attributes:
        code: machine-readable category
        message: human-readable description
        context: extra key/value pairs for logs
    """

    code: str = "GAME_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"


# --- Protocol-invalid input ---
class InvalidRequestError(GameError):
    code = "INVALID_REQUEST"


class GameStateError(GameError):
    """Action not allowed in the game's current phase."""

    code = "GAME_STATE"


class IllegalMoveError(GameError):
    code = "ILLEGAL_MOVE"


class NotAPlayerError(GameError):
    code = "NOT_A_PLAYER"


class RepositoryError(GameError):
    code = "REPOSITORY"


class InsufficientFundsError(GameError):
    code = "INSUFFICIENT_FUNDS"


# --- Proofs ---
class ProofVerificationError(GameError):
    """Decrypted cleartext does not match the committed ciphertext handle(s)."""

    code = "PROOF_VERIFICATION"


# --- Transient infrastructure failures ---
class RetryableError(GameError):
    code = "RETRYABLE"


class InfrastructureError(RetryableError):
    code = "INFRASTRUCTURE"


class OracleError(InfrastructureError):
    """Decryption oracle failure, modelled as an HTTP-like status code."""

    code = "ORACLE"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class RelayerError(InfrastructureError):
    """Oracle failure as seen by the client, with enough detail to tell infra trouble from logic trouble."""

    code = "RELAYER"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        status_text: str | None = None,
        relayer_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.relayer_message = relayer_message
        if status_code is not None:
            self.context["status_code"] = status_code
        if relayer_message:
            self.context["relayer_message"] = relayer_message

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return False
        return self.status_code == 429 or 500 <= self.status_code < 600


class RetriesExhaustedError(GameError):
    """A retryable operation kept failing. Not itself retryable."""

    code = "RETRIES_EXHAUSTED"

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        context: dict[str, Any] = {"attempts": attempts}
        status_code = getattr(last_error, "status_code", None)
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(f"Gave up after {attempts} attempts: {last_error}", context=context)
        self.attempts = attempts
        self.last_error = last_error


# --- Orchestrator-local ---
class DuplicateMoveError(GameError):
    """The cell was already attempted in this game. Rejected before any network call."""

    code = "DUPLICATE_MOVE"


class NoAvailableCellsError(GameError):
    code = "NO_AVAILABLE_CELLS"


class TransactionRevertedError(GameError):
    code = "TX_REVERTED"

    def __init__(self, tx_hash: str, reason: str | None) -> None:
        super().__init__(
            f"Transaction reverted: {reason or 'unknown reason'}",
            context={"tx_hash": tx_hash},
        )
        self.tx_hash = tx_hash
        self.reason = reason
