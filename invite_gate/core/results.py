from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ReservationError(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_CODE = "INVALID_CODE"
    CODE_INACTIVE = "CODE_INACTIVE"
    CODE_EXHAUSTED = "CODE_EXHAUSTED"
    EMAIL_ALREADY_USED = "EMAIL_ALREADY_USED"
    WALLET_ALREADY_USED = "WALLET_ALREADY_USED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_REQUEST = "INVALID_REQUEST"
    ELIGIBILITY_NOT_MET = "ELIGIBILITY_NOT_MET"
    ELIGIBILITY_CHECK_FAILED = "ELIGIBILITY_CHECK_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def retryable(self) -> bool:
        """Only transient failures may be retried by the caller."""
        return self in (ReservationError.ELIGIBILITY_CHECK_FAILED, ReservationError.INTERNAL_ERROR)


ERROR_MESSAGES = {
    ReservationError.RATE_LIMITED: "Too many attempts, please try again later",
    ReservationError.INVALID_CODE: "Invalid invite code",
    ReservationError.CODE_INACTIVE: "Code is inactive",
    ReservationError.CODE_EXHAUSTED: "Code has reached maximum uses",
    ReservationError.EMAIL_ALREADY_USED: "Email already registered",
    ReservationError.WALLET_ALREADY_USED: "Wallet already registered",
    ReservationError.INVALID_SIGNATURE: "Invalid signature",
    ReservationError.INVALID_REQUEST: "Invalid request",
    ReservationError.ELIGIBILITY_NOT_MET: "NFT staking requirement not met",
    ReservationError.ELIGIBILITY_CHECK_FAILED: "Error checking token eligibility",
    ReservationError.NOT_FOUND: "Not found",
    ReservationError.INTERNAL_ERROR: "Internal error",
}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a service operation: a value on success, an error kind otherwise."""
    value: Optional[T] = None
    error: Optional[ReservationError] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ReservationError, detail: Optional[str] = None) -> "Result[T]":
        return cls(error=error, detail=detail or ERROR_MESSAGES[error])
