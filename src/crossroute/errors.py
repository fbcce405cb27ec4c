"""Domain errors raised by quoting and execution.

Every error carries a ``user_message`` that is safe to show to an end user
and a stable ``code`` used by the API layer.
"""

from typing import Optional


class CrossrouteError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or message
        super().__init__(message)


class ValidationError(CrossrouteError):
    """Malformed or illogical request. Not retryable."""

    code = "VALIDATION_ERROR"


class RouteUnsupportedError(CrossrouteError):
    """Provider metadata says the route cannot be bridged."""

    code = "ROUTE_UNSUPPORTED"


class ProviderError(CrossrouteError):
    """A single provider adapter failed (HTTP, parse, or business error)."""

    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class NoQuotesError(CrossrouteError):
    """Every applicable provider failed to return a quote."""

    code = "NO_QUOTES"

    def __init__(self, failures: Optional[dict[str, str]] = None):
        self.failures = dict(failures or {})
        reasons = [reason for reason in self.failures.values() if reason]
        if reasons:
            message = f"No quotes available: {'; '.join(reasons)}"
        else:
            message = "No quotes available from any provider"
        super().__init__(message)


class IneligibleError(CrossrouteError):
    """Quotes existed but none passed eligibility."""

    code = "NO_ELIGIBLE_QUOTES"

    def __init__(self, rejections: Optional[list] = None, message: str = "No eligible quotes available"):
        self.rejections = list(rejections or [])
        super().__init__(message)


class NeedGasError(IneligibleError):
    """Every rejection was caused by an insufficient native gas balance."""

    code = "NEED_SOL_FOR_GAS"

    def __init__(self, rejections: Optional[list] = None, min_lamports: Optional[int] = None):
        self.min_lamports = min_lamports
        super().__init__(
            rejections,
            message="You need SOL to pay for transaction gas. Add ~0.02 SOL to your wallet and try again.",
        )


class ExpiredQuoteError(CrossrouteError):
    """Quote expired (or aged out) and could not be refreshed."""

    code = "QUOTE_EXPIRED"

    def __init__(self, message: str = "Quote expired. Please fetch a new quote."):
        super().__init__(message)


class SubmissionError(CrossrouteError):
    """Signing was rejected or the node/provider refused the transaction."""

    code = "SUBMISSION_FAILED"

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        user_rejected: bool = False,
    ):
        self.user_rejected = user_rejected
        super().__init__(message, user_message)


class UserRejectedError(SubmissionError):
    """Raised by signing collaborators when the user declines to sign."""

    code = "USER_REJECTED"

    def __init__(self, message: str = "User rejected the request"):
        super().__init__(message, "Transaction cancelled by user.", user_rejected=True)


class SettlementError(CrossrouteError):
    """On-chain failure or bridge refund discovered while polling."""

    code = "SETTLEMENT_FAILED"

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        signature: Optional[str] = None,
        refunded: bool = False,
    ):
        self.signature = signature
        self.refunded = refunded
        super().__init__(message, user_message)
