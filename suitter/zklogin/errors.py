"""Error taxonomy for the zkLogin flow.

Every failure raised by this package derives from ``ZkLoginError`` so callers
can surface ``user_message`` on the logged-out screen and consult
``retryable`` before offering a "try again" button.
"""

from __future__ import annotations

from typing import Optional


class ZkLoginError(Exception):
    """Base class for zkLogin failures."""

    retryable = False
    user_message = "Login failed. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)


class EpochUnavailable(ZkLoginError):
    """The ledger could not report its current epoch."""

    retryable = True
    user_message = "The network is unavailable right now. Please try again."


class SessionLost(ZkLoginError):
    """The provider redirected back but no pending login was persisted."""

    user_message = "No stored session found. Please try logging in again."


class InvalidIdentityToken(ZkLoginError):
    """The identity token could not be decoded or lacks required claims."""

    user_message = "Invalid identity token. Please log in again."


class SaltServiceError(ZkLoginError):
    """The salt endpoint was unreachable or rejected the token."""

    retryable = True
    user_message = "Failed to obtain user salt. Please try again."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SaltOverflow(ZkLoginError):
    """A derived salt fell outside the 128-bit range."""

    user_message = "Failed to obtain user salt."


class ProofServiceError(ZkLoginError):
    """The proving service refused the token/nonce/salt combination."""

    user_message = "Failed to obtain ZK proof. Please log in again."

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AddressDerivationFailure(ZkLoginError):
    """Address derivation received inputs it cannot bind."""

    user_message = "Could not derive your wallet address."


class StaleProofError(ZkLoginError):
    """A proof arrived for a nonce that is no longer the current one."""

    user_message = "A newer login attempt is in progress."


class SignatureAssemblyError(ZkLoginError):
    """The stored proof artifact cannot be packaged into a signature."""

    user_message = "Could not sign the transaction. Please log in again."


class EphemeralKeyExpired(ZkLoginError):
    """The ledger epoch has moved past the ephemeral key's maxEpoch."""

    user_message = "Your session has expired. Please log in again."

    def __init__(self, max_epoch: int, current_epoch: int):
        super().__init__(f"Ephemeral key expired: maxEpoch={max_epoch}, currentEpoch={current_epoch}")
        self.max_epoch = max_epoch
        self.current_epoch = current_epoch


class SubmissionRejected(ZkLoginError):
    """The ledger rejected a transaction carrying an assembled signature."""

    user_message = "The network rejected the transaction."

    def __init__(self, message: Optional[str] = None, details: Optional[object] = None):
        super().__init__(message)
        self.details = details
