"""
zkLogin state machine.

LOGGED_OUT -> PENDING_REDIRECT -> AWAITING_PROOF -> AUTHENTICATED, with a
return to LOGGED_OUT from any state on logout or failure.

The OAuth redirect ends the process that started the login, so the flow has
two entry points joined only by the session store:

- ``begin_login`` persists fresh key material and redirects out
- ``resume`` runs on the next page load, picks the token out of the URL
  fragment and finishes the login with ``complete_login``
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from suitter.audit_logger import get_audit_logger

from . import ephemeral
from .address import compute_address_seed, seed_to_address
from .errors import EphemeralKeyExpired, InvalidIdentityToken, SessionLost, StaleProofError, SubmissionRejected
from .exchange import IdentityClaims, IdentityProvider, begin_redirect, build_authorization_url, decode_claims, extract_token
from .ledger import LedgerClient
from .prover import ProofArtifact, ProverClient
from .salt import SaltServiceClient
from .session import FileSessionStore, LoginState, Session, SessionStore
from .signature import assemble_signature

logger = logging.getLogger(__name__)

LOGIN_METHOD = "zklogin"


class ZkLoginFlow:
    """
    Drives one device's zkLogin session.

    Args:
        store: Session repository shared by both entry points
        ledger: Exposes ``get_current_epoch`` and ``execute_transaction_block``
        salt_service: Exposes ``get_salt(token)``
        prover: Exposes ``get_proof(...)``
        provider: Identity provider settings
        navigate: Performs the full-page redirect; when omitted
            ``begin_login`` only returns the URL
        replace_url: Rewrites the visible URL after the token is read
    """

    def __init__(
        self,
        store: SessionStore,
        ledger,
        salt_service,
        prover,
        provider: IdentityProvider,
        navigate: Optional[Callable[[str], None]] = None,
        replace_url: Optional[Callable[[str], None]] = None,
        audit=None,
    ):
        self.store = store
        self.ledger = ledger
        self.salt_service = salt_service
        self.prover = prover
        self.provider = provider
        self.navigate = navigate
        self.replace_url = replace_url
        self.audit = audit or get_audit_logger()

    @property
    def session(self) -> Optional[Session]:
        return self.store.load()

    @property
    def state(self) -> LoginState:
        session = self.store.load()
        return session.state if session else LoginState.LOGGED_OUT

    @property
    def is_authenticated(self) -> bool:
        return self.state is LoginState.AUTHENTICATED

    def claims(self) -> Optional[IdentityClaims]:
        """Display claims of the authenticated user, if any."""
        session = self.store.load()
        if session is None or session.state is not LoginState.AUTHENTICATED:
            return None
        return decode_claims(session.jwt)

    def begin_login(self) -> str:
        """
        LOGGED_OUT -> PENDING_REDIRECT.

        Any earlier session is superseded, including one from an attempt
        whose proof may still be in flight.

        Returns:
            Authorization URL the user is sent to

        Raises:
            EpochUnavailable: if the ledger epoch cannot be read
        """
        material = ephemeral.begin_login(self.ledger)

        self.store.clear()
        self.store.save(material.to_record())
        self.audit.log_session_created(material.nonce, material.max_epoch)

        if self.navigate is None:
            return build_authorization_url(self.provider, material.nonce)
        return begin_redirect(self.provider, material.nonce, self.navigate)

    def complete_login(self, token: str) -> Session:
        """
        PENDING_REDIRECT -> AWAITING_PROOF -> AUTHENTICATED.

        Salt, proof and address are obtained in that order. Any failure
        clears the session, unless a newer login attempt has taken it over.

        Raises:
            SessionLost: no pending session to complete
            InvalidIdentityToken: token does not decode or carries no nonce
            StaleProofError: the token or proof belongs to a superseded attempt
            SaltServiceError, ProofServiceError, AddressDerivationFailure
        """
        session = self.store.load()
        if session is None or not session.has_key_material:
            self._abort(None, "session_lost")
            raise SessionLost()

        bound_nonce = session.nonce
        try:
            claims = decode_claims(token)
        except InvalidIdentityToken:
            self._abort(bound_nonce, "invalid_token")
            raise

        if not claims.nonce:
            self._abort(bound_nonce, "invalid_token")
            raise InvalidIdentityToken("Identity token carries no nonce")

        if claims.nonce != bound_nonce:
            self.audit.log_auth_attempt(claims.sub, LOGIN_METHOD, False, reason="stale_token")
            raise StaleProofError("Identity token was issued for a different login attempt")

        self.store.save({"jwt": token})

        try:
            try:
                key_pair = session.key_pair()
            except ValueError as e:
                raise SessionLost(f"Stored ephemeral key is unusable: {e}") from e

            salt = self.salt_service.get_salt(token)

            try:
                proof = self.prover.get_proof(
                    token,
                    salt,
                    session.max_epoch,
                    session.randomness,
                    ephemeral.public_key_bytes(key_pair),
                )
            except Exception as e:
                self.audit.log_proof_requested(session.max_epoch, False, getattr(e, "status_code", None))
                raise
            self.audit.log_proof_requested(session.max_epoch, True)

            address_seed = compute_address_seed(salt, claims.sub, claims.aud)
            user_address = seed_to_address(address_seed)

            current = self.store.load()
            if current is None or current.nonce != bound_nonce:
                raise StaleProofError("Proof arrived for a superseded login attempt")
        except StaleProofError:
            logger.warning("Discarding proof bound to a superseded nonce")
            self.audit.log_auth_attempt(claims.sub, LOGIN_METHOD, False, reason="stale_proof")
            raise
        except Exception as e:
            logger.error(f"Login completion failed: {e}")
            self.audit.log_auth_attempt(claims.sub, LOGIN_METHOD, False, reason=type(e).__name__)
            self._abort(bound_nonce, type(e).__name__)
            raise

        self.store.save(
            {
                "salt": salt,
                "sub": claims.sub,
                "aud": claims.aud,
                "userAddress": user_address,
                "zkProof": proof.to_json(),
                "addressSeed": address_seed,
            }
        )
        self.audit.log_auth_attempt(claims.sub, LOGIN_METHOD, True)
        logger.info(f"zkLogin completed for {user_address}")
        return self.store.load()

    def resume(self, url: str) -> LoginState:
        """Page-load entry point: finish a redirect or restore the session."""
        token = extract_token(url, self.replace_url)
        if token:
            self.complete_login(token)
            return LoginState.AUTHENTICATED
        return self.restore()

    def restore(self) -> LoginState:
        """Derive the login state from storage alone, without network calls."""
        session = self.store.load()
        if session is None:
            return LoginState.LOGGED_OUT

        state = session.state
        if state is LoginState.AWAITING_PROOF:
            self._abort(session.nonce, "abandoned")
            return LoginState.LOGGED_OUT

        if state is LoginState.AUTHENTICATED:
            try:
                decode_claims(session.jwt)
            except InvalidIdentityToken:
                logger.error("Failed to decode stored JWT")
                self._abort(session.nonce, "corrupt_token")
                return LoginState.LOGGED_OUT

        return state

    def logout(self) -> None:
        self.store.clear()
        self.audit.log_session_destroyed("logout")

    def sign_transaction(self, tx_bytes: bytes) -> str:
        """
        Produce the composite signature for ``tx_bytes``.

        Raises:
            SessionLost: not authenticated
            EpochUnavailable: epoch could not be checked
            EphemeralKeyExpired: the key's maxEpoch has passed
        """
        session = self.store.load()
        if session is None or session.state is not LoginState.AUTHENTICATED:
            raise SessionLost("Not authenticated")

        current_epoch = self.ledger.get_current_epoch()
        if current_epoch > session.max_epoch:
            self.audit.log_event("ephemeral_key_expired", max_epoch=session.max_epoch, current_epoch=current_epoch)
            raise EphemeralKeyExpired(session.max_epoch, current_epoch)

        user_signature = ephemeral.sign_transaction_bytes(session.key_pair(), tx_bytes)
        signature = assemble_signature(
            ProofArtifact.from_json(session.zk_proof),
            session.max_epoch,
            session.address_seed,
            user_signature,
        )
        self.audit.log_signature_assembled(session.user_address, session.max_epoch)
        return signature

    def submit_transaction(self, tx_bytes: bytes, extra_signatures: Sequence[str] = ()) -> Dict[str, Any]:
        """Sign and submit; sponsor signatures go in ``extra_signatures``."""
        signature = self.sign_transaction(tx_bytes)
        try:
            result = self.ledger.execute_transaction_block(
                base64.b64encode(bytes(tx_bytes)).decode("ascii"),
                [signature, *extra_signatures],
            )
        except SubmissionRejected as e:
            self.audit.log_ledger_call("sui_executeTransactionBlock", False, str(e))
            raise
        self.audit.log_ledger_call("sui_executeTransactionBlock", True)
        return result

    def _abort(self, bound_nonce: Optional[str], reason: str) -> None:
        """Clear the session if it still belongs to the attempt bound to ``bound_nonce``."""
        current = self.store.load_record()
        if current is not None and bound_nonce is not None and current.get("nonce") != bound_nonce:
            return
        self.store.clear()
        self.audit.log_session_destroyed(reason)


def build_flow(
    cfg: Mapping[str, Any],
    store: Optional[SessionStore] = None,
    navigate: Optional[Callable[[str], None]] = None,
    replace_url: Optional[Callable[[str], None]] = None,
    http=None,
) -> ZkLoginFlow:
    """Wire a flow from configuration, defaulting to a file-backed store."""
    timeout = cfg.get("HTTP_TIMEOUT", 30)
    return ZkLoginFlow(
        store=store or FileSessionStore(str(cfg["SESSION_FILE"])),
        ledger=LedgerClient(str(cfg["SUI_RPC_URL"]), http=http, timeout=timeout),
        salt_service=SaltServiceClient(str(cfg["SALT_SERVICE_URL"]), http=http, timeout=timeout),
        prover=ProverClient(str(cfg["PROVER_URL"]), http=http, timeout=timeout),
        provider=IdentityProvider(
            client_id=str(cfg.get("GOOGLE_CLIENT_ID") or ""),
            redirect_uri=str(cfg["REDIRECT_URI"]),
            auth_url=str(cfg.get("GOOGLE_AUTH_URL") or "https://accounts.google.com/o/oauth2/v2/auth"),
        ),
        navigate=navigate,
        replace_url=replace_url,
    )
