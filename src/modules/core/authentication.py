"""Clerk session-token authentication backend for Django REST Framework.

The storefront front end signs buyers in with Clerk and sends the session
JWT as ``Authorization: Bearer <token>``.  Tokens are verified with RS256
against the instance JWKS, fetched and cached in-memory (default 300 s)
via ``PyJWKClient``.

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is pinned to the configured value (default RS256) and is
  never read from the incoming token.
* The issuer is always validated; the authorized party (``azp``) is
  validated when ``CLERK_AUTHORIZED_PARTIES`` is set.
"""

import jwt as pyjwt
import structlog
from decouple import Csv, config
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Clerk settings (read once at module level)
# ---------------------------------------------------------------------------
CLERK_ISSUER = config("CLERK_ISSUER", default="").rstrip("/")
CLERK_JWKS_URL = config(
    "CLERK_JWKS_URL",
    default=f"{CLERK_ISSUER}/.well-known/jwks.json" if CLERK_ISSUER else "",
)
CLERK_ALGORITHM = config("CLERK_ALGORITHM", default="RS256")
CLERK_AUTHORIZED_PARTIES = config("CLERK_AUTHORIZED_PARTIES", default="", cast=Csv())

# JWKS client with built-in cache (300 s lifespan)
_jwks_client: PyJWKClient | None = None

if CLERK_JWKS_URL:
    _jwks_client = PyJWKClient(
        CLERK_JWKS_URL,
        cache_jwk_set=True,
        lifespan=300,
    )

_CLERK_ENABLED = bool(_jwks_client and CLERK_ISSUER)

ADMIN_ROLE = "admin"


class ClerkUser:
    """Lightweight user object for requests authenticated via Clerk.

    Clerk is the source of truth for buyer identity; no local Django
    ``User`` row is required.  ``sub`` is the stable owner id stored on
    builds.  The admin role comes from the ``public_metadata.role`` claim
    configured on the Clerk session token template.
    """

    def __init__(self, payload: dict):
        self.payload = payload
        self.sub: str = payload.get("sub", "")
        self.email: str = payload.get("email", "") or ""
        metadata = payload.get("public_metadata") or payload.get("metadata") or {}
        self.role: str = metadata.get("role", "") if isinstance(metadata, dict) else ""

    # DRF checks
    is_authenticated = True
    is_active = True

    @property
    def is_staff(self) -> bool:
        return self.role == ADMIN_ROLE

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


class ClerkJSONWebTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates Clerk JWT Bearer tokens."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(ClerkUser, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)

        # Defer to SimpleJWT when Clerk is not configured or the token
        # was not issued by the Clerk instance.
        if not _CLERK_ENABLED:
            return None
        if not self._token_has_clerk_issuer(token):
            return None

        payload = self._decode_token(token)
        user = ClerkUser(payload)
        logger.info("jwt_authenticated", sub=user.sub)
        return (user, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _token_has_clerk_issuer(token: str) -> bool:
        try:
            payload = pyjwt.decode(
                token,
                options={
                    "verify_signature": False,
                    "verify_aud": False,
                    "verify_iss": False,
                },
            )
        except PyJWTError:
            return False
        return payload.get("iss") == CLERK_ISSUER

    @staticmethod
    def _decode_token(token: str) -> dict:
        if not _jwks_client:
            raise AuthenticationFailed("Clerk is not configured (CLERK_ISSUER missing).")
        try:
            signing_key = _jwks_client.get_signing_key_from_jwt(token)
            payload = pyjwt.decode(
                token,
                signing_key.key,
                algorithms=[CLERK_ALGORITHM],
                issuer=CLERK_ISSUER,
                options={"verify_aud": False},
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed("Token validation failed.") from exc

        azp = payload.get("azp")
        if CLERK_AUTHORIZED_PARTIES and azp not in CLERK_AUTHORIZED_PARTIES:
            logger.warning("jwt_unauthorized_party", azp=azp)
            raise AuthenticationFailed("Token was issued for another origin.")
        return payload
