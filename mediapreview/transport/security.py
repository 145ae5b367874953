# mediapreview/transport/security.py
"""
Security utilities for the preview endpoint.

Security features:
- HMAC-SHA1 signed target URLs (only signed URLs are ever fetched)
- Constant-time signature and token comparison
- Bearer token protection for /metrics
- Token strength warnings at startup
- Error message sanitization in production
"""
import base64
import binascii
import hashlib
import hmac
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mediapreview.config import settings
from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

# Shared secrets shorter than this are reported at startup
MIN_TOKEN_LENGTH = 32
# Substrings that suggest a hand-typed placeholder rather than a random value
WEAK_TOKEN_PATTERNS = (
    "password", "secret", "changeme", "preview", "token", "test", "example",
    "123456", "000000", "aaaaaa",
)

metrics_bearer_scheme = HTTPBearer(
    scheme_name="Metrics Token",
    description="METRICS_TOKEN value",
    auto_error=False,
)


class InvalidSignatureError(ValueError):
    """Signature missing, malformed or not matching the encoded URL"""


def validate_token_strength(token: str, token_name: str = "token") -> list[str]:
    """Return warnings for a shared secret; empty when it looks random enough."""
    problems = []
    if len(token) < MIN_TOKEN_LENGTH:
        problems.append(f"{token_name} is too short ({len(token)} < {MIN_TOKEN_LENGTH} chars)")

    lowered = token.lower()
    weak = next((p for p in WEAK_TOKEN_PATTERNS if p in lowered), None)
    if weak:
        problems.append(f"{token_name} contains weak pattern '{weak}'")

    if len(set(token)) < 8:
        problems.append(f"{token_name} uses fewer than 8 distinct characters")
    return problems


def generate_secure_token(length: int = 32) -> str:
    """Random value suitable for SECRET_KEY_BASE or METRICS_TOKEN."""
    return secrets.token_urlsafe(length)


def check_configured_tokens() -> int:
    """Log weak configured secrets at startup; returns the number of warnings."""
    count = 0
    for name, value in (
        ("SECRET_KEY_BASE", settings.secret_key_base),
        ("METRICS_TOKEN", settings.metrics_token),
    ):
        for problem in validate_token_strength(value, name) if value else ():
            logger.warning(f"SECURITY: {problem}")
            count += 1
    return count


# =============================================================================
# URL signing
# =============================================================================
# Preview path: /<sig>/<encoded_url>[/<filename>]
#
#   encoded_url = base64url(target URL), unpadded
#   sig         = base64url(HMAC-SHA1(SECRET_KEY_BASE, encoded_url)), unpadded
#
# The signature covers the encoded form, so the URL is verified before it
# is ever decoded.
# =============================================================================


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Decode base64url with or without padding. Raises ValueError."""
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url: {e}") from e


def compute_url_signature(secret: str, encoded_url: str) -> bytes:
    return hmac.new(secret.encode(), encoded_url.encode(), hashlib.sha1).digest()


def sign_url(secret: str, url: str) -> tuple[str, str]:
    """
    Sign a target URL.

    Returns:
        (sig, encoded_url), both base64url without padding
    """
    encoded_url = b64url_encode(url.encode())
    sig = b64url_encode(compute_url_signature(secret, encoded_url))
    return sig, encoded_url


def signed_path(secret: str, url: str, filename: str | None = None) -> str:
    """Build the preview path for ``url``, e.g. ``/<sig>/<encoded_url>/photo.jpg``."""
    sig, encoded_url = sign_url(secret, url)
    path = f"/{sig}/{encoded_url}"
    if filename:
        path += f"/{filename}"
    return path


def split_encoded_url(url_segment: str) -> str:
    """Strip the optional trailing filename (anything after the first '/')."""
    return url_segment.split("/", 1)[0]


def verify_url_signature(secret: str | None, sig: str, encoded_url: str) -> bool:
    if not secret or not sig or not encoded_url:
        return False
    try:
        provided = b64url_decode(sig)
    except ValueError:
        return False
    expected = compute_url_signature(secret, encoded_url)
    return hmac.compare_digest(provided, expected)


def decode_target_url(secret: str | None, sig: str, url_segment: str) -> str:
    """
    Verify the signature and return the decoded target URL.

    Args:
        secret: SECRET_KEY_BASE
        sig: Signature path segment
        url_segment: Everything after the signature (encoded URL, optional filename)

    Raises:
        InvalidSignatureError: missing secret, bad signature or undecodable URL
    """
    encoded_url = split_encoded_url(url_segment)

    if not verify_url_signature(secret, sig, encoded_url):
        raise InvalidSignatureError("invalid signature")

    try:
        return b64url_decode(encoded_url).decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidSignatureError("invalid signature") from e


# =============================================================================
# Metrics auth
# =============================================================================

def require_metrics_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(metrics_bearer_scheme),
):
    """
    Dependency for /metrics.

    If METRICS_TOKEN is set, a matching Bearer token is required; otherwise
    the endpoint is open (deploy behind an internal network).
    """
    if not settings.metrics_token:
        return

    if not credentials:
        logger.warning("Metrics endpoint accessed without token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not hmac.compare_digest(credentials.credentials, settings.metrics_token):
        logger.warning("Invalid metrics token attempt")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        )


class SecurityHeaders:
    """OWASP recommended response headers."""

    @staticmethod
    def add_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """Exception text for a 500 body: verbatim outside production, a fixed phrase in it."""
    if not is_production:
        return str(error)

    generic_messages = {
        "ValueError": "Invalid input",
        "ImageMetadataError": "Unreadable media",
        "ImageEncodeError": "Preview generation failed",
        "FrameExtractionError": "Preview generation failed",
        "TimeoutError": "Request timeout",
    }

    return generic_messages.get(type(error).__name__, "An error occurred")
