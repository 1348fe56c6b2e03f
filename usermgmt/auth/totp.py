"""
TOTP (Time-based One-Time Password) Module

Handles TOTP secret generation, provisioning and code verification using
pyotp (RFC 6238). Secrets are base32 strings, the form tinyauth stores in
the users file and authenticator apps accept.
"""

import binascii
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import pyotp
import qrcode

# Default issuer name for authenticator apps
DEFAULT_ISSUER = "tinyauth"

# Number of 30-second windows to allow for clock drift (1 = +/-30 seconds)
VALID_WINDOW = 1

# Rendered QR code edge, in pixels (approximate; qrcode sizes by modules)
QR_TARGET_SIZE = 256


@dataclass
class TOTPSetup:
    """Result of a setup: nothing here has been persisted yet."""
    secret: str
    otp_url: str
    qr_png: bytes


def generate_secret() -> str:
    """
    Generate a new TOTP secret.

    Returns:
        32-character base32 string (160 bits)
    """
    return pyotp.random_base32()


def normalize_secret(secret: str) -> str:
    """Strip spaces and padding, uppercase. Apps often show grouped secrets."""
    return secret.replace(" ", "").replace("=", "").upper()


def get_provisioning_uri(
    secret: str,
    username: str,
    issuer: str = DEFAULT_ISSUER
) -> str:
    """
    Generate otpauth:// URI for QR code scanning.

    Args:
        secret: Base32 secret
        username: Account name shown in the authenticator
        issuer: App/service name

    Returns:
        otpauth:// URI string
    """
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=username, issuer_name=issuer)


def generate_qr_code(uri: str) -> bytes:
    """
    Render ``uri`` as a QR code PNG.

    Returns:
        PNG image data as bytes
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=1,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    modules = qr.modules_count + 2 * qr.border
    qr.box_size = max(1, QR_TARGET_SIZE // modules)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def get_current_code(secret: str, for_time: Optional[float] = None) -> str:
    """
    Get the TOTP code for ``for_time`` (default: now).

    Args:
        secret: Base32 secret
        for_time: Unix timestamp

    Returns:
        6-digit TOTP code
    """
    totp = pyotp.TOTP(normalize_secret(secret))
    if for_time is None:
        return totp.now()
    return totp.at(for_time)


def verify_code(
    secret: str,
    code: str,
    valid_window: int = VALID_WINDOW,
    for_time: Optional[float] = None,
) -> bool:
    """
    Verify a TOTP code against the secret.

    Args:
        secret: Base32 secret
        code: 6-digit code from user
        valid_window: Number of 30-second windows to allow (default: 1)
        for_time: Unix timestamp to verify at (default: now)

    Returns:
        True if code is valid, False otherwise (including malformed secrets)
    """
    # Normalize code (remove spaces, ensure string)
    code = str(code).replace(' ', '').replace('-', '')

    # Must be 6 digits
    if not code.isdigit() or len(code) != 6:
        return False

    secret = normalize_secret(secret or "")
    if not secret:
        return False

    try:
        totp = pyotp.TOTP(secret)
        return totp.verify(code, for_time=for_time, valid_window=valid_window)
    except (binascii.Error, ValueError):
        return False


def setup_totp(username: str, issuer: str = DEFAULT_ISSUER) -> TOTPSetup:
    """
    Prepare TOTP enrollment for a user.

    Args:
        username: Account name
        issuer: App/service name

    Returns:
        TOTPSetup with the base32 secret, otpauth URL and QR PNG
    """
    secret = generate_secret()
    uri = get_provisioning_uri(secret, username, issuer)
    return TOTPSetup(secret=secret, otp_url=uri, qr_png=generate_qr_code(uri))
