"""
TOTP engine (RFC 6238), compatible with Google Authenticator, Authy and
other authenticator apps.

Pure: generates and checks secrets, never touches storage.
"""
import base64
from datetime import datetime
from io import BytesIO
from typing import Optional

import pyotp
import qrcode

from .types import TOTPProvisioning


class TOTPEngine:
    """Generates TOTP secrets and validates 6-digit codes."""

    def __init__(self, issuer: str = "CashBook", valid_window: int = 1):
        self.issuer = issuer
        self.valid_window = valid_window

    def generate_secret(self, account_label: str) -> TOTPProvisioning:
        """Create a new secret with its otpauth URI and QR image.

        The 32-character base32 secret carries 160 bits.
        """
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=self.issuer)
        return TOTPProvisioning(
            secret=secret,
            provisioning_uri=uri,
            qr_code=self._render_qr(uri),
        )

    @staticmethod
    def _render_qr(uri: str) -> str:
        qr = qrcode.QRCode(version=1, box_size=10, border=4)
        qr.add_data(uri)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()

    def validate_code(self, secret: str, code: str, for_time: Optional[datetime] = None) -> bool:
        """Check a code against the current step and its neighbours.

        Args:
            secret: Base32 TOTP secret
            code: Code presented by the user (spaces tolerated)
            for_time: Reference time; defaults to now

        Returns:
            True if the code matches any step inside the window
        """
        if not secret or not code:
            return False
        code = code.replace(" ", "").strip()
        if len(code) != 6 or not code.isdigit():
            return False

        totp = pyotp.TOTP(secret)
        if for_time is None:
            return totp.verify(code, valid_window=self.valid_window)
        return totp.verify(code, for_time=for_time, valid_window=self.valid_window)
