"""
HMAC-SHA256 request signing for Binance API.

Only the signing and framing differ between venues; everything above the
exchange client sees the same capability interface.
"""

import hashlib
import hmac
from urllib.parse import urlencode

from triarb.config.constants import RECV_WINDOW_MS
from triarb.utils.time import get_timestamp_ms


class RequestSigner:
    """
    Signs requests for Binance API authentication.

    Uses HMAC-SHA256 over the url-encoded parameters, as required by Binance.
    """

    __slots__ = ("_secret_bytes", "_recv_window")

    def __init__(self, api_secret: str, recv_window_ms: int = RECV_WINDOW_MS) -> None:
        """
        Initialize signer with API secret.

        Args:
            api_secret: Binance API secret key.
            recv_window_ms: Validity window sent with each signed request.
        """
        self._secret_bytes = api_secret.encode("utf-8")
        self._recv_window = recv_window_ms

    def sign(self, query_string: str) -> str:
        """
        Generate HMAC-SHA256 signature for a query string.

        Args:
            query_string: URL-encoded query parameters.

        Returns:
            Hexadecimal signature string.
        """
        return hmac.new(
            self._secret_bytes,
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def create_signed_params(
        self,
        params: dict[str, str | int],
    ) -> dict[str, str | int]:
        """
        Create a new params dict with timestamp, receive window and signature.

        Args:
            params: Original request parameters.

        Returns:
            New params dict including timestamp and signature.
        """
        signed_params = dict(params)
        signed_params.setdefault("recvWindow", self._recv_window)
        if "timestamp" not in signed_params:
            signed_params["timestamp"] = get_timestamp_ms()

        # Signature must be computed over the exact encoded order sent
        signed_params["signature"] = self.sign(urlencode(signed_params))
        return signed_params
