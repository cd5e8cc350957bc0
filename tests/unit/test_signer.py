"""
Unit tests for RequestSigner.

Tests HMAC-SHA256 signing and parameter handling.
"""

import hashlib
import hmac
from urllib.parse import urlencode

import pytest

from triarb.exchange.signer import RequestSigner


class TestRequestSigner:
    """Tests for RequestSigner."""

    @pytest.fixture
    def signer(self) -> RequestSigner:
        """Create a test signer."""
        return RequestSigner("test_secret_key", recv_window_ms=5000)

    def test_sign_basic(self, signer: RequestSigner) -> None:
        """Test basic signature generation."""
        signature = signer.sign("symbol=BTCUSDT&side=BUY&type=MARKET")

        # Signature should be 64 character hex string
        assert len(signature) == 64
        assert all(c in "0123456789abcdef" for c in signature)

    def test_sign_matches_hmac(self, signer: RequestSigner) -> None:
        """Test the signature is plain HMAC-SHA256 over the query."""
        query = "symbol=ETHUSDT&timestamp=1"
        expected = hmac.new(b"test_secret_key", query.encode(), hashlib.sha256).hexdigest()

        assert signer.sign(query) == expected

    def test_sign_different_inputs(self, signer: RequestSigner) -> None:
        """Test that different inputs produce different signatures."""
        assert signer.sign("symbol=BTCUSDT") != signer.sign("symbol=ETHUSDT")

    def test_signed_params(self, signer: RequestSigner) -> None:
        """Test timestamp, receive window and signature are added."""
        params = {"symbol": "BTCUSDT", "side": "BUY"}

        signed = signer.create_signed_params(params)

        assert signed["recvWindow"] == 5000
        assert "timestamp" in signed
        unsigned = {k: v for k, v in signed.items() if k != "signature"}
        assert signed["signature"] == signer.sign(urlencode(unsigned))
        # Original dict untouched
        assert params == {"symbol": "BTCUSDT", "side": "BUY"}

    def test_signed_params_preserves_timestamp(self, signer: RequestSigner) -> None:
        """Test that an existing timestamp is kept."""
        signed = signer.create_signed_params({"symbol": "BTCUSDT", "timestamp": 1234567890000})

        assert signed["timestamp"] == 1234567890000
