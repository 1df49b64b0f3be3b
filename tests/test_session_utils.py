"""
Unit Tests - Session Tokens
===========================
"""

import pytest

from session_utils import create_session_token, verify_session_token


class TestSessionTokens:
    @pytest.mark.unit
    def test_round_trip_carries_wallet_and_role(self):
        payload = verify_session_token(create_session_token(" TAdminWallet ", role="admin", ttl_seconds=60))

        assert payload["wallet"] == "TAdminWallet"
        assert payload["role"] == "admin"

    @pytest.mark.unit
    def test_tampered_payload_is_rejected(self):
        token = create_session_token("TAdminWallet")
        forged = create_session_token("TOtherWallet").split(".")[0] + "." + token.split(".")[1]

        with pytest.raises(ValueError, match="signature"):
            verify_session_token(forged)

    @pytest.mark.unit
    def test_expired_token_is_rejected(self):
        with pytest.raises(ValueError, match="expired"):
            verify_session_token(create_session_token("TAdminWallet", ttl_seconds=-5))

    @pytest.mark.unit
    def test_malformed_token_is_rejected(self):
        with pytest.raises(ValueError, match="format"):
            verify_session_token("no-dot-here")

    @pytest.mark.unit
    def test_missing_secret(self, monkeypatch):
        monkeypatch.setattr("config.SESSION_SECRET", "")

        with pytest.raises(RuntimeError):
            create_session_token("TAdminWallet")
