"""
Unit tests for credential and identifier helpers.

WHAT: Test password hashing, JWT handling, OTPs and room ids
WHY: Auth and chat routing depend on these being exact
HOW: Call the helpers directly, no database or HTTP
"""

import pytest

from app.core.security import (
    create_access_token,
    decode_access_token,
    generate_otp,
    hash_password,
    make_room_id,
    parse_room_id,
    verify_password,
)
from app.utils.exceptions import AuthError, ValidationError


@pytest.mark.unit
class TestRoomIds:
    """Room id is an order-independent function of the pair plus product."""

    def test_room_id_is_symmetric(self):
        assert make_room_id(7, 3, 12) == make_room_id(3, 7, 12) == "prod-12-u3-u7"

    def test_room_id_uses_numeric_order(self):
        # 9 < 10 numerically even though "10" < "9" as text
        assert make_room_id(10, 9, 1) == "prod-1-u9-u10"

    def test_room_id_differs_per_product(self):
        assert make_room_id(1, 2, 5) != make_room_id(1, 2, 6)

    def test_parse_round_trip(self):
        assert parse_room_id(make_room_id(4, 2, 8)) == (8, 2, 4)

    @pytest.mark.parametrize("room_id", ["", "room-1", "prod-1-u2", "prod-1-u5-u3", "prod-1-u4-u4"])
    def test_parse_rejects_malformed_ids(self, room_id):
        with pytest.raises(ValidationError):
            parse_room_id(room_id)


@pytest.mark.unit
class TestTokens:
    """JWT issue and verification."""

    def test_token_round_trip(self):
        token = create_access_token(5, "alice", "user")
        claims = decode_access_token(token)

        assert claims["id"] == 5
        assert claims["username"] == "alice"
        assert claims["role"] == "user"

    def test_expired_token_rejected(self):
        token = create_access_token(5, "alice", "user", expires_hours=-1)

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.message == "Token expired"

    def test_tampered_token_rejected(self):
        token = create_access_token(5, "alice", "user")
        header, payload, signature = token.split(".")
        forged = ".".join([header, payload, signature[::-1]])

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(forged)
        assert exc_info.value.message == "Invalid Token"

    def test_missing_token_rejected(self):
        with pytest.raises(AuthError) as exc_info:
            decode_access_token(None)
        assert exc_info.value.status_code == 401


@pytest.mark.unit
class TestPasswordsAndOtp:

    def test_hash_verifies_only_the_original_password(self):
        hashed = hash_password("secret123")

        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("secret124", hashed)

    def test_otp_is_four_digits(self):
        for _ in range(50):
            otp = generate_otp()
            assert len(otp) == 4
            assert otp.isdigit()
            assert 1000 <= int(otp) <= 9999
