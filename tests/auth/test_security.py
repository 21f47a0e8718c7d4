"""Tests for auth security functions."""

from datetime import timedelta
from uuid import uuid4

import pytest
from jose import JWTError, jwt

from src.auth.permissions import UserRole
from src.auth.security import create_access_token, decode_access_token
from src.config.settings import get_settings


class TestAccessToken:
    """Tests for access token creation and decoding."""

    def test_create_access_token(self) -> None:
        """Should create valid access token."""
        data = {"sub": str(uuid4()), "role": UserRole.STUDENT.value}
        token = create_access_token(data)
        assert token is not None
        assert len(token) > 0

    def test_decode_access_token(self) -> None:
        """Should decode token and return payload."""
        user_id = uuid4()
        data = {
            "sub": str(user_id),
            "role": UserRole.INSTRUCTOR.value,
            "name": "Dra. Helena",
        }
        payload = decode_access_token(create_access_token(data))

        assert payload["sub"] == str(user_id)
        assert payload["role"] == UserRole.INSTRUCTOR.value
        assert payload["name"] == "Dra. Helena"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload

    def test_decode_access_token_expired(self) -> None:
        """Should raise JWTError for expired token."""
        data = {"sub": str(uuid4()), "role": UserRole.STUDENT.value}
        token = create_access_token(data, expires_delta=timedelta(seconds=-1))

        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_decode_access_token_invalid(self) -> None:
        """Should raise JWTError for invalid token."""
        with pytest.raises(JWTError):
            decode_access_token("invalid.token.here")

    def test_decode_access_token_wrong_type(self) -> None:
        """Should raise JWTError if token type is not 'access'."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "role": "student", "type": "refresh"},
            settings.auth_secret_key,
            algorithm=settings.auth_algorithm,
        )

        with pytest.raises(JWTError, match="expected 'access'"):
            decode_access_token(token)

    def test_decode_access_token_without_role(self) -> None:
        token = create_access_token({"sub": str(uuid4())})
        with pytest.raises(JWTError, match="missing sub or role"):
            decode_access_token(token)

    def test_wrong_secret_rejected(self) -> None:
        token = jwt.encode(
            {"sub": str(uuid4()), "role": "admin", "type": "access"},
            "another-secret-key-with-enough-length!!",
            algorithm="HS256",
        )
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_tokens_unique_for_different_users(self) -> None:
        token1 = create_access_token({"sub": str(uuid4()), "role": "student"})
        token2 = create_access_token({"sub": str(uuid4()), "role": "student"})
        assert token1 != token2
