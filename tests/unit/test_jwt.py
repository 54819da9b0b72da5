"""Unit tests for JWT issuing and verification."""

import uuid
from datetime import timedelta

from assessment_platform.kernel.identity.jwt import JWTManager


class TestJWTManager:
    def test_access_token_round_trip(self, jwt_manager):
        user_id = uuid.uuid4()
        token, _ = jwt_manager.create_access_token(user_id, "a@example.com", "student")

        payload = jwt_manager.verify_access_token(token)

        assert payload is not None
        assert payload.sub == str(user_id)
        assert payload.email == "a@example.com"
        assert payload.role == "student"

    def test_refresh_token_is_not_an_access_token(self, jwt_manager):
        """Token types are not interchangeable."""
        refresh, _ = jwt_manager.create_refresh_token(uuid.uuid4())
        access, _ = jwt_manager.create_access_token(uuid.uuid4(), "a@example.com", "student")

        assert jwt_manager.verify_access_token(refresh) is None
        assert jwt_manager.verify_refresh_token(access) is None
        assert jwt_manager.verify_refresh_token(refresh) is not None

    def test_expired_token(self, jwt_manager):
        token, _ = jwt_manager.create_access_token(
            uuid.uuid4(), "a@example.com", "student", expires_delta=timedelta(seconds=-5)
        )
        assert jwt_manager.verify_access_token(token) is None

    def test_wrong_secret(self, jwt_manager):
        token, _ = jwt_manager.create_access_token(uuid.uuid4(), "a@example.com", "student")
        other = JWTManager(secret_key="another-secret-entirely", algorithm="HS256")

        assert other.verify_access_token(token) is None

    def test_token_pair(self, jwt_manager):
        pair, refresh_exp = jwt_manager.create_token_pair(uuid.uuid4(), "a@example.com", "admin")

        assert pair.token_type == "bearer"
        assert 0 < pair.expires_in <= 30 * 60
        assert pair.access_token != pair.refresh_token
        assert refresh_exp is not None

    def test_hash_token_is_stable(self):
        assert JWTManager.hash_token("abc") == JWTManager.hash_token("abc")
        assert len(JWTManager.hash_token("abc")) == 64
