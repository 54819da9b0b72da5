"""Unit tests for password hashing."""

from assessment_platform.kernel.identity.password import (
    BCRYPT_ROUNDS,
    PasswordHasher,
    hash_password,
    verify_password,
)


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_hash_is_salted(self):
        """Same password should create different hashes."""
        first = PasswordHasher.hash("TestPassword123")
        second = PasswordHasher.hash("TestPassword123")

        assert first != second
        assert first.startswith("$2b$")

    def test_verify(self):
        hashed = hash_password("TestPassword123")

        assert verify_password("TestPassword123", hashed) is True
        assert verify_password("testpassword123", hashed) is False

    def test_malformed_hash_does_not_raise(self):
        assert PasswordHasher.verify("TestPassword123", "not-a-bcrypt-hash") is False

    def test_needs_rehash(self):
        """Hashes made with another cost factor are flagged for upgrade."""
        current = hash_password("TestPassword123")
        assert PasswordHasher.needs_rehash(current) is False

        other_rounds = current.replace(f"${BCRYPT_ROUNDS:02d}$", "$04$", 1)
        assert PasswordHasher.needs_rehash(other_rounds) is True
        assert PasswordHasher.needs_rehash("garbage") is True

    def test_long_passwords_are_truncated_consistently(self):
        """bcrypt reads 72 bytes; longer secrets must still verify."""
        long_password = "Aa1" * 40
        hashed = hash_password(long_password)

        assert verify_password(long_password, hashed) is True
