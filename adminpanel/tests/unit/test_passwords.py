from __future__ import annotations

from passlib.hash import pbkdf2_sha256

from adminpanel.core.config import get_settings
from adminpanel.services.auth.passwords import HASH_BYTES, SALT_BYTES, Pbkdf2PasswordHasher


def test_hash_verifies_and_rejects_wrong_password() -> None:
    hasher = Pbkdf2PasswordHasher(iterations=1000)
    hashed = hasher.hash("Secret@123")
    assert hasher.verify("Secret@123", hashed)
    assert not hasher.verify("Secret@124", hashed)


def test_hash_uses_fresh_salt_each_time() -> None:
    # Same password twice gives two different strings that both verify.
    hasher = Pbkdf2PasswordHasher(iterations=1000)
    first = hasher.hash("Secret@123")
    second = hasher.hash("Secret@123")
    assert first != second
    assert hasher.verify("Secret@123", first)
    assert hasher.verify("Secret@123", second)
    parsed = pbkdf2_sha256.from_string(first)
    assert parsed.rounds == 1000
    assert len(parsed.salt) == SALT_BYTES
    assert len(parsed.checksum) == HASH_BYTES


def test_hashes_from_another_work_factor_still_verify() -> None:
    stored = Pbkdf2PasswordHasher(iterations=2000).hash("Secret@123")
    assert Pbkdf2PasswordHasher(iterations=1000).verify("Secret@123", stored)


def test_malformed_hashes_never_verify() -> None:
    hasher = Pbkdf2PasswordHasher(iterations=1000)
    assert not hasher.verify("Secret@123", "")
    assert not hasher.verify("Secret@123", "not a hash at all!")
    assert not hasher.verify("Secret@123", "$pbkdf2-sha256$1000$short")


def test_iterations_default_to_settings(monkeypatch) -> None:
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1234")
    get_settings.cache_clear()
    hasher = Pbkdf2PasswordHasher()
    assert hasher.iterations == 1234
    assert pbkdf2_sha256.from_string(hasher.hash("Secret@123")).rounds == 1234
