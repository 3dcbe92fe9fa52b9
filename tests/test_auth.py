import hashlib

import pytest

from planner.auth import (
    INVALID_CREDENTIAL, PBKDF2_ITERATIONS, InMemoryIdentityProvider, _hash_password,
)
from planner.errors import AuthError


def test_password_hash_is_salted_pbkdf2():
    expected = hashlib.pbkdf2_hmac("sha256", b"secret1", b"salt", PBKDF2_ITERATIONS).hex()
    assert _hash_password("secret1", "salt") == expected
    assert _hash_password("secret1", "salt") != hashlib.sha256(b"saltsecret1").hexdigest()
    assert _hash_password("secret1", "salt") != _hash_password("secret1", "pepper")


@pytest.mark.asyncio
async def test_password_is_not_kept_in_clear():
    provider = InMemoryIdentityProvider()
    session = await provider.sign_up("ada@example.com", "secret1")
    uid, salt, stored = provider._accounts["ada@example.com"]
    assert uid == session.uid
    assert "secret1" not in stored
    assert stored == _hash_password("secret1", salt)


@pytest.mark.asyncio
async def test_sign_in_after_sign_up():
    provider = InMemoryIdentityProvider()
    created = await provider.sign_up("ada@example.com", "secret1")
    await provider.sign_out()
    assert await provider.current_session() is None

    signed_in = await provider.sign_in_with_credential("ADA@example.com ", "secret1")
    assert signed_in.uid == created.uid

    with pytest.raises(AuthError) as e:
        await provider.sign_in_with_credential("ada@example.com", "secret2")
    assert e.value.code == INVALID_CREDENTIAL
