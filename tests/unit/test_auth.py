from __future__ import annotations

import jwt
import pytest

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError
from realtime_chat.domain.value_objects.enums import Role
from realtime_chat.infrastructure.auth.hs256_verifier import HS256Verifier

SECRET = "unit-test-secret-with-at-least-32-bytes"


@pytest.mark.asyncio
async def test_verify_reads_subject_and_provider_flag():
    verifier = HS256Verifier(SECRET)
    token = jwt.encode({"sub": "7", "provider": True}, SECRET, algorithm="HS256")

    identity = await verifier.verify(token)

    assert identity == Identity(user_id=7, is_provider=True)
    assert identity.role is Role.PROVIDER


@pytest.mark.asyncio
async def test_missing_provider_claim_means_customer():
    verifier = HS256Verifier(SECRET)
    token = jwt.encode({"sub": "42"}, SECRET, algorithm="HS256")

    assert (await verifier.verify(token)).role is Role.USER


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [
        jwt.encode({"sub": "42"}, "some-other-secret-of-sufficient-length", algorithm="HS256"),
        jwt.encode({"name": "no subject"}, SECRET, algorithm="HS256"),
        jwt.encode({"sub": "abc"}, SECRET, algorithm="HS256"),
        "not-a-jwt",
    ],
)
async def test_bad_tokens_are_unauthorized(token):
    with pytest.raises(UnauthorizedError):
        await HS256Verifier(SECRET).verify(token)
