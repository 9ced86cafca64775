"""
Tests for JWT handling and pharmacy scope resolution.
"""

import uuid
from datetime import timedelta

import pytest

from core.security import (
    UserContext,
    create_access_token,
    decode_access_token,
    resolve_pharmacy_scope,
)

PHARMACY_A = uuid.uuid4()
PHARMACY_B = uuid.uuid4()


class TestAccessToken:
    def test_round_trip(self):
        token = create_access_token({"sub": "auth|42", "role": "pharmacist", "pharmacy_id": str(PHARMACY_A)})
        claims = decode_access_token(token)

        assert claims["sub"] == "auth|42"
        user = UserContext.from_claims(claims)
        assert user.pharmacy_id == PHARMACY_A
        assert not user.is_admin

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "auth|42"}, expires_delta=timedelta(seconds=-10))
        assert decode_access_token(token) is None

    def test_garbage_is_rejected(self):
        assert decode_access_token("not-a-jwt") is None

    def test_bad_pharmacy_claim_raises(self):
        with pytest.raises(ValueError):
            UserContext.from_claims({"sub": "x", "role": "pharmacist", "pharmacy_id": "nope"})


class TestPharmacyScope:
    def test_admin_without_filter_sees_everything(self):
        admin = UserContext(user_id="a", role="admin")
        assert resolve_pharmacy_scope(admin, None) is None
        assert resolve_pharmacy_scope(admin, []) is None

    def test_admin_filter_applies_as_given(self):
        admin = UserContext(user_id="a", role="admin")
        assert resolve_pharmacy_scope(admin, [PHARMACY_A, PHARMACY_B]) == {PHARMACY_A, PHARMACY_B}

    def test_restricted_user_defaults_to_own_pharmacy(self):
        user = UserContext(user_id="u", role="pharmacist", pharmacy_id=PHARMACY_A)
        assert resolve_pharmacy_scope(user, None) == {PHARMACY_A}

    def test_restricted_user_filter_is_intersected(self):
        user = UserContext(user_id="u", role="pharmacist", pharmacy_id=PHARMACY_A)
        assert resolve_pharmacy_scope(user, [PHARMACY_A, PHARMACY_B]) == {PHARMACY_A}

    def test_restricted_user_asking_for_other_pharmacy_gets_nothing(self):
        user = UserContext(user_id="u", role="pharmacist", pharmacy_id=PHARMACY_A)
        scope = resolve_pharmacy_scope(user, [PHARMACY_B])
        assert scope == frozenset()

    def test_restricted_user_without_pharmacy_is_refused(self):
        user = UserContext(user_id="u", role="pharmacist")
        with pytest.raises(PermissionError):
            resolve_pharmacy_scope(user, None)
