"""JWKS caching and bearer token verification."""

import base64
import time

import httpx
import pytest
from jose import jwt

from barstock.errors import AuthError
from barstock.utils.auth import JWKSCache, TokenVerifier

SECRET = "test-signing-secret-with-enough-length"
FORGED_SECRET = "forged-signing-secret-of-some-length"


def _oct_key(kid, secret=SECRET):
    k = base64.urlsafe_b64encode(secret.encode()).rstrip(b"=").decode()
    return {"kty": "oct", "kid": kid, "alg": "HS256", "k": k}


def _token(kid="k1", secret=SECRET, expires_in=300, **claims):
    payload = {"sub": "user-1", "email": "u@example.com", "exp": int(time.time()) + expires_in}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256", headers={"kid": kid})


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingFetcher:
    def __init__(self, *key_sets):
        self.key_sets = list(key_sets)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        keys = self.key_sets[min(self.calls, len(self.key_sets)) - 1]
        if isinstance(keys, Exception):
            raise keys
        return {"keys": keys}


class TestJWKSCache:
    def test_keys_reused_within_ttl(self):
        clock = FakeClock()
        fetcher = CountingFetcher([_oct_key("k1")])
        cache = JWKSCache("http://auth/jwks", ttl_seconds=600, fetcher=fetcher, clock=clock)

        cache.get_keys()
        clock.now += 599
        cache.get_keys()

        assert fetcher.calls == 1

    def test_keys_refetched_after_ttl(self):
        clock = FakeClock()
        fetcher = CountingFetcher([_oct_key("k1")])
        cache = JWKSCache("http://auth/jwks", ttl_seconds=600, fetcher=fetcher, clock=clock)

        cache.get_keys()
        clock.now += 600
        cache.get_keys()

        assert fetcher.calls == 2

    def test_invalidate_forces_refetch(self):
        fetcher = CountingFetcher([_oct_key("k1")])
        cache = JWKSCache("http://auth/jwks", fetcher=fetcher, clock=FakeClock())

        cache.get_keys()
        cache.invalidate()
        cache.get_keys()

        assert fetcher.calls == 2

    def test_forced_refresh_waits_for_min_interval(self):
        clock = FakeClock()
        fetcher = CountingFetcher([_oct_key("k1")])
        cache = JWKSCache("http://auth/jwks", fetcher=fetcher, clock=clock, min_refresh_seconds=30)

        cache.get_keys()
        cache.get_keys(force=True)
        assert fetcher.calls == 1

        clock.now += 30
        cache.get_keys(force=True)
        assert fetcher.calls == 2

    def test_remote_fetch_validates_shape(self, monkeypatch):
        monkeypatch.setattr(httpx, "get", lambda url, timeout: httpx.Response(200, json={"nope": []}, request=httpx.Request("GET", url)))
        cache = JWKSCache("http://auth/jwks")

        with pytest.raises(ValueError):
            cache.get_keys()


class TestTokenVerifier:
    def _verifier(self, *key_sets):
        fetcher = CountingFetcher(*key_sets)
        return TokenVerifier(JWKSCache("http://auth/jwks", fetcher=fetcher, clock=FakeClock())), fetcher

    def test_valid_token(self):
        verifier, _ = self._verifier([_oct_key("k1")])

        user = verifier.verify(_token())

        assert user.user_id == "user-1"
        assert user.email == "u@example.com"

    def test_expired_token_is_distinguished(self):
        verifier, _ = self._verifier([_oct_key("k1")])

        with pytest.raises(AuthError) as exc:
            verifier.verify(_token(expires_in=-60))

        assert exc.value.message == "Token expired"
        assert exc.value.expired is True

    def test_bad_signature_is_invalid(self):
        verifier, _ = self._verifier([_oct_key("k1")])

        with pytest.raises(AuthError) as exc:
            verifier.verify(_token(secret="another-secret-of-decent-length!!"))

        assert exc.value.message == "Invalid token"
        assert exc.value.expired is False

    def test_malformed_token_is_invalid(self):
        verifier, _ = self._verifier([_oct_key("k1")])

        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify("not-a-jwt")

    def test_token_without_subject_is_invalid(self):
        verifier, _ = self._verifier([_oct_key("k1")])

        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(_token(sub=""))

    def test_unknown_kid_triggers_refresh(self):
        rotated = "rotated-secret-with-enough-length!"
        clock = FakeClock()
        fetcher = CountingFetcher([_oct_key("old")], [_oct_key("new", rotated)])
        verifier = TokenVerifier(JWKSCache("http://auth/jwks", fetcher=fetcher, clock=clock, min_refresh_seconds=30))
        verifier.jwks.get_keys()
        clock.now += 30

        user = verifier.verify(_token(kid="new", secret=rotated))

        assert user.user_id == "user-1"
        assert fetcher.calls == 2

    def test_unknown_kid_refresh_is_rate_limited(self):
        clock = FakeClock()
        fetcher = CountingFetcher([_oct_key("k1")])
        verifier = TokenVerifier(JWKSCache("http://auth/jwks", fetcher=fetcher, clock=clock, min_refresh_seconds=30))
        verifier.verify(_token())
        clock.now += 60

        for _ in range(2):
            with pytest.raises(AuthError, match="Invalid token"):
                verifier.verify(_token(kid="forged", secret=FORGED_SECRET))

        # One forced refresh for the first unknown kid, none for the second
        assert fetcher.calls == 2

    def test_unknown_kid_right_after_fetch_does_not_refetch(self):
        fetcher = CountingFetcher([_oct_key("k1")])
        verifier = TokenVerifier(JWKSCache("http://auth/jwks", fetcher=fetcher, clock=FakeClock()))

        for _ in range(3):
            with pytest.raises(AuthError, match="Invalid token"):
                verifier.verify(_token(kid="forged", secret=FORGED_SECRET))

        assert fetcher.calls == 1

    def test_fetch_failure_invalidates_cache(self):
        verifier, fetcher = self._verifier(httpx.ConnectError("down"), [_oct_key("k1")])

        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(_token())
        assert verifier.jwks.keys is None

        # Next request refetches and succeeds
        assert verifier.verify(_token()).user_id == "user-1"
        assert fetcher.calls == 2

    def test_audience_checked_when_configured(self):
        fetcher = CountingFetcher([_oct_key("k1")])
        verifier = TokenVerifier(JWKSCache("http://auth/jwks", fetcher=fetcher, clock=FakeClock()), audience="authenticated")

        assert verifier.verify(_token(aud="authenticated")).user_id == "user-1"
        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(_token(aud="someone-else"))
