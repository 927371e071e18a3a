# barstock/utils/auth.py
import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, Sequence

import httpx
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from sqlalchemy.orm import Session

from barstock.config import settings
from barstock.database import get_db
from barstock.errors import AuthError, Forbidden
from barstock.models.team import TeamMember
from barstock.services.teams import resolve_active_team, get_membership, is_route_allowed

logger = logging.getLogger(__name__)

# Authorization scheme; missing credentials are reported by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    user_id: str
    email: Optional[str] = None


class JWKSCache:
    """Key set of the auth provider, refreshed after a fixed TTL or on demand.

    On-demand refreshes are honoured at most once per `min_refresh_seconds`.
    """

    def __init__(self, url: str, ttl_seconds: int = 600, fetcher: Callable[[], dict] = None,
                 clock: Callable[[], float] = time.monotonic, min_refresh_seconds: int = 30):
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.min_refresh_seconds = min_refresh_seconds
        self._fetcher = fetcher or self._fetch_remote
        self._clock = clock
        self._lock = threading.Lock()
        self.keys: Optional[dict] = None
        self.fetched_at: Optional[float] = None

    def _fetch_remote(self) -> dict:
        response = httpx.get(self.url, timeout=10.0)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise ValueError("Malformed JWKS response")
        return data

    def is_stale(self) -> bool:
        return self.keys is None or self._clock() - self.fetched_at >= self.ttl_seconds

    def can_force_refresh(self) -> bool:
        return self.keys is None or self._clock() - self.fetched_at >= self.min_refresh_seconds

    def get_keys(self, force: bool = False) -> dict:
        with self._lock:
            if self.is_stale() or (force and self.can_force_refresh()):
                logger.info("Fetching JWKS from %s", self.url)
                self.keys = self._fetcher()
                self.fetched_at = self._clock()
            return self.keys

    def invalidate(self) -> None:
        with self._lock:
            self.keys = None
            self.fetched_at = None


class TokenVerifier:
    def __init__(self, jwks: JWKSCache, audience: Optional[str] = None,
                 algorithms: Sequence[str] = ("RS256", "ES256", "HS256")):
        self.jwks = jwks
        self.audience = audience
        self.algorithms = list(algorithms)

    def _load_keys(self, force: bool = False) -> dict:
        try:
            return self.jwks.get_keys(force=force)
        except (httpx.HTTPError, ValueError) as e:
            # Drop whatever is cached so the next request refetches
            self.jwks.invalidate()
            logger.error("JWKS fetch failed: %s", e)
            raise AuthError("Invalid token")

    def verify(self, token: str) -> AuthUser:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise AuthError("Invalid token")

        keys = self._load_keys()
        kid = header.get("kid")
        if kid and not any(k.get("kid") == kid for k in keys.get("keys", [])):
            # Unknown key id: the provider may have rotated its keys
            if not self.jwks.can_force_refresh():
                raise AuthError("Invalid token")
            keys = self._load_keys(force=True)

        try:
            payload = jwt.decode(
                token,
                keys,
                algorithms=self.algorithms,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except ExpiredSignatureError:
            raise AuthError("Token expired", expired=True)
        except JWTError as e:
            logger.info("Token verification failed: %s", e)
            raise AuthError("Invalid token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthError("Invalid token")
        return AuthUser(user_id=user_id, email=payload.get("email"))


@lru_cache
def get_token_verifier() -> TokenVerifier:
    cache = JWKSCache(
        settings.jwks_url,
        ttl_seconds=settings.JWKS_CACHE_TTL_SECONDS,
        min_refresh_seconds=settings.JWKS_MIN_REFRESH_SECONDS,
    )
    return TokenVerifier(cache, audience=settings.JWT_AUDIENCE)


# Retrieve the currently authenticated user from the bearer token
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> AuthUser:
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing Authorization header")
    return verifier.verify(credentials.credentials)


@dataclass
class TeamContext:
    user: AuthUser
    team_id: Optional[int]
    member: Optional[TeamMember]

    @property
    def user_id(self) -> str:
        return self.user.user_id


def _parse_team_header(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring malformed X-Team-Id header: %r", value)
        return None


# Resolve the team whose data the request operates on (X-Team-Id overrides when valid)
def get_team_context(
    x_team_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> TeamContext:
    team_id = resolve_active_team(db, current_user.user_id, _parse_team_header(x_team_id))
    member = get_membership(db, team_id, current_user.user_id) if team_id is not None else None
    return TeamContext(user=current_user, team_id=team_id, member=member)


# Dependency factory for per-member route permissions
def route_required(route_key: str):
    def _checker(ctx: TeamContext = Depends(get_team_context)) -> TeamContext:
        if ctx.member is not None and not is_route_allowed(ctx.member, route_key):
            raise Forbidden(f"You do not have access to '{route_key}'")
        return ctx
    return _checker
