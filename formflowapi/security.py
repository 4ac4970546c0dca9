import datetime
import logging
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from formflowapi.cache import IdentityCache, InMemoryIdentityCache
from formflowapi.config import config
from formflowapi.errors import AuthenticationError
from formflowapi.models.user import Identity

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def access_token_expire_minutes() -> int:
    return config.ACCESS_TOKEN_EXPIRE_MINUTES


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lower-case an identity and unwrap guest principals.

    ``jane_example.com#EXT#@tenant.onmicrosoft.com`` becomes ``jane@example.com``.
    """
    if not email:
        return email
    email = email.strip()
    if "#EXT#@" in email:
        before_ext = email.split("#EXT#@")[0]
        if "_" in before_ext:
            user_part, _, domain_part = before_ext.rpartition("_")
            email = f"{user_part}@{domain_part}"
    return email.lower()


def create_access_token(email: str, name: Optional[str] = None):
    logger.debug("Creating access token", extra={"email": email})
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        minutes=access_token_expire_minutes()
    )
    jwt_data = {"sub": email, "exp": expire, "type": "access"}
    if name:
        jwt_data["name"] = name
    encoded_jwt = jwt.encode(jwt_data, key=config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)
    return encoded_jwt


class JWTIdentityResolver:
    def resolve(self, credential: str) -> Identity:
        try:
            payload = jwt.decode(
                credential, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM]
            )
        except ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except JWTError as e:
            raise AuthenticationError("Invalid token") from e

        email = normalize_email(payload.get("sub"))
        if not email:
            raise AuthenticationError("Token is missing 'sub' field")

        if payload.get("type") != "access":
            raise AuthenticationError("Token has incorrect type, expected 'access'")

        return Identity(email=email, display_name=payload.get("name") or email)


class CachingIdentityResolver:
    """Serves resolved identities from a cache for at most its TTL.

    Failed resolutions are never cached.
    """

    def __init__(self, resolver, cache: IdentityCache[Identity]):
        self.resolver = resolver
        self.cache = cache

    def resolve(self, credential: str) -> Identity:
        identity = self.cache.get(credential)
        if identity is not None:
            return identity
        identity = self.resolver.resolve(credential)
        self.cache.set(credential, identity)
        logger.debug("Resolved identity", extra={"email": identity.email})
        return identity

    def revoke(self, credential: str) -> None:
        self.cache.evict(credential)


identity_resolver = CachingIdentityResolver(
    JWTIdentityResolver(),
    InMemoryIdentityCache(ttl_seconds=config.IDENTITY_CACHE_TTL_SECONDS),
)


def get_identity_resolver() -> CachingIdentityResolver:
    return identity_resolver


async def get_current_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    resolver: Annotated[CachingIdentityResolver, Depends(get_identity_resolver)],
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("No token provided")
    return resolver.resolve(credentials.credentials)


async def get_optional_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    resolver: Annotated[CachingIdentityResolver, Depends(get_identity_resolver)],
) -> Optional[Identity]:
    if credentials is None:
        return None
    try:
        return resolver.resolve(credentials.credentials)
    except AuthenticationError:
        logger.debug("Ignoring unresolvable credential on public endpoint")
        return None
