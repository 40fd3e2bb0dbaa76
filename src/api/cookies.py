"""
Auth cookie helpers.

Both tokens travel as http-only cookies in addition to the response body.
"""

from fastapi import Response

from src.config import Settings
from src.kernel.identity.jwt import TokenPair

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def set_auth_cookies(response: Response, token_pair: TokenPair, settings: Settings) -> None:
    """Attach both tokens as http-only cookies that expire with the tokens."""
    for name, value, max_age in (
        (ACCESS_TOKEN_COOKIE, token_pair.access_token, token_pair.access_expires_in),
        (REFRESH_TOKEN_COOKIE, token_pair.refresh_token, token_pair.refresh_expires_in),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    """Expire both auth cookies on the client."""
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )
