from __future__ import annotations
import hmac
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute

from ..config import get_settings
from ..errors import Unauthorized

S = get_settings()


def _bearer_token(request: Request) -> str:
    header: Optional[str] = request.headers.get("authorization")
    if not header:
        raise Unauthorized("Missing authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Invalid authorization token")
    return token.strip()


def _matches_any(token: str, accepted: Iterable[str]) -> bool:
    # compare against every key so timing doesn't reveal which one matched
    matched = False
    for key in accepted:
        if hmac.compare_digest(token.encode(), key.encode()):
            matched = True
    return matched


def check_service_key(request: Request, accepted: Iterable[str]) -> None:
    token = _bearer_token(request)
    if not _matches_any(token, accepted):
        raise Unauthorized("Invalid authorization token")


class ServiceKeyRoute(APIRoute):
    """Checks the bearer secret before the request body is read."""

    accepted_keys: Callable[[], Iterable[str]]

    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()

        async def route_handler(request: Request) -> Response:
            check_service_key(request, self.accepted_keys())
            return await handler(request)

        return route_handler


class AnonKeyRoute(ServiceKeyRoute):
    accepted_keys = staticmethod(lambda: S.accepted_anon_keys)


class ResetKeyRoute(ServiceKeyRoute):
    """Accepts the anon key or the service-role key."""

    accepted_keys = staticmethod(lambda: S.accepted_reset_keys)
