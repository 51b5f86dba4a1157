"""Auth service HTTP client for resolving access tokens"""

import httpx
from debt_gateway.domain.models import Principal
from debt_gateway.domain.exceptions import Unauthorized
from debt_gateway.config import settings


class AuthClient:
    """Client for the external token introspection endpoint"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.auth_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def resolve_token(self, access_token: str) -> Principal:
        """
        Resolve a bearer token into the caller's user id and role.

        Raises:
            Unauthorized: On rejected tokens, unreachable auth service, or
                malformed introspection data
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/auth/introspect",
                    json={"access_token": access_token},
                )
                response.raise_for_status()
                data = response.json()

                if not data.get("active", False):
                    raise Unauthorized("Unauthorized user")

                return Principal(user_id=int(data["user_id"]), role=str(data["role"]))

            except httpx.TimeoutException as e:
                raise Unauthorized(f"Auth service timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise Unauthorized(f"Auth service error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise Unauthorized("Auth service unavailable") from e
            except (KeyError, ValueError, TypeError) as e:
                raise Unauthorized(f"Invalid token data from auth service: {e}") from e
