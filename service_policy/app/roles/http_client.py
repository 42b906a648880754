"""
HTTP client for a remote role directory.
"""

from typing import List, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, get_circuit_breaker
from shared.errors import RoleDirectoryError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from .directory import RoleDirectory


class HttpRoleDirectory(RoleDirectory):
    """Reads user roles from `GET {base_url}/users/{user_id}/roles`.

    The endpoint is expected to answer `{"roles": [...]}`; a 404 means the
    user has no roles.
    """

    def __init__(self, base_url: str, timeout: float = 2.0,
                 client: Optional[httpx.AsyncClient] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 retry_config: Optional[RetryConfig] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("policy.role_directory_client")
        self._client = client
        self.circuit_breaker = circuit_breaker or get_circuit_breaker(
            "role_directory",
            failure_threshold=3,
            recovery_timeout=30.0
        )
        self._fetch = retry_on_exception(
            (httpx.TransportError,),
            config=retry_config or RetryConfig(max_attempts=2, base_delay=0.05)
        )(self._fetch_roles)

    async def get_user_roles(self, user_id: str) -> List[str]:
        """Fetch the user's roles; any failure raises RoleDirectoryError."""
        try:
            return await self.circuit_breaker.call(self._fetch, user_id)

        except CircuitBreakerOpenException as e:
            self.logger.warning("Role directory circuit open", user_id=user_id)
            raise RoleDirectoryError("circuit breaker is open", details={"user_id": user_id}) from e
        except RetryError as e:
            self.logger.error("Role directory unreachable", user_id=user_id, error=str(e.last_exception))
            raise RoleDirectoryError("unreachable", details={"error": str(e.last_exception)}) from e
        except httpx.HTTPError as e:
            self.logger.error("Role directory HTTP error", user_id=user_id, error=str(e))
            raise RoleDirectoryError("HTTP error", details={"error": str(e)}) from e

    async def _fetch_roles(self, user_id: str) -> List[str]:
        url = f"{self.base_url}/users/{user_id}/roles"

        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise RoleDirectoryError(
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code}
            )

        roles = response.json().get("roles", [])
        if not isinstance(roles, list):
            raise RoleDirectoryError("malformed roles payload", details={"user_id": user_id})
        return [str(role) for role in roles]

    async def health_check(self) -> bool:
        return not self.circuit_breaker.is_open()
