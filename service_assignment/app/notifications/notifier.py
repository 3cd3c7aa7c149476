"""
Outbound assignment notifications to the dispute orchestrator.
"""

import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx

from shared.circuit_breaker import CircuitBreakerManager
from shared.errors import ConfigurationError, ExternalServiceError
from shared.logging import get_logger

from ..domain.entities import Configuration
from .resolver import resolve_body, resolve_url

TOKEN_AUTH_TYPES = ("BEARER", "OAUTH2")


class AssignmentNotifier(Protocol):
    async def notify(self,
                     configuration: Configuration,
                     disputes: Sequence[Mapping[str, Any]],
                     resolver_data: Mapping[str, Any]) -> Any:
        ...

    async def close(self):
        ...


class OrchestratorNotifier:
    """Sends assignment notifications using each company's endpoint configuration."""

    def __init__(self,
                 timeout: float = 30.0,
                 token_ttl_seconds: int = 900,
                 verify_tls: bool = True,
                 client: Optional[httpx.AsyncClient] = None,
                 breakers: Optional[CircuitBreakerManager] = None):
        self.token_ttl_seconds = token_ttl_seconds
        self.logger = get_logger("assignment.notifier")
        self.breakers = breakers or CircuitBreakerManager()
        self._client = client or httpx.AsyncClient(timeout=timeout, verify=verify_tls)
        self._token_cache: Dict[int, Tuple[str, float]] = {}

    async def close(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def notify(self,
                     configuration: Configuration,
                     disputes: Sequence[Mapping[str, Any]],
                     resolver_data: Mapping[str, Any]) -> Any:
        """Notify the orchestrator of new dispute assignments."""
        breaker = self.breakers.get_circuit_breaker(f"notifier.company.{configuration.company_id}")
        return await breaker.call(self._send_notification, configuration, disputes, resolver_data)

    async def _send_notification(self,
                                 configuration: Configuration,
                                 disputes: Sequence[Mapping[str, Any]],
                                 resolver_data: Mapping[str, Any]) -> Any:
        headers = dict(configuration.custom_headers or {})
        auth: Optional[httpx.Auth] = None

        if configuration.auth_type in TOKEN_AUTH_TYPES:
            token = await self.get_auth_token(configuration, resolver_data)
            headers["Authorization"] = f"Bearer {token}"
        elif configuration.auth_type == "API_KEY" and configuration.auth_api_key:
            headers["X-API-Key"] = configuration.auth_api_key
        elif configuration.auth_type == "BASIC":
            auth = httpx.BasicAuth(configuration.auth_username or "", configuration.auth_password or "")

        url = resolve_url(configuration.notification_endpoint, configuration.path_variable_mapping, resolver_data)
        body = self.build_notification_body(configuration, disputes, resolver_data)

        response = await self._request(
            configuration.notification_method, url, json=body, headers=headers, auth=auth
        )
        self.logger.info(
            "Assignment notification sent",
            company_id=configuration.company_id,
            configuration_id=configuration.id,
            status_code=response.status_code,
            disputes=len(disputes)
        )
        return _json_or_none(response)

    @staticmethod
    def build_notification_body(configuration: Configuration,
                                disputes: Sequence[Mapping[str, Any]],
                                resolver_data: Mapping[str, Any]) -> Dict[str, Any]:
        """``{"assignments": [...]}`` plus any extra fields named in the body mapping."""
        body: Dict[str, Any] = {"assignments": [dict(dispute) for dispute in disputes]}

        mapping = configuration.body_variable_mapping or {}
        extra_template = {key: "{" + key + "}" for key in mapping if key != "assignments"}
        if extra_template:
            body.update(resolve_body(extra_template, mapping, resolver_data))

        return body

    async def get_auth_token(self, configuration: Configuration, resolver_data: Mapping[str, Any]) -> str:
        """Fetch a bearer token, cached per company."""
        cached = self._token_cache.get(configuration.company_id)
        if cached and time.monotonic() < cached[1]:
            return cached[0]

        password = configuration.auth_password or ""
        if password.startswith("$2a$"):
            raise ConfigurationError(
                "Password is stored as a bcrypt hash; a reversible credential is required",
                {"configuration_id": configuration.id}
            )

        body: Dict[str, Any] = {
            "grant_type": "password",
            "username": configuration.auth_username,
            "password": password,
        }
        additional = (configuration.auth_additional_fields or {}).get("additionalClaims")
        if additional:
            body["additionalClaims"] = resolve_body(additional, configuration.body_variable_mapping, resolver_data)

        url = resolve_url(configuration.token_endpoint, configuration.path_variable_mapping, resolver_data)
        response = await self._request(
            configuration.token_method, url, json=body, headers=dict(configuration.custom_headers or {})
        )

        payload = _json_or_none(response)
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ExternalServiceError("orchestrator", "Invalid token response", {"url": url})

        self._token_cache[configuration.company_id] = (token, time.monotonic() + self.token_ttl_seconds)
        return token

    async def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None,
                       headers: Optional[Dict[str, str]] = None,
                       auth: Optional[httpx.Auth] = None) -> httpx.Response:
        method = (method or "POST").upper()
        kwargs: Dict[str, Any] = {"headers": headers or {}}
        if auth is not None:
            kwargs["auth"] = auth
        if method != "GET":
            kwargs["json"] = json

        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "orchestrator",
                f"{method} {url} returned {e.response.status_code}",
                {"status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("orchestrator", f"{method} {url} failed: {e}") from e

        return response


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def build_dispute(document_number: Optional[str], claim_id: str, assigned_user_dud: str) -> Dict[str, Any]:
    """One entry of the notification ``assignments`` list."""
    return {
        "documentNumber": document_number,
        "claimId": claim_id,
        "newAssignedUserId": assigned_user_dud,
    }


def build_resolver_data(assignment: Mapping[str, Any],
                        user: Mapping[str, Any],
                        company: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Data tree that endpoint and body placeholders resolve against."""
    return {
        "assignment": dict(assignment),
        "user": dict(user),
        "company": dict(company),
    }


__all__: List[str] = [
    "AssignmentNotifier",
    "OrchestratorNotifier",
    "build_dispute",
    "build_resolver_data",
]
