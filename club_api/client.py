"""
Club administration API HTTP client

Thin async wrappers over the REST collaborators the billing engine
consumes. Responses are either the bare JSON value or wrapped as
{"data": ...}; both are unwrapped here. No retries: payment submission
must never be replayed automatically.
"""
import httpx
from typing import Any, Dict, List, Optional, Type, TypeVar
from loguru import logger
from pydantic import BaseModel, ValidationError

from billing.models import Club, Group, Payment, Registration

from .config import api_config

ModelT = TypeVar("ModelT", bound=BaseModel)


class ClubApiError(Exception):
    """Collaborator call failed (transport error or non-2xx status)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class Endpoints:
    """REST endpoints"""

    CLUBS = "/clubs"
    GROUPS_BY_CLUB = "/groups/club/{club_id}"
    GROUP = "/groups/{group_id}"
    REGISTRATIONS_BY_ASSIGNMENT = "/registrations/assignment/{assignment_id}"
    REGISTRATION = "/registrations/{registration_id}"
    PAYMENTS = "/payments"
    PAYMENTS_BY_ATHLETE = "/payments/athlete/{athlete_id}"


def unwrap(payload: Any) -> Any:
    """{"data": X} -> X"""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _as_list(payload: Any) -> List[Any]:
    payload = unwrap(payload)
    return payload if isinstance(payload, list) else []


class ClubApiClient:
    """Club administration API client"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or api_config.base_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout if timeout is not None else api_config.request_timeout)
        self.headers = {"Accept": "application/json"}
        token = token if token is not None else api_config.token
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Run a request and return the decoded JSON body (None when empty)"""
        if self._client is None:
            raise RuntimeError("ClubApiClient must be used with 'async with'")

        try:
            response = await self._client.request(method, endpoint, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(f"{method} {endpoint} -> {status_code}")
            raise ClubApiError(f"{method} {endpoint} returned {status_code}", status_code) from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            raise ClubApiError(f"{method} {endpoint} failed: {e}") from e

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _parse_many(model: Type[ModelT], items: List[Any]) -> List[ModelT]:
        parsed = []
        for item in items:
            try:
                parsed.append(model.model_validate(item))
            except ValidationError as e:
                logger.error(f"{model.__name__} parse error: {e}")
        return parsed

    # ==================== clubs / groups ====================

    async def list_clubs(self) -> List[Club]:
        payload = await self._request("GET", Endpoints.CLUBS)
        return self._parse_many(Club, _as_list(payload))

    async def list_groups_by_club(self, club_id: str) -> List[Dict[str, Any]]:
        """Raw group payloads of a club (legacy roster shapes preserved)"""
        payload = await self._request("GET", Endpoints.GROUPS_BY_CLUB.format(club_id=club_id))
        return [g for g in _as_list(payload) if isinstance(g, dict)]

    async def get_group(self, group_id: str) -> Group:
        payload = await self._request("GET", Endpoints.GROUP.format(group_id=group_id))
        return Group.model_validate(unwrap(payload))

    # ==================== registrations ====================

    async def list_registrations_by_assignment(
        self,
        assignment_id: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Registration]:
        payload = await self._request(
            "GET",
            Endpoints.REGISTRATIONS_BY_ASSIGNMENT.format(assignment_id=assignment_id),
            params=filters,
        )
        return self._parse_many(Registration, _as_list(payload))

    async def list_unpaid_registrations_by_assignment(self, assignment_id: str) -> List[Registration]:
        """Registrations whose enrollment fee is not recorded"""
        return await self.list_registrations_by_assignment(
            assignment_id, {"registration_pay": "false"}
        )

    async def update_registration(self, registration_id: str, patch: Dict[str, Any]) -> Any:
        """
        Patch a registration

        Args:
            patch: any of registration_date, registration_pay, registration_amount
        """
        payload = await self._request(
            "PATCH",
            Endpoints.REGISTRATION.format(registration_id=registration_id),
            json=patch,
        )
        return unwrap(payload)

    # ==================== payments ====================

    async def create_payment(self, record: Dict[str, Any]) -> Any:
        """
        Create a monthly payment

        Args:
            record: amount, group_id, athlete_id, payment_date,
                payment_start, payment_end

        Returns:
            created payment (object with _id, or the bare id)
        """
        payload = await self._request("POST", Endpoints.PAYMENTS, json=record)
        return unwrap(payload)

    async def list_payments_by_athlete(self, athlete_id: str) -> List[Payment]:
        payload = await self._request(
            "GET", Endpoints.PAYMENTS_BY_ATHLETE.format(athlete_id=athlete_id)
        )
        return self._parse_many(Payment, _as_list(payload))
