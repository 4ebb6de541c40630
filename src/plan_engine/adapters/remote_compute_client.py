"""HTTP client for the remote targets computation endpoint."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from plan_engine.domain.errors import NetworkError, ValidationError
from plan_engine.domain.metrics import ComputedTargets, UserBiometrics
from plan_engine.domain.plans import targets_from_dict

_CLIENT_ERROR_MIN = 400
_SERVER_ERROR_MIN = 500


class RemoteComputeClient(Protocol):
    """Interface for computing targets on a remote service."""

    async def compute_targets(self, biometrics: UserBiometrics) -> ComputedTargets:
        """Compute targets remotely and return them."""


@dataclass
class HttpxRemoteComputeClient(RemoteComputeClient):
    """HTTPX-backed remote compute client."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15

    @classmethod
    def create(cls, base_url: str) -> "HttpxRemoteComputeClient":
        """Create a client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def compute_targets(self, biometrics: UserBiometrics) -> ComputedTargets:
        """POST biometrics and parse the returned targets."""
        url = f"{self.base_url}/metrics/compute"
        try:
            response = await self.http_client.post(
                url, json=_biometrics_payload(biometrics), timeout=self.timeout_seconds
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"Remote compute request failed: {exc}") from exc

        status = response.status_code
        if _CLIENT_ERROR_MIN <= status < _SERVER_ERROR_MIN:
            raise ValidationError(f"Remote compute rejected input ({status})")
        if status >= _SERVER_ERROR_MIN:
            raise NetworkError(f"Remote compute unavailable ({status})")
        try:
            return targets_from_dict(_snake_case_targets(response.json()))
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Malformed remote compute response: {exc}") from exc

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _biometrics_payload(biometrics: UserBiometrics) -> dict[str, object]:
    return {
        "weight": biometrics.weight_kg,
        "height": biometrics.height_cm,
        "age": biometrics.age,
        "sex": biometrics.sex.value,
        "activityLevel": biometrics.activity_level.value,
        "goal": biometrics.goal.value,
        "targetWeight": biometrics.target_weight_kg,
        "weeklyRateLimit": biometrics.weekly_rate_limit_kg,
    }


_CAMEL_TO_SNAKE = {
    "calorieTarget": "calorie_target",
    "proteinTarget": "protein_target",
    "waterTarget": "water_target",
    "weeklyRate": "weekly_rate",
    "estimatedWeeks": "estimated_weeks",
    "projectedDate": "projected_date",
    "calorieFloorApplied": "calorie_floor_applied",
}


def _snake_case_targets(payload: dict[str, object]) -> dict[str, object]:
    return {_CAMEL_TO_SNAKE.get(key, key): value for key, value in payload.items()}
