"""HTTP implementation of the meeting backend over httpx."""

import logging
import os
from typing import Any

import httpx

from config.config_loader import BackendConfig
from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.models import AskResult, BackendMeeting, PeerResponse, to_float

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    """Pull `error` and `details` out of a failed response body."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = str(body.get("error") or f"Request failed ({response.status_code})")
    if body.get("details"):
        message += f": {body['details']}"
    return message, body


class HttpMeetingBackend(MeetingBackend):
    """Talks to the meeting REST API with a bearer token."""

    def __init__(self, config: BackendConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        headers = {"Content-Type": "application/json"}
        token = os.environ.get(config.api_token_env, "").strip() if config.api_token_env else ""
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_sec,
        )
        self._headers = headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise BackendError(operation, f"Request timed out: {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise BackendError(operation, f"Network error: {exc}") from exc

        if response.is_error:
            message, body = _error_message(response)
            logger.debug("%s failed (%d): %s", operation, response.status_code, message)
            raise BackendError(
                operation,
                message,
                status=response.status_code,
                cost_usd=to_float(body.get("costUsd")),
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(operation, "Malformed JSON in response", status=response.status_code) from exc

    async def create_desk(
        self,
        name: str,
        agent_name: str,
        color: str,
        avatar: str,
        model_id: str,
    ) -> str:
        data = await self._request(
            "create_desk",
            "POST",
            "/api/desks",
            json={
                "name": name,
                "agentName": agent_name,
                "agentColor": color,
                "avatarId": avatar,
                "deskType": "mini",
                "models": [model_id] if model_id else [],
            },
        )
        desk_id = data.get("id") if isinstance(data, dict) else None
        if not desk_id:
            raise BackendError("create_desk", "Desk created without an id")
        return str(desk_id)

    async def start_meeting(self, topic: str, participant_ids: list[str]) -> BackendMeeting:
        data = await self._request(
            "start_meeting", "POST", "/api/meetings",
            json={"topic": topic, "participants": participant_ids},
        )
        meeting = BackendMeeting.from_payload(data)
        if not meeting.id:
            raise BackendError("start_meeting", "Meeting created without an id")
        return meeting

    async def ask_participant(
        self,
        meeting_id: str,
        desk_id: str,
        content: str,
        round_number: int,
        peer_responses: list[PeerResponse] | None = None,
    ) -> AskResult:
        payload: dict[str, Any] = {"deskId": desk_id, "content": content, "round": round_number}
        if peer_responses is not None:
            payload["otherResponses"] = [
                {"agentName": r.name, "content": r.content} for r in peer_responses
            ]
        data = await self._request("ask_participant", "POST", f"/api/meetings/{meeting_id}/ask", json=payload)
        data = data if isinstance(data, dict) else {}
        return AskResult(
            text=str(data.get("response") or ""),
            cost_usd=to_float(data.get("costUsd")),
            latency_ms=to_float(data.get("latencyMs")),
            model=data.get("model"),
        )

    async def chat(self, desk_id: str, messages: list[dict[str, str]]) -> AskResult:
        data = await self._request(
            "chat", "POST", "/api/ai/chat",
            json={"deskId": desk_id, "messages": messages},
        )
        data = data if isinstance(data, dict) else {}
        return AskResult(
            text=str(data.get("content") or ""),
            cost_usd=to_float(data.get("costUsd")),
            latency_ms=to_float(data.get("latencyMs")),
            model=data.get("model"),
        )

    async def end_meeting(self, meeting_id: str) -> None:
        await self._request("end_meeting", "PATCH", f"/api/meetings/{meeting_id}/end")

    async def reactivate_meeting(self, meeting_id: str) -> BackendMeeting:
        data = await self._request("reactivate_meeting", "PATCH", f"/api/meetings/{meeting_id}/reactivate")
        return BackendMeeting.from_payload(data)

    async def get_meeting(self, meeting_id: str) -> BackendMeeting:
        data = await self._request("get_meeting", "GET", f"/api/meetings/{meeting_id}")
        return BackendMeeting.from_payload(data)

    async def list_meetings(self, status: str | None = None) -> list[BackendMeeting]:
        params = {"status": status} if status else None
        data = await self._request("list_meetings", "GET", "/api/meetings", params=params)
        if not isinstance(data, list):
            return []
        return [BackendMeeting.from_payload(m) for m in data]

    async def delete_meeting(self, meeting_id: str) -> None:
        await self._request("delete_meeting", "DELETE", f"/api/meetings/{meeting_id}")

    async def delete_all_meetings(self) -> int:
        data = await self._request("delete_all_meetings", "DELETE", "/api/meetings")
        if isinstance(data, dict):
            try:
                return int(data.get("count") or 0)
            except (TypeError, ValueError):
                return 0
        return 0

    async def close(self) -> None:
        await self._client.aclose()
