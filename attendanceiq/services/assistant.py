import logging
import sqlite3
from datetime import date
from typing import AsyncIterator, Literal

import httpx
from pydantic import BaseModel

from attendanceiq.config import (
    AI_CONTEXT_RECORD_LIMIT,
    AI_GATEWAY_API_KEY,
    AI_GATEWAY_TIMEOUT_SECONDS,
    AI_GATEWAY_URL,
    AI_MODEL,
)
from attendanceiq.errors import GatewayError, PaymentRequired, RateLimitExceeded, ServiceNotConfigured
from attendanceiq.session import SessionContext
from database.db import AttendanceRecord, Profile, get_profile, list_attendance

logger = logging.getLogger(__name__)

NO_RECORDS_CONTEXT = "No attendance records found."
NO_PROFILE_CONTEXT = "User profile not found."

SYSTEM_PROMPT_TEMPLATE = """You are an intelligent attendance assistant for AttendanceIQ. You help users understand their attendance patterns, answer questions about their records, and provide insights.

Current date: {today}

{user_context}

{attendance_context}

Guidelines:
- Be helpful and conversational
- Provide specific insights based on the user's actual data
- Calculate statistics like attendance rate, average check-in time, etc. when asked
- Identify patterns like frequent late arrivals on specific days
- Keep responses concise but informative
- If asked about data you don't have, explain what information is available"""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage]


def format_attendance_line(record: AttendanceRecord) -> str:
    line = f"- {record['date']}: {record['status']}"
    if record.get("check_in"):
        line += f", check-in: {record['check_in']}"
    if record.get("check_out"):
        line += f", check-out: {record['check_out']}"
    if record.get("notes"):
        line += f", notes: {record['notes']}"
    return line


def build_attendance_context(records: list[AttendanceRecord]) -> str:
    if not records:
        return NO_RECORDS_CONTEXT
    lines = "\n".join(format_attendance_line(r) for r in records)
    return f"User's recent attendance records (last {AI_CONTEXT_RECORD_LIMIT} days):\n{lines}"


def build_user_context(profile: Profile | None) -> str:
    if not profile:
        return NO_PROFILE_CONTEXT
    department = profile.get("department") or "Not specified"
    return f"User: {profile['full_name']}, Email: {profile['email']}, Department: {department}"


def build_system_prompt(today: date, profile: Profile | None, records: list[AttendanceRecord]) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        today=today.isoformat(),
        user_context=build_user_context(profile),
        attendance_context=build_attendance_context(records),
    )


def load_caller_context(session: SessionContext) -> tuple[Profile | None, list[AttendanceRecord]]:
    """
    Profile and most recent records of the caller.

    Lookup failures are logged and replaced by empty values; the prompt then
    says no data was found instead of failing the request.
    """
    try:
        records = list_attendance(
            user_id=session.user_id,
            descending=True,
            limit=AI_CONTEXT_RECORD_LIMIT,
        )
    except sqlite3.Error as exc:
        logger.warning("Could not load attendance for %s: %s", session.user_id, exc)
        records = []

    try:
        profile = get_profile(session.user_id)
    except sqlite3.Error as exc:
        logger.warning("Could not load profile for %s: %s", session.user_id, exc)
        profile = None

    return profile, records


class AssistantGateway:
    """Forwards a chat to the upstream completions service and relays the stream."""

    def __init__(
        self,
        *,
        url: str = AI_GATEWAY_URL,
        api_key: str = AI_GATEWAY_API_KEY,
        model: str = AI_MODEL,
        timeout: float = AI_GATEWAY_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def open_stream(self, system_prompt: str, messages: list[dict]) -> AsyncIterator[bytes]:
        """
        Start the upstream request and return an iterator over its raw bytes.

        Upstream failures raise before any byte is relayed: 429 as
        `RateLimitExceeded`, 402 as `PaymentRequired`, anything else as
        `GatewayError`. Nothing is retried here.
        """
        if not self.api_key:
            raise ServiceNotConfigured()

        client = httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )
        request = client.build_request(
            "POST",
            self.url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": [{"role": "system", "content": system_prompt}, *messages],
                "stream": True,
            },
        )
        try:
            response = await client.send(request, stream=True)
        except BaseException:
            await client.aclose()
            raise

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
                await client.aclose()

            if response.status_code == 429:
                raise RateLimitExceeded()
            if response.status_code == 402:
                raise PaymentRequired()
            logger.error("AI gateway error: %s %s", response.status_code, body)
            raise GatewayError()

        return self._relay(client, response)

    @staticmethod
    async def _relay(client: httpx.AsyncClient, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()
            await client.aclose()
