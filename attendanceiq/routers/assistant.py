import logging
from datetime import date

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse

from attendanceiq.config import AI_GATEWAY_API_KEY, AI_GATEWAY_URL, AI_MODEL
from attendanceiq.errors import GatewayError, InvalidToken, Unauthorized
from attendanceiq.security import authenticate_token, bearer_token
from attendanceiq.services.assistant import (
    AssistantGateway,
    ChatRequest,
    build_system_prompt,
    load_caller_context,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def get_gateway() -> AssistantGateway:
    return AssistantGateway(url=AI_GATEWAY_URL, api_key=AI_GATEWAY_API_KEY, model=AI_MODEL)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=CORS_HEADERS)


@router.options("/attendance-ai")
def attendance_ai_preflight():
    return Response(headers=CORS_HEADERS)


@router.post("/attendance-ai")
async def attendance_ai(
    request: Request,
    authorization: str | None = Header(default=None),
    gateway: AssistantGateway = Depends(get_gateway),
):
    try:
        if not authorization:
            raise Unauthorized()
        token = bearer_token(authorization)
        session = await run_in_threadpool(authenticate_token, token) if token else None
        if session is None:
            raise InvalidToken()

        payload = ChatRequest.model_validate(await request.json())
        profile, records = await run_in_threadpool(load_caller_context, session)
        system_prompt = build_system_prompt(date.today(), profile, records)
        stream = await gateway.open_stream(
            system_prompt,
            [m.model_dump() for m in payload.messages],
        )
    except GatewayError as exc:
        return _error(exc.status_code, exc.message)
    except Exception as exc:
        logger.exception("Attendance AI error")
        return _error(500, str(exc) or "Unknown error")

    return StreamingResponse(stream, media_type="text/event-stream", headers=CORS_HEADERS)
