import logging
from dataclasses import dataclass, field
from typing import Iterator

import httpx

from attendanceiq.config import ASSISTANT_READ_TIMEOUT_SECONDS, ASSISTANT_URL
from attendanceiq.errors import GatewayError, PaymentRequired, RateLimitExceeded
from attendanceiq.streaming import ChatStreamConsumer

logger = logging.getLogger(__name__)


@dataclass
class ChatTranscript:
    """Chat history as shown to the user, newest message last."""

    messages: list[dict[str, str]] = field(default_factory=list)

    def add_user(self, content: str) -> None:
        self.messages.append({"role": "user", "content": content})

    def begin_assistant(self) -> None:
        self.messages.append({"role": "assistant", "content": ""})

    def replace_last_assistant(self, content: str) -> None:
        if not self.messages or self.messages[-1]["role"] != "assistant":
            self.begin_assistant()
        self.messages[-1] = {"role": "assistant", "content": content}

    def discard_empty(self) -> None:
        self.messages = [m for m in self.messages if m["content"] != ""]

    def snapshot(self) -> list[dict[str, str]]:
        return [dict(m) for m in self.messages]


class AssistantClient:
    """
    Talks to the `/attendance-ai` endpoint and replays the streamed reply
    into a `ChatTranscript` token by token.
    """

    def __init__(
        self,
        token: str,
        *,
        url: str | None = None,
        read_timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token = token
        self.url = url or ASSISTANT_URL
        self.read_timeout = ASSISTANT_READ_TIMEOUT_SECONDS if read_timeout is None else read_timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            transport=self._transport,
            timeout=httpx.Timeout(10.0, read=self.read_timeout),
        )

    def send(self, transcript: ChatTranscript, text: str) -> Iterator[list[dict[str, str]]]:
        """
        Append `text` as a user turn and stream the assistant's answer.

        Yields a transcript snapshot after every received token, the last
        message holding the reply accumulated so far.
        """
        if not text.strip():
            return
        transcript.add_user(text)
        payload = {"messages": transcript.snapshot()}
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            with self._client() as client:
                with client.stream("POST", self.url, json=payload, headers=headers) as response:
                    if response.status_code == 429:
                        raise RateLimitExceeded("Rate limit exceeded. Please try again in a moment.")
                    if response.status_code == 402:
                        raise PaymentRequired("Please add credits to continue using AI features.")
                    if response.status_code >= 400:
                        raise GatewayError("Failed to start stream", status_code=response.status_code)

                    transcript.begin_assistant()
                    consumer = ChatStreamConsumer()
                    for chunk in response.iter_bytes():
                        for _token in consumer.feed(chunk):
                            transcript.replace_last_assistant(consumer.content)
                            yield transcript.snapshot()
                        if consumer.done:
                            break
                    for _token in consumer.finish():
                        transcript.replace_last_assistant(consumer.content)
                        yield transcript.snapshot()
        except (RateLimitExceeded, PaymentRequired):
            raise
        except GatewayError:
            transcript.discard_empty()
            raise
        except httpx.HTTPError as exc:
            logger.error("Assistant stream failed: %s", exc)
            transcript.discard_empty()
            raise GatewayError("Failed to get AI response. Please try again.") from exc
