import codecs
import json
from typing import Iterable, Iterator

DONE_MARKER = "[DONE]"
_DATA_PREFIX = "data: "
_DONE = object()


class ChatStreamConsumer:
    """
    Incremental parser for an OpenAI-style `text/event-stream` of chat deltas.

    Bytes go in through `feed`; each call returns the content tokens that
    became complete. Only whole lines are parsed, a partial trailing line is
    kept for the next call. A `data:` line whose JSON does not parse is put
    back in front of the buffer and parsing stops until more bytes arrive.
    Once `data: [DONE]` is seen the consumer is finished and ignores input.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.content = ""
        self.done = False

    def feed(self, chunk: bytes | str) -> list[str]:
        if self.done:
            return []
        self._buffer += chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        return self._drain()

    def finish(self) -> list[str]:
        """
        Signal end of stream.

        A leftover line that parses is used once; an invalid remainder is
        dropped without error.
        """
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        tokens: list[str] = []
        for line in self._buffer.split("\n"):
            try:
                parsed = self._parse_line(line)
            except ValueError:
                continue
            if parsed is _DONE:
                break
            if parsed:
                tokens.append(self._append(parsed))
        self._buffer = ""
        self.done = True
        return tokens

    def _drain(self) -> list[str]:
        tokens: list[str] = []
        while not self.done:
            newline_index = self._buffer.find("\n")
            if newline_index == -1:
                break
            line = self._buffer[:newline_index]
            self._buffer = self._buffer[newline_index + 1:]

            try:
                parsed = self._parse_line(line)
            except ValueError:
                # Incomplete JSON: wait for the rest of the line.
                self._buffer = line + "\n" + self._buffer
                break

            if parsed is _DONE:
                self.done = True
                self._buffer = ""
                break
            if parsed:
                tokens.append(self._append(parsed))
        return tokens

    def _append(self, token: str) -> str:
        self.content += token
        return token

    @staticmethod
    def _parse_line(line: str):
        if line.endswith("\r"):
            line = line[:-1]
        if line.startswith(":") or line.strip() == "":
            return None
        if not line.startswith(_DATA_PREFIX):
            return None

        payload = line[len(_DATA_PREFIX):].strip()
        if payload == DONE_MARKER:
            return _DONE

        parsed = json.loads(payload)
        return _delta_content(parsed)


def _delta_content(parsed) -> str | None:
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


def iter_chat_tokens(chunks: Iterable[bytes | str]) -> Iterator[str]:
    """Lazily yield content tokens from a chunked event stream."""
    consumer = ChatStreamConsumer()
    for chunk in chunks:
        yield from consumer.feed(chunk)
        if consumer.done:
            return
    yield from consumer.finish()

