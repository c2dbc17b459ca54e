"""LLM gateway: counts analysis calls by purpose.

Wraps any LlamaIndex LLM as a CustomLLM subclass so it can be set as
Settings.llm directly. The analysis provider tags each completion with
its purpose (index_summary, explain_symbols, synthesis); the gateway
keeps per-purpose call, failure and latency totals that the engine and
the health endpoint report.

Calls are passed through unchanged. Failures are counted and re-raised.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Generator

from llama_index.core.base.llms.types import CompletionResponse, LLMMetadata
from llama_index.core.llms import CustomLLM

logger = logging.getLogger(__name__)

UNTAGGED = "general"


@dataclass
class PurposeUsage:
    calls: int = 0
    failures: int = 0
    latency_ms: float = 0.0
    prompt_chars: int = 0
    response_chars: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "avgLatencyMs": round(self.latency_ms / max(self.calls, 1), 1),
            "promptChars": self.prompt_chars,
            "responseChars": self.response_chars,
        }


class LLMGateway(CustomLLM):
    """Pass-through LLM that records usage per analysis purpose.

    Usage:
        gateway = LLMGateway(raw_llm)
        Settings.llm = gateway
        await gateway.acomplete(prompt, gateway_purpose="synthesis")
        gateway.usage()["byPurpose"]["synthesis"]["calls"]
    """

    # Private state, kept off the Pydantic model fields
    _llm: Any = None
    _usage: Dict[str, PurposeUsage] = None
    _lock: threading.Lock = None

    def __init__(self, llm: Any, **kwargs):
        super().__init__(**kwargs)
        object.__setattr__(self, "_llm", llm)
        object.__setattr__(self, "_usage", {})
        object.__setattr__(self, "_lock", threading.Lock())
        logger.info(f"LLMGateway wrapping {type(llm).__name__} (model={self.model})")

    @property
    def metadata(self) -> LLMMetadata:
        return self._llm.metadata

    @property
    def model(self) -> str:
        return getattr(self._llm, "model", "unknown")

    # ── Completions ───────────────────────────────────────────────────

    def complete(self, prompt: str, formatted: bool = False, **kwargs: Any) -> CompletionResponse:
        purpose = kwargs.pop("gateway_purpose", UNTAGGED)
        started = time.monotonic()
        try:
            response = self._llm.complete(prompt, formatted=formatted, **kwargs)
        except Exception:
            self._record(purpose, prompt, None, started)
            raise
        self._record(purpose, prompt, response.text, started)
        return response

    def stream_complete(
        self, prompt: str, formatted: bool = False, **kwargs: Any
    ) -> Generator[CompletionResponse, None, None]:
        purpose = kwargs.pop("gateway_purpose", UNTAGGED)
        started = time.monotonic()
        chunks = []
        try:
            for chunk in self._llm.stream_complete(prompt, formatted=formatted, **kwargs):
                if chunk.delta:
                    chunks.append(chunk.delta)
                yield chunk
        except Exception:
            self._record(purpose, prompt, None, started)
            raise
        self._record(purpose, prompt, "".join(chunks), started)

    async def acomplete(self, prompt: str, formatted: bool = False, **kwargs: Any) -> CompletionResponse:
        """Async completion, the path the analysis provider takes."""
        purpose = kwargs.pop("gateway_purpose", UNTAGGED)
        started = time.monotonic()
        try:
            response = await self._llm.acomplete(prompt, formatted=formatted, **kwargs)
        except Exception:
            self._record(purpose, prompt, None, started)
            raise
        self._record(purpose, prompt, response.text, started)
        return response

    # ── Usage ─────────────────────────────────────────────────────────

    def _record(self, purpose: str, prompt: str, text: Any, started: float) -> None:
        elapsed_ms = (time.monotonic() - started) * 1000
        with self._lock:
            entry = self._usage.setdefault(purpose, PurposeUsage())
            entry.calls += 1
            entry.latency_ms += elapsed_ms
            entry.prompt_chars += len(prompt)
            if text is None:
                entry.failures += 1
            else:
                entry.response_chars += len(text)

        if text is None:
            logger.error(f"LLM call failed: purpose={purpose} model={self.model}")
        else:
            logger.debug(f"LLM call: purpose={purpose} latency={elapsed_ms:.0f}ms model={self.model}")

    def usage(self) -> Dict[str, Any]:
        """Snapshot of call counts, overall and by purpose."""
        with self._lock:
            by_purpose = {name: entry.to_dict() for name, entry in sorted(self._usage.items())}
        return {
            "model": self.model,
            "calls": sum(p["calls"] for p in by_purpose.values()),
            "failures": sum(p["failures"] for p in by_purpose.values()),
            "byPurpose": by_purpose,
        }

    @classmethod
    def class_name(cls) -> str:
        return "LLMGateway"
