import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, runtime_checkable

from langchain_ollama import ChatOllama
from langchain_core.messages import HumanMessage, SystemMessage

from core.errors import ClassifierCallError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an AI assistant that analyzes text for keyword mentions and buying intent."
)


@dataclass(frozen=True)
class TokenUsage:
    prompt_units: int
    completion_units: int

    @property
    def total_units(self) -> int:
        return self.prompt_units + self.completion_units


@dataclass(frozen=True)
class ClassifierResponse:
    text: str
    usage: Optional[TokenUsage] = None
    latency_ms: int = 0


@runtime_checkable
class ClassifierService(Protocol):
    """
    What the intent classifier needs from a text-classifier backend.
    OllamaClient is the default; any object with a model name and an async
    generate() returning a ClassifierResponse can stand in for it.
    """
    model: str

    async def generate(self, prompt: str) -> ClassifierResponse:
        ...


class OllamaClient:
    """
    LangChain-based Ollama client with retry logic and proper connection handling.
    Any LangChain chat model can be passed as ``llm`` in place of ChatOllama.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
        llm: Any = None,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        # Strip /v1 suffix if present
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip('/')
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = llm or ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            format="json",
            num_ctx=4096,  # Context window size
        )

    async def _invoke_with_retry(self, messages: List[Any]) -> Any:
        """
        Invoke LLM with retry logic for connection failures.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.llm.ainvoke(messages),
                    timeout=self.timeout,
                )
                return response

            except asyncio.TimeoutError:
                last_exception = TimeoutError(
                    f"Request timed out after {self.timeout}s"
                )
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries}: Timeout, retrying..."
                )

            except Exception as e:
                last_exception = e
                error_msg = str(e)

                # Check for connection errors
                if "connection" in error_msg.lower() or "connect" in error_msg.lower():
                    logger.warning(
                        f"Attempt {attempt}/{self.max_retries}: Connection error - {error_msg} (base_url={self.base_url}, model={self.model})"
                    )
                else:
                    # For non-connection errors, don't retry
                    raise ClassifierCallError(f"Classifier call failed: {e}") from e

            if attempt < self.max_retries:
                delay = self.retry_delay * attempt
                await asyncio.sleep(delay)

        raise ClassifierCallError(
            f"Classifier call failed after {self.max_retries} attempts: {last_exception}"
        ) from last_exception

    async def generate(self, prompt: str) -> ClassifierResponse:
        """
        Send a prompt and return the raw text with token usage, when reported.
        """
        start = time.time()

        response = await self._invoke_with_retry(
            [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]
        )

        latency_ms = int((time.time() - start) * 1000)
        content = response.content if isinstance(response.content, str) else str(response.content)

        if not content.strip():
            raise ClassifierCallError("Empty response from classifier")

        return ClassifierResponse(
            text=content,
            usage=_usage_from(response),
            latency_ms=latency_ms,
        )


def _usage_from(response: Any) -> Optional[TokenUsage]:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return None
    return TokenUsage(
        prompt_units=int(usage.get("input_tokens") or 0),
        completion_units=int(usage.get("output_tokens") or 0),
    )
