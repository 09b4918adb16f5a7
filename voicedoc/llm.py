from openai import AsyncOpenAI
import logging

from voicedoc.errors import GENERATION_FAILED_MESSAGE, UpstreamError

logger = logging.getLogger(__name__)

# Gemini via its OpenAI-compatible endpoint.
GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"


def _extract_from_content_value(content_val) -> str:
    if isinstance(content_val, str):
        return content_val
    if not isinstance(content_val, list):
        return ""

    parts: list[str] = []
    for item in content_val:
        if isinstance(item, str):
            parts.append(item)
            continue
        if not isinstance(item, dict):
            continue
        txt = item.get("text")
        if isinstance(txt, str) and txt.strip():
            parts.append(txt)
    return "\n".join(p for p in parts if p).strip()


def extract_chat_content(response_obj) -> str:
    """Pull the first choice's text out of an SDK object or a plain dict response."""
    try:
        choices = getattr(response_obj, "choices", None)
        if choices is None and isinstance(response_obj, dict):
            choices = response_obj.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0]
            msg = first.get("message") if isinstance(first, dict) else getattr(first, "message", None)
            content_val = msg.get("content") if isinstance(msg, dict) else getattr(msg, "content", None)
            return _extract_from_content_value(content_val)
    except Exception:
        logger.debug("Unexpected chat response shape", exc_info=True)
    return ""


class LLMClient:
    """
    One OpenAI-compatible endpoint with an ordered list of candidate models.

    Every call sweeps the candidates from the top: one attempt per model, no retries
    inside a candidate, first success wins. The sweep keeps no state between calls,
    so concurrent requests never influence each other's ordering.
    """

    def __init__(
        self,
        api_key,
        base_url=GEMINI_OPENAI_BASE_URL,
        models=None,
        default_headers=None,
        *,
        timeout_s: float = 60.0,
    ):
        api_key = str(api_key or "").strip()
        if not api_key:
            raise ValueError("LLMClient requires an API key.")

        self.models: list[str] = []
        for m in (models or []):
            name = str(m or "").strip()
            # Keep first occurrence.
            if name and name not in self.models:
                self.models.append(name)
        if not self.models:
            raise ValueError("LLMClient requires at least one candidate model.")

        self.base_url = base_url
        self.default_headers = dict(default_headers or {})
        self.timeout_s = float(timeout_s)
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            default_headers=self.default_headers,
            timeout=self.timeout_s,
            max_retries=0,
        )

    async def chat_create(self, **kwargs):
        """Returns ``(response, model)`` for the first candidate that answers with content."""
        last_error: Exception | None = None
        candidates = self.models
        for idx, model in enumerate(candidates):
            req = dict(kwargs)
            req["model"] = model
            logger.info("Trying model: %s", model)
            try:
                resp = await self.client.chat.completions.create(**req)
                if not extract_chat_content(resp).strip():
                    raise RuntimeError(f"Empty response from model {model}")
                if idx > 0:
                    logger.warning("LLM failover selected model #%s (%s)", idx + 1, model)
                return resp, model
            except Exception as e:
                last_error = e
                if idx + 1 < len(candidates):
                    logger.warning(
                        "Model failed, trying fallback #%s: %s -> %s",
                        idx + 2,
                        model,
                        e,
                    )
                else:
                    logger.error("Model failed: %s -> %s", model, e)
                continue

        message = str(last_error) if last_error is not None else ""
        raise UpstreamError(message or GENERATION_FAILED_MESSAGE)

    async def complete(self, prompt: str) -> tuple[str, str]:
        resp, model = await self.chat_create(messages=[{"role": "user", "content": prompt}])
        return extract_chat_content(resp), model
