from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from voicedoc.errors import INVALID_TEXT_MESSAGE, ValidationError
from voicedoc.llm import GEMINI_OPENAI_BASE_URL, LLMClient

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TYPE = "보고서"
DEFAULT_MODEL = "gemini-2.5-flash"
SECONDARY_MODEL = "gemini-1.5-flash"
MIN_TEXT_LENGTH = 3


@dataclass(frozen=True)
class ProxyConfig:
    credential: str
    preferred_model: str = ""
    fallback_models: tuple[str, ...] = (SECONDARY_MODEL,)
    base_url: str = GEMINI_OPENAI_BASE_URL
    request_timeout_s: float = 60.0
    extra_headers: dict[str, str] = field(default_factory=dict)

    def candidate_models(self) -> list[str]:
        """Preferred (or built-in default) model first, then the fallbacks, without repeats."""
        out: list[str] = []
        for name in (self.preferred_model or DEFAULT_MODEL, *self.fallback_models):
            n = (name or "").strip()
            if n and n not in out:
                out.append(n)
        return out


@dataclass(frozen=True)
class GenerationRequest:
    text: str
    document_type: str = DEFAULT_DOCUMENT_TYPE

    @classmethod
    def from_payload(cls, payload: Any) -> "GenerationRequest":
        if not isinstance(payload, dict):
            raise ValidationError(INVALID_TEXT_MESSAGE)
        text = payload.get("text")
        if not isinstance(text, str) or len(text.strip()) < MIN_TEXT_LENGTH:
            raise ValidationError(INVALID_TEXT_MESSAGE)
        document_type = payload.get("documentType")
        if not isinstance(document_type, str) or not document_type.strip():
            document_type = DEFAULT_DOCUMENT_TYPE
        return cls(text=text, document_type=document_type.strip())


@dataclass(frozen=True)
class GenerationResult:
    content: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, content: str) -> "GenerationResult":
        return cls(content=content)

    @classmethod
    def failed(cls, error: str) -> "GenerationResult":
        return cls(error=error)

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        return {"content": self.content or ""}


def build_document_prompt(text: str, document_type: str = DEFAULT_DOCUMENT_TYPE) -> str:
    doc_type = (document_type or "").strip() or DEFAULT_DOCUMENT_TYPE
    return (
        f"사용자가 말한 내용을 바탕으로 {doc_type} 형식의 한국어 문서를 작성하세요. "
        f"내용은 다음과 같습니다:\n\n{text}\n\n"
        "요구사항:\n"
        "- 제목, 요약, 본문(항목) 형태로 명확하게 구조화\n"
        "- 중복 제거 및 문장 다듬기\n"
        "- 핵심만 압축, 불필요한 표현 제거\n"
        "- 맞춤법 및 띄어쓰기 보정"
    )


class DocumentGenerator:
    """Validated request in, generated document out. Holds no per-request state."""

    def __init__(self, config: ProxyConfig, llm_client: LLMClient | None = None) -> None:
        self.config = config
        self.llm_client = llm_client or LLMClient(
            api_key=config.credential,
            base_url=config.base_url,
            models=config.candidate_models(),
            default_headers=config.extra_headers,
            timeout_s=config.request_timeout_s,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        prompt = build_document_prompt(request.text, request.document_type)
        content, model = await self.llm_client.complete(prompt)
        logger.debug("Document generated by %s (%d chars)", model, len(content))
        return GenerationResult.ok(content)
