import json
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from voicedoc.errors import (
    INVALID_TEXT_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    ValidationError,
    VoiceDocError,
)
from voicedoc.generation import (
    DEFAULT_MODEL,
    SECONDARY_MODEL,
    DocumentGenerator,
    GenerationRequest,
    GenerationResult,
    ProxyConfig,
)
from voicedoc.llm import GEMINI_OPENAI_BASE_URL

# Setup Logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("Server")
important_logger = logging.getLogger("Server.IMPORTANT")

_NOISY_LOGGERS = (
    "httpx",
    "openai",
    "uvicorn.access",
)


def _safe_log_value(value: Any, *, max_len: int = 96) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    s = str(value).strip()
    if not s:
        return "-"
    s = " ".join(s.split())
    if len(s) > max_len:
        s = s[: max_len - 3] + "..."
    return s


def log_important(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    try:
        ev = _safe_log_value(event, max_len=64)
        if fields:
            parts = [f"{k}={_safe_log_value(v)}" for k, v in sorted(fields.items())]
            important_logger.log(level, f"IMPORTANT {ev} | " + " ".join(parts))
        else:
            important_logger.log(level, f"IMPORTANT {ev}")
    except Exception:
        logger.exception("Failed to emit important log")


# ============================================
# CONFIGURATION
# ============================================

DEFAULT_CONFIG = {
    "api_key": "",
    "base_url": GEMINI_OPENAI_BASE_URL,
    # Preferred model; empty means the built-in default.
    "model": "",
    "fallback_models": [SECONDARY_MODEL],
    "api_extra_headers": {},
    "request_timeout_seconds": 60.0,
    "cors_allow_origins": ["*"],
    "verbose_logging": False,
}

_PROJECT_ROOT = Path(__file__).resolve().parent


def _get_config_path() -> Path:
    configured = os.environ.get("VOICEDOC_CONFIG_PATH")
    if configured:
        return Path(configured).expanduser().resolve()
    return (Path.cwd() / "settings.json").resolve()


def _coerce_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("1", "true", "yes", "on", "y"):
            return True
        if s in ("0", "false", "no", "off", "n", ""):
            return False
    return default


def _coerce_str(value: object, default: str, *, strip: bool = True, max_len: int | None = None) -> str:
    if value is None:
        out = default
    elif isinstance(value, str):
        out = value
    else:
        out = str(value)
    if strip:
        out = out.strip()
    if max_len is not None and max_len >= 0:
        out = out[:max_len]
    return out


def _coerce_int_in_range(value: object, default: int, *, min_v: int | None = None, max_v: int | None = None) -> int:
    try:
        out = int(float(value))
    except Exception:
        out = int(default)
    if min_v is not None and out < min_v:
        out = min_v
    if max_v is not None and out > max_v:
        out = max_v
    return out


def _coerce_float_in_range(
    value: object,
    default: float,
    *,
    min_v: float | None = None,
    max_v: float | None = None,
) -> float:
    try:
        out = float(value)
    except Exception:
        out = float(default)
    if min_v is not None and out < min_v:
        out = min_v
    if max_v is not None and out > max_v:
        out = max_v
    return out


def _coerce_str_list(value: object, default: list[str], *, max_items: int = 8) -> list[str]:
    if isinstance(value, str):
        value = [p for p in value.split(",")]
    if not isinstance(value, (list, tuple)):
        return list(default)
    out: list[str] = []
    for item in value:
        s = _coerce_str(item, "", max_len=512)
        if s and s not in out:
            out.append(s)
        if len(out) >= max_items:
            break
    return out


def _coerce_headers(value: object) -> dict[str, str]:
    if isinstance(value, dict):
        out: dict[str, str] = {}
        for k, v in value.items():
            ks = str(k).strip()
            vs = str(v).strip()
            if ks and vs:
                out[ks] = vs
        return out
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return {}
        try:
            data = json.loads(s)
        except Exception:
            return {}
        return _coerce_headers(data)
    return {}


def _sanitize_config_values(raw: dict | None, *, base: dict | None = None) -> dict:
    src: dict[str, object] = {}
    if isinstance(base, dict):
        src.update(base)
    if isinstance(raw, dict):
        src.update(raw)

    out: dict[str, object] = dict(DEFAULT_CONFIG)
    out["api_key"] = _coerce_str(src.get("api_key"), "", max_len=4096)
    out["base_url"] = _coerce_str(src.get("base_url"), "", max_len=2048) or str(DEFAULT_CONFIG["base_url"])
    out["model"] = _coerce_str(src.get("model"), "", max_len=512)
    out["fallback_models"] = _coerce_str_list(src.get("fallback_models"), list(DEFAULT_CONFIG["fallback_models"]))
    out["api_extra_headers"] = _coerce_headers(src.get("api_extra_headers"))
    out["request_timeout_seconds"] = _coerce_float_in_range(
        src.get("request_timeout_seconds"),
        float(DEFAULT_CONFIG["request_timeout_seconds"]),
        min_v=1.0,
        max_v=600.0,
    )
    out["cors_allow_origins"] = _coerce_str_list(src.get("cors_allow_origins"), ["*"]) or ["*"]
    out["verbose_logging"] = _coerce_bool(src.get("verbose_logging"), bool(DEFAULT_CONFIG["verbose_logging"]))
    return out


def _apply_env_overrides(cfg: dict) -> dict:
    out = dict(cfg)
    env_key = (os.environ.get("GEMINI_API_KEY") or "").strip()
    if env_key:
        out["api_key"] = env_key
    env_model = (os.environ.get("GEMINI_MODEL") or "").strip()
    if env_model:
        out["model"] = env_model
    if "VOICEDOC_VERBOSE" in os.environ:
        out["verbose_logging"] = _coerce_bool(os.environ.get("VOICEDOC_VERBOSE"), False)
    return out


def load_config() -> dict:
    loaded: dict = {}
    path = _get_config_path()
    try:
        if path.is_file():
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                loaded = data
    except Exception:
        logger.exception("Failed to load settings file")
    return _sanitize_config_values(_apply_env_overrides(_sanitize_config_values(loaded, base=DEFAULT_CONFIG)))


def _apply_runtime_log_levels(cfg: dict) -> None:
    verbose = bool((cfg or {}).get("verbose_logging", False))

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("voicedoc").setLevel(logging.DEBUG if verbose else logging.INFO)
    important_logger.setLevel(logging.INFO)

    noisy_level = logging.INFO if verbose else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


DEFAULT_PORT = 8000


def _get_server_port() -> int:
    return _coerce_int_in_range(os.environ.get("PORT"), DEFAULT_PORT, min_v=1, max_v=65535)


def _proxy_config_from(cfg: dict) -> ProxyConfig:
    return ProxyConfig(
        credential=_coerce_str(cfg.get("api_key"), ""),
        preferred_model=_coerce_str(cfg.get("model"), ""),
        fallback_models=tuple(_coerce_str_list(cfg.get("fallback_models"), [SECONDARY_MODEL])),
        base_url=_coerce_str(cfg.get("base_url"), GEMINI_OPENAI_BASE_URL) or GEMINI_OPENAI_BASE_URL,
        request_timeout_s=_coerce_float_in_range(cfg.get("request_timeout_seconds"), 60.0, min_v=1.0, max_v=600.0),
        extra_headers=_coerce_headers(cfg.get("api_extra_headers")),
    )


# Configuration
config = load_config()
_apply_runtime_log_levels(config)

generator: Optional[DocumentGenerator] = None


def init_generator_from_config() -> bool:
    global generator

    proxy_cfg = _proxy_config_from(config)
    if not proxy_cfg.credential:
        generator = None
        log_important("llm.unconfigured", level=logging.ERROR, missing="GEMINI_API_KEY")
        return False

    generator = DocumentGenerator(proxy_cfg)
    log_important(
        "llm.configured",
        base_url=proxy_cfg.base_url,
        models=",".join(proxy_cfg.candidate_models()),
        timeout_s=proxy_cfg.request_timeout_s,
    )
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Server starting...")
    log_important("server.starting")
    if generator is None and not init_generator_from_config():
        logger.error("Missing GEMINI_API_KEY in environment")
        raise RuntimeError("GEMINI_API_KEY is not configured")
    yield
    # Shutdown
    logger.info("Shutting down...")
    log_important("server.stopping")


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.get("cors_allow_origins") or ["*"]),
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(GenerationResult.failed(message).to_dict(), status_code=status_code)


# ============================================
# HTTP ROUTES
# ============================================

@app.post("/api/generate")
async def api_generate(request: Request):
    try:
        try:
            data = await request.json()
        except Exception:
            raise ValidationError(INVALID_TEXT_MESSAGE)

        req = GenerationRequest.from_payload(data)
        if generator is None:
            raise RuntimeError("LLM not configured")

        started = time.monotonic()
        result = await generator.generate(req)
        log_important(
            "generate.ok",
            document_type=req.document_type,
            chars=len(req.text),
            ms=int((time.monotonic() - started) * 1000),
        )
        return JSONResponse(result.to_dict(), status_code=200)
    except VoiceDocError as e:
        if e.status_code >= 500:
            logger.error("/api/generate error: %s", e.message)
            log_important("generate.failed", level=logging.WARNING, status=e.status_code, error=e.message)
        return _error_response(e.message, e.status_code)
    except Exception as e:
        logger.exception("/api/generate error")
        return _error_response(str(e) or UNKNOWN_ERROR_MESSAGE, 500)


# ============================================
# STATIC WEB BUILD
# ============================================

def _find_static_dir(root: Path) -> Optional[Path]:
    for name in ("dist", "web-build"):
        candidate = (root / name).resolve()
        if candidate.is_dir():
            return candidate
    return None


_STATIC_DIR = _find_static_dir(_PROJECT_ROOT)
if _STATIC_DIR is not None:
    logger.info("Serving static web from: %s", _STATIC_DIR)
else:
    logger.info("No static web build found. API-only mode.")


@app.get("/{path:path}")
def get_static(path: str):
    """Serve the web bundle; unknown paths fall back to index.html for client-side routing."""
    static_dir = _STATIC_DIR
    if static_dir is None:
        return JSONResponse({"detail": "Not Found"}, status_code=404)

    index_path = static_dir / "index.html"
    normalized = Path(path or "").as_posix().lstrip("/")
    if normalized and ".." not in normalized.split("/"):
        file_path = (static_dir / normalized).resolve()
        try:
            file_path.relative_to(static_dir)
        except ValueError:
            return JSONResponse({"detail": "Not Found"}, status_code=404)
        if file_path.is_file():
            return FileResponse(str(file_path))

    if normalized.startswith("api/") or not index_path.is_file():
        return JSONResponse({"detail": "Not Found"}, status_code=404)
    return FileResponse(str(index_path))


# ============================================
# SERVER STARTUP
# ============================================

def start_server(host: str, port: int):
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    if not init_generator_from_config():
        # Fail fast to avoid silent errors
        logger.error("Missing GEMINI_API_KEY in environment")
        sys.exit(1)

    server_host = "0.0.0.0"
    server_port = _get_server_port()
    logger.info(f"Document proxy server starting on http://{server_host}:{server_port}/")
    try:
        start_server(server_host, server_port)
    except KeyboardInterrupt:
        logger.info("Stopping...")
