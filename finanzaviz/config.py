import os
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass
class AppConfig:
    gemini_api_key: str
    gemini_base_url: str
    extraction_model_name: str
    chat_model_name: str
    llm_timeout_seconds: int
    chat_thinking_budget: int
    normalize_max_concurrency: int
    data_dir: str
    debug: bool


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_config() -> AppConfig:
    load_dotenv()

    normalize_max_concurrency = _int_env("NORMALIZE_MAX_CONCURRENCY", 4)
    normalize_max_concurrency = max(1, min(normalize_max_concurrency, 16))

    return AppConfig(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_base_url=os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"
        ),
        extraction_model_name=os.getenv("EXTRACTION_MODEL_NAME", "gemini-3-flash-preview"),
        chat_model_name=os.getenv("CHAT_MODEL_NAME", "gemini-3-pro-preview"),
        llm_timeout_seconds=_int_env("LLM_TIMEOUT_SECONDS", 120),
        chat_thinking_budget=max(0, _int_env("CHAT_THINKING_BUDGET", 16000)),
        normalize_max_concurrency=normalize_max_concurrency,
        data_dir=os.getenv("DATA_DIR", "data"),
        debug=os.getenv("DEBUG", "false").lower() == "true",
    )
