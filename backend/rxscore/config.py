# backend/rxscore/config.py
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class ConfigError(Exception):
    pass


class Settings(BaseModel):
    port: int = 8080
    database_url: Optional[str] = None
    enable_db: bool = False
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    default_model: str = ""
    interaction_api_url: Optional[str] = None
    max_body_bytes: int = 1 << 20
    cors_origins: List[str] = ["*"]


def _get_env(key: str, fallback: str = "") -> str:
    val = os.getenv(key)
    return val if val else fallback


def _get_int(key: str, fallback: int) -> int:
    try:
        return int(_get_env(key, str(fallback)))
    except ValueError:
        raise ConfigError(f"{key} must be an integer")


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)

    settings = Settings(
        port=_get_int("PORT", 8080),
        database_url=_get_env("DATABASE_URL") or None,
        enable_db=_get_env("ENABLE_DB", "false").lower() == "true",
        gemini_api_key=_get_env("GEMINI_API_KEY") or None,
        gemini_model=_get_env("GEMINI_MODEL", "gemini-2.5-flash"),
        openai_api_key=_get_env("OPENAI_API_KEY") or None,
        openai_model=_get_env("OPENAI_MODEL", "gpt-4o"),
        default_model=_get_env("DEFAULT_MODEL").lower(),
        interaction_api_url=_get_env("INTERACTION_API_URL") or None,
        max_body_bytes=_get_int("MAX_BODY_BYTES", 1 << 20),
        cors_origins=[o.strip() for o in _get_env("CORS_ORIGINS", "*").split(",") if o.strip()],
    )

    if settings.enable_db and not settings.database_url:
        raise ConfigError("DATABASE_URL is required when ENABLE_DB=true")

    return settings


def available_models(settings: Settings) -> Dict[str, bool]:
    return {
        "mock": True,
        "gemini": bool(settings.gemini_api_key),
        "openai": bool(settings.openai_api_key),
    }


def default_model(settings: Settings) -> str:
    models = available_models(settings)
    env_default = settings.default_model
    if env_default and env_default != "mock" and models.get(env_default):
        return env_default
    if models["openai"]:
        return "openai"
    if models["gemini"]:
        return "gemini"
    return "mock"
