"""Configuration loader."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError, DecisionMatrixError
from .matrix.schema import DecisionMatrix, load_decision_matrix
from .model_mapping import DEFAULT_PROVIDER, detect_provider
from .prompts import DEFAULT_STRATEGIC_QUESTIONS, StrategicQuestion

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path("~/.catalaist").expanduser()
ENV_FILE_NAME = ".env"
SETTINGS_FILE = "settings.yaml"
MATRIX_FILE = "decision_matrix.yaml"
PROMPTS_DIR = "prompts"
DEFAULT_MODEL = "gpt-4"
SUPPORTED_PROVIDERS = ("openai", "bedrock")
DEFAULT_AWS_REGION = "us-east-1"
TRUTHY_VALUES = ("1", "true", "yes", "on")


@dataclass
class ConversationSettings:
    """Thresholds that shape the clarification interview."""

    loop_threshold: int = 3
    similarity_threshold: float = 0.9
    recent_exchanges: int = 3
    summarize_after: int = 5
    max_questions: int = 5
    min_clarify_confidence: float = 0.6
    max_clarify_confidence: float = 0.85
    manual_review_threshold: float = 0.5
    auto_classify_threshold: float = 0.98
    mask_pii: bool = True


@dataclass
class Config:
    openai_api_key: str
    model: str
    provider: str
    config_dir: Path
    data_dir: Path
    conversation: ConversationSettings = field(default_factory=ConversationSettings)
    decision_matrix: Optional[DecisionMatrix] = None
    prompts_dir: Optional[Path] = None
    strategic_questions: List[StrategicQuestion] = field(
        default_factory=lambda: list(DEFAULT_STRATEGIC_QUESTIONS)
    )
    voice_enabled: bool = False
    aws_region: str = DEFAULT_AWS_REGION


def resolve_config_dir(config_dir: Path | str | None) -> Path:
    """Resolve and validate the directory containing .env + YAML files."""
    target = (
        Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR
    ).resolve()
    if not target.exists():
        raise ConfigError(
            f"Config directory {target} does not exist. "
            "Create it and add a .env file with OPENAI_API_KEY."
        )
    if not target.is_dir():
        raise ConfigError(f"Config directory {target} is not a directory")
    return target


def load_config(config_dir: Path | str | None = None) -> Config:
    """Load CatalAIst configuration from the provided or default directory."""
    root = resolve_config_dir(config_dir)
    return _load_config_from_root(root)


def _load_config_from_root(root: Path) -> Config:
    _load_env_file(root / ENV_FILE_NAME)
    settings = _load_settings(root / SETTINGS_FILE)

    model = os.getenv("CATALAIST_MODEL") or settings.get("model") or DEFAULT_MODEL
    provider = _resolve_provider(
        os.getenv("CATALAIST_PROVIDER") or settings.get("provider"),
        model,
    )
    # Bedrock authenticates through the AWS credential chain instead of an API key.
    api_key = _require_env("OPENAI_API_KEY") if provider == "openai" else os.getenv("OPENAI_API_KEY", "")

    data_dir_raw = os.getenv("CATALAIST_DATA_DIR") or settings.get("data_dir") or "data"
    data_dir = Path(data_dir_raw).expanduser()
    if not data_dir.is_absolute():
        data_dir = (root / data_dir).resolve()

    prompts_dir = root / PROMPTS_DIR
    return Config(
        openai_api_key=api_key,
        model=model,
        provider=provider,
        config_dir=root,
        data_dir=data_dir,
        conversation=_parse_conversation_settings(settings.get("conversation")),
        decision_matrix=_load_matrix(root / MATRIX_FILE),
        prompts_dir=prompts_dir if prompts_dir.is_dir() else None,
        strategic_questions=_parse_strategic_questions(settings.get("strategic_questions")),
        voice_enabled=_env_flag("CATALAIST_VOICE_ENABLED"),
        aws_region=os.getenv("AWS_REGION") or settings.get("aws_region") or DEFAULT_AWS_REGION,
    )


def _load_env_file(path: Path) -> None:
    if not path.exists():
        LOGGER.warning("No .env file found at %s; relying on shell environment.", path)
        return
    load_dotenv(dotenv_path=path, override=False)


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigError(f"{name} is not set")
    return value


def _env_flag(name: str) -> bool:
    return _is_truthy(os.getenv(name) or "")


def _is_truthy(value: str) -> bool:
    return value.strip().lower() in TRUTHY_VALUES


def _resolve_provider(requested: str | None, model: str) -> str:
    provider = (requested or detect_provider(model) or DEFAULT_PROVIDER).strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigError(
            f"Unsupported LLM provider {provider!r} for model {model}; "
            f"supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    return provider


def _load_settings(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid settings.yaml structure at {path}")
    return data


def _parse_conversation_settings(raw: Any) -> ConversationSettings:
    if raw is None:
        return ConversationSettings()
    if not isinstance(raw, dict):
        raise ConfigError("conversation settings must be a mapping")

    known = {f.name for f in fields(ConversationSettings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown conversation setting(s): {', '.join(unknown)}")

    defaults = ConversationSettings()
    values = {}
    for name, value in raw.items():
        cast = type(getattr(defaults, name))
        if cast is bool and isinstance(value, str):
            values[name] = _is_truthy(value)
            continue
        try:
            values[name] = cast(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"conversation.{name} must be a {cast.__name__}") from exc

    settings = ConversationSettings(**values)
    if settings.loop_threshold < 1:
        raise ConfigError("conversation.loop_threshold must be at least 1")
    if not settings.min_clarify_confidence <= settings.max_clarify_confidence:
        raise ConfigError("conversation.min_clarify_confidence must not exceed max_clarify_confidence")
    return settings


def _parse_strategic_questions(raw: Any) -> List[StrategicQuestion]:
    if raw is None:
        return list(DEFAULT_STRATEGIC_QUESTIONS)
    if not isinstance(raw, list):
        raise ConfigError("strategic_questions must be a list")

    questions = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("key") or not item.get("text"):
            raise ConfigError("Each strategic question needs a key and text")
        questions.append(StrategicQuestion(key=str(item["key"]), text=str(item["text"])))
    return questions


def _load_matrix(path: Path) -> Optional[DecisionMatrix]:
    if not path.exists():
        LOGGER.warning("No decision matrix at %s; classifications will not be rule-checked.", path)
        return None
    try:
        return load_decision_matrix(path)
    except DecisionMatrixError as exc:
        raise ConfigError(str(exc)) from exc
