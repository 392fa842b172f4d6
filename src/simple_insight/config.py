from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class AppConfig(BaseModel):
    store_path: Path = Field(default=Path(".simple-insight/store.json"))

    # text-embedding-3-large produces 3,072 dimensions; text-embedding-3-small
    # is cheaper but the dimension has to be changed with it.
    embedding_model: str = Field(default="text-embedding-3-large")
    embedding_dimension: int = Field(default=3072, ge=1)
    embed_batch_size: int = Field(default=10, ge=1)

    chat_provider: Literal["openai", "anthropic"] = Field(default="openai")
    openai_chat_model: str = Field(default="gpt-4o-mini")
    anthropic_chat_model: str = Field(default="claude-3-5-sonnet-20241022")
    chat_max_tokens: int = Field(default=1000, ge=1)
    chat_temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    chat_frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)

    similar_lines_to_question: int = Field(default=50, ge=1)
    similar_lines_to_titles: int = Field(default=2, ge=0)
    random_note_max_draws: int = Field(default=100, ge=1)

    fun_fact_max_age_hours: float = Field(default=24.0, gt=0)

    pinecone_host: Optional[str] = Field(default=None)

    @property
    def store_path_resolved(self) -> Path:
        return self.store_path.resolve()

    @property
    def chat_model(self) -> str:
        if self.chat_provider == "anthropic":
            return self.anthropic_chat_model
        return self.openai_chat_model


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration from a YAML file.

    If `path` is None, looks for `config.yaml` in the current working directory.
    Also loads environment variables from a `.env` file if present. The
    Pinecone host may come from `PINECONE_HOST` when the file does not set it.
    """
    load_dotenv()

    if path is None:
        path = Path("config.yaml")

    raw: dict = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    if not raw.get("pinecone_host") and os.getenv("PINECONE_HOST"):
        raw["pinecone_host"] = os.getenv("PINECONE_HOST")

    try:
        cfg = AppConfig(**raw)
    except ValidationError as e:
        raise SystemExit(f"Invalid configuration in {path}:\n{e}") from e

    cfg.store_path_resolved.parent.mkdir(parents=True, exist_ok=True)
    return cfg


def require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise SystemExit(f"{name} is not set. Put it in a .env file or environment variable.")
    return value


__all__ = ["AppConfig", "load_config", "require_env"]
