"""promptloop configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from promptloop.core.errors import ConfigError

DEFAULT_SYSTEM_PROMPT = (
    "You are Promptloop, an automated scheduled execution agent.\n\n"
    "Follow these rules for every response:\n"
    "1) This is NOT a chat. Return the final deliverable directly as complete text.\n"
    "2) Be goal-centric and complete the requested task end-to-end in one response.\n"
    "3) Do NOT ask about options or follow-up questions.\n"
    "4) Do not include conversational fillers, roleplay, or meta commentary.\n"
    "5) Use clear structure and concise wording.\n"
    "6) Avoid duplicate content.\n"
    "7) Do not append a source list or citation block.\n"
    "8) If the request is impossible or unsafe, state the limitation briefly "
    "and provide the best valid alternative output.\n"
    "9) Output plain text only."
)


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class DatabaseConfig(BaseModel):
    """Store connection. ``postgresql://`` URLs select Postgres, anything else is a SQLite path."""

    url: str = ""


class ProviderConfig(BaseModel):
    """Single LLM provider."""

    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    openai: ProviderConfig = Field(default_factory=ProviderConfig)


class GenerationConfig(BaseModel):
    model: str = "openai/gpt-5-mini"
    timeout_s: float = 60.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class SecretsConfig(BaseModel):
    """Channel credential encryption secret. First non-empty value wins."""

    channel_secret_key: str = ""
    nextauth_secret: str = ""


class DeliveryConfig(BaseModel):
    timeout_s: float = 30.0


class WorkerConfig(BaseModel):
    interval_s: int = 10
    lock_stale_minutes: int = 10
    max_fails_before_disable: int = 10
    retry_delay_minutes: int = 10
    timezone: str = "UTC"
    max_jobs_per_run: int = 25
    time_budget_s: float = 250.0


class LoggingConfig(BaseModel):
    level: str = "INFO"


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings — env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        PROMPTLOOP_DATABASE__URL=postgresql://localhost/promptloop
        PROMPTLOOP_PROVIDERS__OPENAI__API_KEY=sk-...
        PROMPTLOOP_WORKER__INTERVAL_S=5
    """

    model_config = SettingsConfigDict(
        env_prefix="PROMPTLOOP_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs and must rank below the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # ── Computed properties ─────────────────────────────────

    @property
    def channel_secret(self) -> str:
        return self.secrets.channel_secret_key or self.secrets.nextauth_secret

    @property
    def is_postgres(self) -> bool:
        return self.database.url.startswith(("postgresql://", "postgres://"))

    @property
    def sqlite_path(self) -> Path:
        return Path(self.database.url.removeprefix("sqlite:///"))

    @property
    def lock_stale_minutes(self) -> int:
        """Staleness window; non-positive values fall back to the default."""
        minutes = self.worker.lock_stale_minutes
        return minutes if minutes > 0 else 10

    # ── Startup checks ──────────────────────────────────────

    def missing_required(self) -> list[str]:
        """Names of required settings that are empty."""
        missing = []
        if not self.database.url:
            missing.append("DATABASE_URL")
        if not self.providers.openai.api_key:
            missing.append("OPENAI_API_KEY")
        if not self.channel_secret:
            missing.append("CHANNEL_SECRET_KEY (or NEXTAUTH_SECRET)")
        return missing

    def require(self) -> None:
        """Raise ConfigError if any required setting is absent."""
        missing = self.missing_required()
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
