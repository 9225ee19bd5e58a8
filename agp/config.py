"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root .env, independent of CWD (backend/ vs project root)
_THIS_DIR = Path(__file__).resolve().parent          # agp/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider credentials
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    deepseek_api_key: str | None = None
    openrouter_api_key: str | None = None

    # OpenAI-compatible endpoints
    agp_deepseek_base_url: str = "https://api.deepseek.com"
    agp_openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Per-agent models (ids from agp.llm.catalog)
    agp_research_model: str = "deepseek-reasoner"
    agp_strategy_model: str = "deepseek-reasoner"
    agp_outline_model: str = "deepseek-chat"
    agp_writing_model: str = "deepseek-chat"
    agp_conclusion_model: str = "deepseek-chat"
    agp_meta_model: str = "deepseek-chat"
    agp_image_prompt_model: str = "gpt-4o-mini"
    agp_image_model: str = "gpt-image-1"

    # Walk the tier fallback chain when a model call fails
    agp_enable_fallback: bool = True

    # Execution budget and fan-out
    agp_job_budget_s: float = 300.0
    agp_max_fanout: int = 10
    agp_agent_max_attempts: int = 1
    agp_persist_attempts: int = 3
    agp_stale_after_s: float = 360.0

    # Job defaults (used when job metadata omits them)
    agp_default_language: str = "zh-TW"
    agp_default_region: str = "台灣"
    agp_default_word_count: int = 1500
    agp_default_image_count: int = 3

    # Data directory for the file-based stores
    agp_data_dir: str = "./data"

    # Postgres URL; when set, jobs and articles are stored in Postgres
    agp_database_url: str | None = None

    # Optional bearer token for the HTTP API
    agp_api_token: str | None = None

    # CORS origins (comma-separated)
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.agp_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def jobs_dir(self) -> Path:
        return self.data_dir / "jobs"

    @property
    def articles_dir(self) -> Path:
        return self.data_dir / "articles"

    @property
    def billing_dir(self) -> Path:
        return self.data_dir / "billing"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def agent_models(self) -> dict[str, str]:
        """Configured model id per agent kind."""
        return {
            "research": self.agp_research_model,
            "strategy": self.agp_strategy_model,
            "outline": self.agp_outline_model,
            "writer": self.agp_writing_model,
            "conclusion": self.agp_conclusion_model,
            "meta": self.agp_meta_model,
            "image": self.agp_image_prompt_model,
        }

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.articles_dir.mkdir(parents=True, exist_ok=True)
        self.billing_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
