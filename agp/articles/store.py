"""Generated article storage — Postgres or file-based fallback."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Protocol

from agp.config import get_settings
from agp.errors import PersistenceFailure
from agp.schemas.article import GeneratedArticle

logger = logging.getLogger(__name__)


class ArticleSink(Protocol):
    def save(self, article: GeneratedArticle) -> str: ...
    def get(self, article_id: str) -> GeneratedArticle | None: ...
    def find_by_job(self, job_id: str) -> str | None: ...


def _new_article_id() -> str:
    return f"art_{uuid.uuid4().hex[:16]}"


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresArticleSink:
    """Persist articles in generated_articles; one row per job."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres article store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS generated_articles (
                id TEXT PRIMARY KEY,
                job_id TEXT NOT NULL UNIQUE,
                company_id TEXT NOT NULL,
                website_id TEXT,
                title TEXT NOT NULL,
                slug TEXT NOT NULL,
                article_json JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        return conn

    def save(self, article: GeneratedArticle) -> str:
        import psycopg

        try:
            # job_id is unique: a repeated save returns the existing row
            row = self._conn.execute(
                """
                INSERT INTO generated_articles
                (id, job_id, company_id, website_id, title, slug, article_json, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb, NOW())
                ON CONFLICT (job_id) DO UPDATE SET job_id = EXCLUDED.job_id
                RETURNING id
                """,
                (
                    _new_article_id(), article.job_id, article.company_id, article.website_id,
                    article.title, article.slug, article.model_dump_json(),
                ),
            ).fetchone()
        except psycopg.Error as e:
            raise PersistenceFailure(article.job_id, f"article save failed: {e}") from e
        return row[0]

    def get(self, article_id: str) -> GeneratedArticle | None:
        row = self._conn.execute(
            "SELECT article_json FROM generated_articles WHERE id = %s", (article_id,),
        ).fetchone()
        if not row:
            return None
        data = row[0] if isinstance(row[0], dict) else json.loads(row[0])
        return GeneratedArticle.model_validate(data)

    def find_by_job(self, job_id: str) -> str | None:
        row = self._conn.execute(
            "SELECT id FROM generated_articles WHERE job_id = %s", (job_id,),
        ).fetchone()
        return row[0] if row else None


# ---------------------------------------------------------------------------
# File-based implementation
# ---------------------------------------------------------------------------

class FileArticleSink:
    """Persist articles as JSON plus a rendered .md next to it."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "articles"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.json"
        self._lock = threading.Lock()
        self._index: dict[str, str] = self._load_index()

    def _load_index(self) -> dict[str, str]:
        """Maps job_id -> article_id."""
        if self._index_path.exists():
            try:
                with open(self._index_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Article index unreadable (%s), starting empty", e)
        return {}

    def _save_index(self) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(self._index, f, indent=2)

    def save(self, article: GeneratedArticle) -> str:
        with self._lock:
            existing = self._index.get(article.job_id)
            if existing:
                return existing
            article_id = _new_article_id()
            try:
                with open(self._dir / f"{article_id}.json", "w", encoding="utf-8") as f:
                    json.dump(article.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
                (self._dir / f"{article_id}.md").write_text(article.markdown, encoding="utf-8")
                self._index[article.job_id] = article_id
                self._save_index()
            except OSError as e:
                raise PersistenceFailure(article.job_id, f"article save failed: {e}") from e
        logger.info("Saved article %s for job %s", article_id, article.job_id)
        return article_id

    def get(self, article_id: str) -> GeneratedArticle | None:
        path = self._dir / f"{article_id}.json"
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return GeneratedArticle.model_validate(json.load(f))

    def find_by_job(self, job_id: str) -> str | None:
        with self._lock:
            return self._index.get(job_id)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_sink: ArticleSink | None = None


def get_article_sink() -> ArticleSink:
    """Return singleton article sink (Postgres if configured, else file-based)."""
    global _sink
    if _sink is not None:
        return _sink
    settings = get_settings()
    if settings.agp_database_url:
        try:
            _sink = PostgresArticleSink(settings.agp_database_url)
            logger.info("Using Postgres article store")
        except Exception as e:
            logger.warning("Postgres article store failed (%s), falling back to file store", e)
            _sink = FileArticleSink(settings.data_dir)
    else:
        _sink = FileArticleSink(settings.data_dir)
    return _sink
