"""Generated article storage."""

from agp.articles.store import ArticleSink, FileArticleSink, PostgresArticleSink, get_article_sink

__all__ = ["ArticleSink", "FileArticleSink", "PostgresArticleSink", "get_article_sink"]
