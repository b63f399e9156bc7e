"""DATABASE_URL handling for Alembic.

Kept apart from env.py so it can be tested without an Alembic context.
psycopg2 accepts postgres:// URLs and libpq key=value DSNs; SQLAlchemy
needs an explicit postgresql+psycopg2:// URL.
"""

from __future__ import annotations

import os
import shlex
from urllib.parse import quote_plus, urlsplit, urlunsplit

SQLALCHEMY_SCHEME = "postgresql+psycopg2"


def parse_keyword_dsn(dsn: str) -> dict[str, str]:
    """'host=h dbname=d password=\\'a b\\'' -> {'host': 'h', 'dbname': 'd', 'password': 'a b'}"""
    params: dict[str, str] = {}
    for token in shlex.split(dsn):
        key, sep, value = token.partition("=")
        if sep:
            params[key] = value
    return params


def keyword_dsn_to_url(dsn: str) -> str:
    params = parse_keyword_dsn(dsn)
    user = quote_plus(params.get("user", ""))
    password = quote_plus(params.get("password") or os.environ.get("DB_PASSWORD", ""))
    dbname = quote_plus(params.get("dbname", ""))
    host = params.get("host", "localhost")
    port = params.get("port", "5432")
    credentials = f"{user}:{password}" if password else user

    if host.startswith("/"):
        # Unix socket directory
        return f"{SQLALCHEMY_SCHEME}://{credentials}@/{dbname}?host={quote_plus(host)}"
    return f"{SQLALCHEMY_SCHEME}://{credentials}@{host}:{port}/{dbname}"


def database_url() -> str:
    """SQLAlchemy URL for DATABASE_URL.

    Raises:
        RuntimeError: DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in url:
        return keyword_dsn_to_url(url)

    scheme, netloc, path, query, fragment = urlsplit(url)
    if scheme in ("postgres", "postgresql"):
        scheme = SQLALCHEMY_SCHEME
    return urlunsplit((scheme, netloc, path, query, fragment))
