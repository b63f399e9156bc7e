"""Message templates - text bodies with {{key}} placeholders, keyed by name."""

from psycopg2.extensions import cursor as PgCursor

from bizchat.infra.db import txn


def get_template_content(cur: PgCursor, *, name: str) -> str | None:
    cur.execute("SELECT content FROM message_templates WHERE name = %s", (name,))
    row = cur.fetchone()
    return row[0] if row else None


class PgTemplateStore:
    """Template lookup used by text-only channels (SMS, Twilio)."""

    def get_content(self, name: str) -> str | None:
        with txn() as cur:
            return get_template_content(cur, name=name)
