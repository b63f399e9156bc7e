"""Message template rendering.

Templates are plain text with `{{key}}` placeholders. Unknown placeholders
are left untouched so a missing parameter is visible in the sent text
rather than silently dropped.
"""

import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")


def render_template(content: str, parameters: Mapping[str, Any]) -> str:
    """Substitute `{{key}}` placeholders with parameter values."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in parameters:
            return str(parameters[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, content)


class TemplateUnavailableError(Exception):
    """The named template could not be loaded for a text-only channel."""


def render_stored_template(store: Any, name: str, parameters: Mapping[str, Any]) -> str:
    """Load a template by name from `store` and render it.

    Raises:
        TemplateUnavailableError: No store, unknown name, or the lookup failed.
    """
    if store is None:
        raise TemplateUnavailableError("no template store configured")
    try:
        content = store.get_content(name)
    except Exception as e:
        raise TemplateUnavailableError(f"template lookup failed: {type(e).__name__}") from e
    if content is None:
        raise TemplateUnavailableError(f"template not found: {name}")
    return render_template(content, parameters)
