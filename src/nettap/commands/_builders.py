"""Markdown response builders shared by nettap commands.

PUBLIC API:
  - success_response: Success alert with optional detail fields
  - error_response: Error alert with optional suggestions
  - warning_response: Warning alert with optional suggestions
  - table_response: Titled table
"""

from replkit2.textkit import markdown


def _with_suggestions(builder, suggestions: list[str] | None):
    if suggestions:
        builder.text("**Try:**")
        builder.list(suggestions)
    return builder


def success_response(message: str, details: dict | None = None) -> dict:
    """Build success response.

    Args:
        message: Success message text.
        details: Field names to values, shown below the alert.
    """
    builder = markdown().element("alert", message=message, level="success")
    for key, value in (details or {}).items():
        if value is not None:
            builder.text(f"**{key}:** {value}")
    return builder.build()


def error_response(message: str, suggestions: list[str] | None = None) -> dict:
    """Build error response for markdown display commands."""
    builder = markdown().element("alert", message=message, level="error")
    return _with_suggestions(builder, suggestions).build()


def warning_response(message: str, suggestions: list[str] | None = None) -> dict:
    """Build warning response for non-fatal issues."""
    builder = markdown().element("alert", message=message, level="warning")
    return _with_suggestions(builder, suggestions).build()


def table_response(title: str, headers: list[str], rows: list[dict], summary: str | None = None) -> dict:
    """Build table response. Empty tables show a placeholder line."""
    builder = markdown().heading(title, level=2)
    if rows:
        builder.element("table", headers=headers, rows=rows)
    else:
        builder.text("_No data available_")
    if summary:
        builder.text(f"_{summary}_")
    return builder.build()
