"""
Helpers for attaching context to log messages.
"""


def ctx(**fields) -> str:
    """Renders context as ' [key=value ...]', dropping empty values."""
    parts = [f"{k}={v}" for k, v in fields.items() if v not in (None, "")]
    return f" [{' '.join(parts)}]" if parts else ""
