"""Development server entrypoint."""
from __future__ import annotations

from .app import create_app
from .config import get_settings


def run() -> None:
    """Convenience wrapper used by ``python -m stockflow.main``."""

    settings = get_settings()
    app = create_app(settings=settings)
    app.run(
        host="127.0.0.1",
        port=8000,
        debug=settings.environment == "development",
    )


if __name__ == "__main__":
    run()
