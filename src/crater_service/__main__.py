"""Serve the API with uvicorn on the configured host and port."""

from __future__ import annotations

import uvicorn

from crater_service.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "crater_service.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
