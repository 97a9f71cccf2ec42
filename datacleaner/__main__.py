"""Run the API with uvicorn: ``python -m datacleaner``."""

import uvicorn

from datacleaner.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "datacleaner.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
