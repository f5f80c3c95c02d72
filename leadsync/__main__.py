# leadsync/__main__.py
import uvicorn

from leadsync.core.config import settings


def main() -> None:
    uvicorn.run(
        "leadsync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
