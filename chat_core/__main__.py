import uvicorn

from chat_core.config.settings import settings


def main() -> None:
    uvicorn.run("chat_core.api.app:app", host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
