"""Run the service: python -m sitepulse"""
import uvicorn

from sitepulse.core.config import settings


def main():
    uvicorn.run(
        "sitepulse.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG and settings.ENVIRONMENT == "development",
    )


if __name__ == "__main__":
    main()
