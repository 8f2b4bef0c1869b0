"""
FastAPI Application

Main entry point for the Merchant Analytics API.
"""

import uvicorn

from merchant_analytics.config import get_settings
from merchant_analytics.serving.api.main import create_api_app

app = create_api_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "merchant_analytics.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.monitoring.log_level.lower(),
    )


if __name__ == "__main__":
    run()
