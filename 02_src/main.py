"""Run the agent runtime API with uvicorn."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from agent_core.logging_config import setup_logging

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def main():
    load_dotenv(PROJECT_ROOT / ".env")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    setup_logging(log_level)

    # Import after load_dotenv so module-level config sees .env values
    from agent_core.api import create_fastapi_app

    uvicorn.run(
        create_fastapi_app(),
        host=os.getenv("API_HOST", "localhost"),
        port=int(os.getenv("API_PORT", "8000")),
        log_level=log_level.lower(),
        # Keep the dictConfig handlers installed by setup_logging
        log_config=None,
    )


if __name__ == "__main__":
    main()
