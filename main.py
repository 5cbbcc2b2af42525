"""
Main entrypoint: FastAPI server for TX Shield threat checks.

Env: API_HOST, API_PORT, LOG_LEVEL, plus the collaborator settings read by
backend_txshield.config (ETH_RPC_URL, ML_SCORER_URL, ...).

Equivalent: uvicorn backend_txshield.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from backend_txshield.txshield_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the FastAPI server in the main thread."""
    from backend_txshield.config.env import get_api_bind
    from backend_txshield.api_server.app import app
    import uvicorn

    api_host, api_port = get_api_bind()
    logger.info("main_server_starting", host=api_host, port=api_port)
    uvicorn.run(app, host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
