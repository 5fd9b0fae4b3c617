# src/ytrewards/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from ytrewards.config import load_dotenv_if_present


def main() -> None:
    # Load .env early so YTR_* vars exist before anything reads them.
    load_dotenv_if_present()

    from ytrewards.api.app import create_app
    from ytrewards.structured_logging import configure_structured_logging

    configure_structured_logging()

    host = os.getenv("YTR_API_HOST", "127.0.0.1")
    port = int(os.getenv("YTR_API_PORT", "8080"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
