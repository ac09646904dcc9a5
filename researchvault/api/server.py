"""Entry point for running the ResearchVault API with uvicorn."""

from __future__ import annotations

import uvicorn

from researchvault.config import API_HOST, API_PORT, LOG_LEVEL


def main() -> None:
    uvicorn.run(
        "researchvault.api.app:app",
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
