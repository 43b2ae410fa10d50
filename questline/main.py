"""
Questline entry point.

    $ questline            # serves on API_HOST:API_PORT
"""

from __future__ import annotations

import uvicorn

from questline.core.config.config import Config


def run() -> None:
    uvicorn.run(
        "questline.api.app:create_app",
        factory=True,
        host=Config.API_HOST,
        port=Config.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
