"""gdash entrypoint.

Run with:
  python -m gdash
"""

import os
import uvicorn

from gdash.app import create_app
from gdash.config import load_settings
from gdash.logging_config import get_logging_config


def main() -> None:
    host = os.getenv("GDASH_HOST", "0.0.0.0")
    port = int(os.getenv("GDASH_PORT", "8000"))
    reload = os.getenv("GDASH_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    settings = load_settings()
    # reload needs an import string; the reloaded worker rebuilds its settings
    app = "gdash.app:create_app" if reload else create_app(settings)
    uvicorn.run(
        app,
        factory=reload,
        host=host,
        port=port,
        reload=reload,
        log_config=get_logging_config(settings.log_level),
    )


if __name__ == "__main__":
    main()
