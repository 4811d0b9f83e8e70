"""
Run the API server: ``python -m feedflow``.
"""

import uvicorn

from .config import config


def main():
    uvicorn.run("feedflow.server:app", host="0.0.0.0", port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
