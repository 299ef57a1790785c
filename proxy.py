"""Entry point: run the Dify to OpenAI proxy with uvicorn."""

import logging
import sys

import uvicorn

from dify2openai.config_loader import load_config, load_settings
from dify2openai.core.exceptions import ConfigurationError
from dify2openai.main import create_app

logger = logging.getLogger("dify2openai")


def main() -> int:
    try:
        settings = load_settings(load_config())
    except ConfigurationError as exc:
        logger.error(f"Refusing to start: {exc.message}")
        return 1

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
