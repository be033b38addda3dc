"""
ASGI entry point.

Used by uvicorn / gunicorn:

    uvicorn server.asgi:app --app-dir backend --port 3000

or `python -m server.asgi` from backend/ with HOST/PORT from the env.
"""

from dotenv import load_dotenv

load_dotenv()

import uvicorn  # pylint: disable=wrong-import-position

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()


def main() -> None:
    """Run the relay server with HOST/PORT/LOG_LEVEL from the environment."""
    config = app.state.config
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
