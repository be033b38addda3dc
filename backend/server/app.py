"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (session registry, model stream factory)
- Register routes
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability import logger
from session.model_stream import GeminiLiveStream, ModelStream
from session.registry import SessionRegistry
from session.stream_session import StreamFactory

from server.routes import register_routes


def create_app(config: AppConfig | None = None, stream_factory: StreamFactory | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with a fake model stream
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(level=config.log_level, enabled=config.enable_json_logs)

    app = FastAPI(title="Live Voice Relay")

    app.state.config = config
    app.state.registry = SessionRegistry()

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if stream_factory is None:
        if not config.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        stream_factory = build_stream_factory(config)

    app.state.stream_factory = stream_factory

    # Routes
    register_routes(app)

    return app


def build_stream_factory(config: AppConfig) -> StreamFactory:
    """Build the per-session Gemini Live stream factory."""
    api_key = config.gemini_api_key or ""

    def factory(session_id: str) -> ModelStream:
        return GeminiLiveStream(
            api_key=api_key,
            config=config.model,
            session_id=session_id,
        )

    return factory
