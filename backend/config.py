"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    MODEL_RESPONSE_TIMEOUT_S_DEFAULT,
    MODEL_SETUP_TIMEOUT_S_DEFAULT,
)


DEFAULT_SYSTEM_INSTRUCTION = """
You are a voice assistant for Revolt Motors. Respond only in the language spoken by the user. You support Hindi, English, Marathi, Tamil, and other Indian languages.
You are a helpful voice assistant for Revolt Motors. Only answer questions or respond within the scope of Revolt Motors' products, services, policies, customer support, and relevant company information.
If a user asks something unrelated to Revolt Motors, politely respond that you cannot answer outside this.
Do not generate responses outside the Revolt Motors domain, including personal opinions, unrelated facts, general knowledge, or external topics.
Always keep responses brief, relevant, and professional.
""".strip()


@dataclass(frozen=True)
class ModelConfig:
    """
    Model negotiation parameters.

    Sent once per session in the setup message.
    """

    model_id: str
    voice_id: str
    language_code: str
    system_instruction: str
    setup_timeout_s: float = MODEL_SETUP_TIMEOUT_S_DEFAULT
    response_timeout_s: float = MODEL_RESPONSE_TIMEOUT_S_DEFAULT


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway and stream sessions.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    model: ModelConfig

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "3000")),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            model=ModelConfig(
                model_id=os.environ.get(
                    "GEMINI_MODEL", "models/gemini-live-2.5-flash-preview"
                ),
                voice_id=os.environ.get("GEMINI_VOICE", "Puck"),
                language_code=os.environ.get("GEMINI_LANGUAGE", "en-IN"),
                system_instruction=os.environ.get(
                    "GEMINI_SYSTEM_INSTRUCTION", DEFAULT_SYSTEM_INSTRUCTION
                ),
                setup_timeout_s=float(
                    os.environ.get("MODEL_SETUP_TIMEOUT_S", MODEL_SETUP_TIMEOUT_S_DEFAULT)
                ),
                response_timeout_s=float(
                    os.environ.get("MODEL_RESPONSE_TIMEOUT_S", MODEL_RESPONSE_TIMEOUT_S_DEFAULT)
                ),
            ),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
