"""External client handles, built once at startup and passed explicitly."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from missing_matters.config import Settings
from missing_matters.logging_config import get_logger
from missing_matters.services.llm import LLMProvider, OpenAIProvider

logger = get_logger("capabilities")


@dataclass(frozen=True)
class LLMCapability:
    provider: Optional[LLMProvider]
    model: str
    intent_timeout_seconds: float
    response_timeout_seconds: float

    @property
    def configured(self) -> bool:
        return self.provider is not None


@dataclass(frozen=True)
class MessagingCapability:
    account_sid: Optional[str]
    auth_token: Optional[str]
    phone_number: Optional[str]

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)


@dataclass(frozen=True)
class VisionCapability:
    credentials_path: Optional[str]

    @property
    def configured(self) -> bool:
        return bool(self.credentials_path)


@dataclass(frozen=True)
class Capabilities:
    llm: LLMCapability
    messaging: MessagingCapability
    vision: VisionCapability

    def as_flags(self) -> dict[str, bool]:
        return {
            "openai": self.llm.configured,
            "twilio": self.messaging.configured,
            "vision": self.vision.configured,
        }


def build_capabilities(settings: Settings, llm_provider: Optional[LLMProvider] = None) -> Capabilities:
    """Construct capability handles from settings. Missing credentials disable a capability."""
    provider = llm_provider
    if provider is None and settings.openai_api_key:
        provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            default_timeout=settings.llm_response_timeout_seconds,
        )

    capabilities = Capabilities(
        llm=LLMCapability(
            provider=provider,
            model=settings.openai_model,
            intent_timeout_seconds=settings.llm_intent_timeout_seconds,
            response_timeout_seconds=settings.llm_response_timeout_seconds,
        ),
        messaging=MessagingCapability(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            phone_number=settings.twilio_phone_number,
        ),
        vision=VisionCapability(credentials_path=settings.google_application_credentials),
    )

    if not capabilities.llm.configured:
        logger.warning("OpenAI API key not configured, using template responses")
    if not capabilities.messaging.configured:
        logger.warning("Twilio credentials not configured")
    elif not capabilities.messaging.phone_number:
        logger.warning("Twilio phone number not configured")
    if not capabilities.vision.configured:
        logger.warning("Vision credentials not configured, image analysis disabled")

    logger.info("Capabilities initialized", extra={"context": capabilities.as_flags()})
    return capabilities


def get_capabilities(request: Request) -> Capabilities:
    return request.app.state.capabilities
