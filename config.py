import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# .env file with TOKEN_SECRET, PUBLIC_URL, BOOKING_API_KEY, ...
load_dotenv()

CHECKOUT_TTL_SECONDS = 15 * 60
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseModel):
    public_url: Optional[str] = None
    api_key: Optional[str] = None
    token_secret: Optional[str] = None
    default_currency: str = "GBP"
    confirmation_max_attempts: int = Field(15, ge=1)
    confirmation_interval_seconds: float = Field(2.0, ge=0)

    @property
    def checkout_enabled(self) -> bool:
        """A checkout link needs a public URL, a caller credential and a token secret."""
        return bool(self.public_url and self.api_key and self.token_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        public_url = os.getenv("PUBLIC_URL")
        return cls(
            public_url=public_url.rstrip("/") if public_url else None,
            api_key=os.getenv("BOOKING_API_KEY"),
            token_secret=os.getenv("TOKEN_SECRET") or os.getenv("SUPPLIER_API_SECRET"),
            default_currency=os.getenv("DEFAULT_CURRENCY", "GBP"),
            confirmation_max_attempts=int(os.getenv("CONFIRMATION_MAX_ATTEMPTS", "15")),
            confirmation_interval_seconds=float(os.getenv("CONFIRMATION_INTERVAL_SECONDS", "2.0")),
        )


def configure_logging(name: str = "") -> logging.Logger:
    """Console logging for the booking layer. Respects LOGLEVEL; safe to call twice."""
    level = getattr(logging, os.getenv("LOGLEVEL", "INFO").upper(), logging.INFO)
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
