import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load environment variables from .env file
load_dotenv()


class Settings(BaseModel):
    data_dir: str = "data"
    store_timeout_seconds: float = 10.0
    store_max_retries: int = 1
    display_timezone: str = "UTC"
    clinic_name: str = "VitalTrack"
    log_level: str = "INFO"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None

    @field_validator('store_max_retries')
    @classmethod
    def cap_retries(cls, v):
        # Transient failures get at most one more attempt.
        return max(0, min(v, 1))

    @field_validator('store_timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "data_dir": os.getenv("VITALTRACK_DATA_DIR"),
            "store_timeout_seconds": os.getenv("STORE_TIMEOUT_SECONDS"),
            "store_max_retries": os.getenv("STORE_MAX_RETRIES"),
            "display_timezone": os.getenv("DISPLAY_TIMEZONE"),
            "clinic_name": os.getenv("CLINIC_NAME"),
            "log_level": os.getenv("LOG_LEVEL"),
            "twilio_account_sid": os.getenv("TWILIO_ACCOUNT_SID"),
            "twilio_auth_token": os.getenv("TWILIO_AUTH_TOKEN"),
            "twilio_from_number": os.getenv("TWILIO_FROM_NUMBER"),
        }
        return cls(**{key: value for key, value in values.items() if value})
