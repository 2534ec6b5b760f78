"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

# Custom field GIDs on the Art Request board.
DEFAULT_ASANA_CUSTOM_FIELDS: dict[str, str] = {
    "request": "1211551541910237",
    "client": "1211551542058961",
    "billable": "1211551542058970",
    "value": "1211551542058988",
    "google_folder": "1211701715737841",
    "project_number": "1210695790941177",
    "region": "1212310605793914",
}

# Enum option GIDs, keyed by custom field then by form value.
DEFAULT_ASANA_ENUM_OPTIONS: dict[str, dict[str, str]] = {
    "request": {
        "Creative Design Services": "1211551541910239",
        "Mockup": "1211551541910241",
        "PPTX": "1211551541910242",
        "Proofs": "1211551541910243",
        "Sneak Peek": "1211551541910244",
        "Rise & Shine": "1211551541910244",
    },
    "value": {
        "<$50k": "1211551542058989",
        "$50k-$250k": "1211551542058990",
        ">$250k": "1211551542058991",
    },
    "billable": {
        "Yes": "1211551542058971",
        "No": "1211551542058972",
    },
    "region": {
        "US": "1212310605793915",
        "CAD": "1212310605793916",
        "EU": "1212310605793917",
        "UK": "1212310605793918",
        "APAC": "1212310605793919",
    },
}


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "art-request-api"
    app_env: str = "dev"
    app_url: str = "http://localhost:8000"
    database_url: str = ""
    http_timeout_s: float = Field(default=30.0, gt=0.0)

    google_drive_access_token: str = ""
    google_drive_api_url: str = "https://www.googleapis.com"
    google_drive_al_shared_drive_id: str = "0ADaZpFm7TUV5Uk9PVA"
    google_drive_mz_shared_drive_id: str = "0AJgvSmlJR1-tUk9PVA"

    asana_access_token: str = ""
    asana_api_url: str = "https://app.asana.com/api/1.0"
    asana_project_id: str = "1211223909834951"
    asana_workspace_id: str = ""
    asana_custom_fields: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ASANA_CUSTOM_FIELDS)
    )
    asana_enum_options: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_ASANA_ENUM_OPTIONS.items()}
    )

    slack_tech_alert_webhook: str = ""
    slack_success_webhook: str = ""

    commonsku_base_url: str = "https://fws09sh894.execute-api.us-east-1.amazonaws.com/beta"
    commonsku_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="ART_REQUEST_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def missing_integration_settings(self) -> list[str]:
        """Names of settings the Drive/Asana integrations cannot run without."""
        required = {
            "google_drive_access_token": self.google_drive_access_token,
            "asana_access_token": self.asana_access_token,
            "asana_project_id": self.asana_project_id,
        }
        return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
