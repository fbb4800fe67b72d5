"""
Club API and billing settings
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from dotenv import load_dotenv

load_dotenv()


class ApiConfig(BaseSettings):
    """Club administration API"""

    base_url: str = Field(default="http://localhost:3000/api", description="API base URL")
    token: str = Field(default="", description="Bearer token of the operator session")
    request_timeout: float = Field(default=30.0, description="Request timeout (seconds)")

    class Config:
        env_prefix = "CLUB_API_"
        case_sensitive = False


class BillingConfig(BaseSettings):
    """Billing engine"""

    # repeat enrollment payments overwrite the previous one (last write wins)
    allow_enrollment_overwrite: bool = Field(default=True, description="Allow enrollment fee overwrite")

    # membership aggregation
    aggregation_max_attempts: int = Field(default=5, ge=1, description="Batch attempts")
    aggregation_base_delay: float = Field(default=1.0, ge=0, description="Backoff base delay (seconds)")

    class Config:
        env_prefix = "BILLING_"
        case_sensitive = False


# global settings instances
api_config = ApiConfig()
billing_config = BillingConfig()
