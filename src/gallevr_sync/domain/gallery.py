"""Wire models for the gallery service."""

from pydantic import BaseModel, ConfigDict


class VerificationStatus(BaseModel):
    """Response of the account verification endpoint."""

    model_config = ConfigDict(extra="ignore")

    status: str

    @property
    def is_verified(self) -> bool:
        return self.status == "verified"
