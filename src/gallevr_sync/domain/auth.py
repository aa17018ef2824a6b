"""Authentication data for the gallery service."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthData:
    """Gallery credentials issued after account verification."""

    user_id: str
    access_key: str
