"""
Service account authentication for the CSS and BigQuery APIs.
"""

from pathlib import Path
from typing import Sequence

import structlog
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from feedviz.accounts.account_info import AccountInfo
from feedviz.exceptions import AuthenticationError

logger = structlog.get_logger(__name__)

SCOPES = (
    "https://www.googleapis.com/auth/content",
    "https://www.googleapis.com/auth/cloud-platform",
)


class Authenticator:
    """Loads service account credentials from the account's config directory"""

    def __init__(
        self,
        service_account_file: str = "service-account.json",
        scopes: Sequence[str] = SCOPES,
    ):
        self.service_account_file = service_account_file
        self.scopes = list(scopes)

    def authenticate(self, account_info: AccountInfo) -> service_account.Credentials:
        if account_info.path is None:
            raise AuthenticationError("Account info has no configuration directory set")

        key_file = Path(account_info.path) / self.service_account_file
        logger.info("Checking for service account file", path=str(key_file))
        if not key_file.is_file():
            raise AuthenticationError(
                f"Could not retrieve service account credentials from the file {key_file.resolve()}"
            )

        try:
            credentials = service_account.Credentials.from_service_account_file(
                str(key_file), scopes=self.scopes
            )
        except (GoogleAuthError, OSError, ValueError) as e:
            raise AuthenticationError(
                "Service account file is not a valid key",
                context={"path": str(key_file)},
                original_exception=e,
            ) from e

        logger.info("Loaded service account credentials", account=credentials.service_account_email)
        return credentials
