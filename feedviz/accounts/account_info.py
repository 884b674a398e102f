"""
CSS account identity

Loads the merchant, domain and group identifiers the transfer runs for, either
from the ``account-info.json`` file in the configuration directory or from
values given directly on the command line or in the environment.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from feedviz.config.settings import Settings
from feedviz.exceptions import ConfigError

logger = structlog.get_logger(__name__)

ACCOUNT_INFO_TEMPLATE = "account-info.json"


class AccountInfo(BaseModel):
    """Identifiers of one CSS Center account plus the directory they came from"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    merchant_id: Optional[int] = Field(default=None, alias="merchantId")
    domain_id: Optional[int] = Field(default=None, alias="domainId")
    group_id: Optional[int] = Field(default=None, alias="groupId")
    path: Optional[Path] = None

    @property
    def parent(self) -> str:
        """Catalog parent resource, ``accounts/{domain_id}``"""
        if self.domain_id is None:
            raise ConfigError(
                "A CSS domain ID is required to list CSS products",
                context={"merchant_id": self.merchant_id, "group_id": self.group_id},
            )
        return f"accounts/{self.domain_id}"

    @classmethod
    def create(
        cls,
        config_dir: Union[str, Path],
        merchant_id: Optional[int] = None,
        domain_id: Optional[int] = None,
        group_id: Optional[int] = None,
    ) -> "AccountInfo":
        """Build account info from identifiers given directly."""
        if merchant_id is None and domain_id is None and group_id is None:
            raise ConfigError("At least one of merchant, domain or group ID must be set")
        return cls(
            merchant_id=merchant_id,
            domain_id=domain_id,
            group_id=group_id,
            path=Path(config_dir),
        )

    @classmethod
    def load(
        cls,
        config_dir: Union[str, Path] = "./config",
        file_name: str = ACCOUNT_INFO_TEMPLATE,
    ) -> "AccountInfo":
        """
        Load account info from a JSON file.

        Args:
            config_dir: Configuration directory holding the file
            file_name: Name of the account info file inside ``config_dir``

        Returns:
            AccountInfo with ``path`` set to ``config_dir``

        Raises:
            ConfigError: directory missing, file unreadable or malformed
        """
        config_path = Path(config_dir)
        if not config_path.is_dir():
            raise ConfigError(
                f"CSS API configuration directory '{config_path.resolve()}' does not exist"
            )

        config_file = config_path / file_name
        hint = (
            f"Could not find or read the config file at {config_file.resolve()}. "
            f"You can use the {ACCOUNT_INFO_TEMPLATE} file in the project root as a template."
        )
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data: Any = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(hint, original_exception=e) from e

        if not isinstance(data, dict):
            raise ConfigError(hint, context={"reason": "expected a JSON object"})

        try:
            info = cls.model_validate({**data, "path": config_path})
        except ValidationError as e:
            raise ConfigError(hint, original_exception=e) from e

        if info.merchant_id is None and info.domain_id is None and info.group_id is None:
            raise ConfigError(hint, context={"reason": "no account identifiers"})

        logger.debug("Account info loaded", file=str(config_file), domain_id=info.domain_id)
        return info


def resolve_account_info(settings: Settings) -> AccountInfo:
    """
    Decide which account the transfer runs for.

    Identifiers set directly in the settings win over the account info file;
    the file is only read when none of them is present.
    """
    account = settings.account
    if account.has_overrides:
        logger.info(
            "Using account identifiers from configuration",
            merchant_id=account.merchant_id,
            domain_id=account.domain_id,
            group_id=account.group_id,
        )
        return AccountInfo.create(
            account.config_dir,
            merchant_id=account.merchant_id,
            domain_id=account.domain_id,
            group_id=account.group_id,
        )
    return AccountInfo.load(account.config_dir, account.account_info_file)
