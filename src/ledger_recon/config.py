"""Configuration loader and validation for reconciliation settings."""

from pathlib import Path
from typing import Any, Literal, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class CsvInputConfig(BaseModel):
    """Configuration for reading candidate and ledger CSV files."""

    encoding: str = "utf-8"
    delimiter: str = ","
    date_format: str = "%Y-%m-%d"
    # standard: positive is money in; outflow_positive: bank-sync style feeds
    sign_convention: Literal["standard", "outflow_positive"] = "standard"
    column_mappings: dict[str, str] = Field(
        default_factory=lambda: {
            "id": "id",
            "date": "date",
            "merchant": "merchant",
            "amount": "amount",
            "currency": "currency",
            "category": "category",
            "description": "description",
            "transaction_type": "transaction_type",
            "is_pending": "is_pending",
            "account_id": "account_id",
            "account_name": "account_name",
            "external_id": "external_id",
            "needs_clarification": "needs_clarification",
            "reconciled_from_id": "reconciled_from_id",
            "matched_transfer_id": "matched_transfer_id",
            "matched_account_name": "matched_account_name",
        }
    )


class InputConfig(BaseModel):
    """Configuration for input file parsing."""

    csv: CsvInputConfig = Field(default_factory=CsvInputConfig)


class DuplicateSettings(BaseModel):
    """Exact and near-duplicate detection."""

    enabled: bool = True
    near_duplicate_enabled: bool = True
    near_duplicate_days: int = 2
    # Stored rows are fetched for the candidate date span widened by this much
    date_buffer_days: int = 5
    match_external_ids: bool = True
    max_examples: int = 5


class PendingSettings(BaseModel):
    """Pending-to-posted reconciliation."""

    enabled: bool = True
    window_days: int = 5
    amount_tolerance: float = 0.01
    similarity_threshold: float = 0.8


class TransferSettings(BaseModel):
    """Cross-account transfer matching."""

    enabled: bool = True
    window_days: int = 3
    amount_tolerance: float = 0.01
    hint_tokens: list[str] = Field(default_factory=lambda: ["transfer", "payment"])


class ClassifierSettings(BaseModel):
    """Keyword lists behind the internal-transfer heuristics."""

    transfer_category_tokens: list[str] = Field(
        default_factory=lambda: [
            "transfer",
            "credit card payment",
        ]
    )
    payment_tokens: list[str] = Field(
        default_factory=lambda: [
            "payment",
            "e-payment",
            "epayment",
            "autopay",
            "auto pay",
        ]
    )
    card_tokens: list[str] = Field(
        default_factory=lambda: [
            "visa",
            "mastercard",
            "amex",
            "american express",
            "discover",
            "credit card",
        ]
    )
    internal_transfer_phrases: list[str] = Field(
        default_factory=lambda: [
            "internal transfer",
            "account transfer",
            "balance transfer",
        ]
    )
    own_account_types: list[str] = Field(
        default_factory=lambda: [
            "checking",
            "chequing",
            "chk",
            "savings",
            "sav",
            "credit card",
            "brokerage",
            "investment",
            "money market",
            "account",
            "acct",
        ]
    )


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "reconciliation_audit_{date}_{time}.xlsx"
    include_timestamp: bool = True


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    to_insert: SheetConfig = Field(default_factory=lambda: SheetConfig(name="To Insert"))
    pending_reconciled: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Pending Reconciled")
    )
    duplicates: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Duplicates Skipped")
    )
    transfers: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Transfers Linked")
    )
    issues: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Issues"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    duplicates: DuplicateSettings = Field(default_factory=DuplicateSettings)
    pending: PendingSettings = Field(default_factory=PendingSettings)
    transfers: TransferSettings = Field(default_factory=TransferSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return ReconConfig().model_dump(mode="json", exclude={"config_file_path"})


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Ledger reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
