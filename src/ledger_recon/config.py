"""Configuration loader and validation for matching settings."""

from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models.conflicts import ConflictDetectionLevel
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ReconciliationSettings(BaseModel):
    """Settings for bank statement reconciliation."""

    # Pairs scoring below this are never matched automatically
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    # Pairs at or above this are Exact, the rest Fuzzy
    exact_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    # Days apart at which the date term of the confidence reaches zero
    date_window_days: float = Field(default=3, gt=0)
    balance_tolerance: float = Field(default=0.01, ge=0.0)
    bulk_approve_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    max_unmatched_percent: float = Field(default=5.0, ge=0.0, le=100.0)


class ImportReviewSettings(BaseModel):
    """Settings for import conflict detection."""

    date_tolerance_days: float = Field(default=3, ge=0)
    amount_tolerance: float = Field(default=0.01, ge=0.0)
    # Description similarity at which a close pair also counts as similar
    description_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    enable_transfer_detection: bool = True
    conflict_detection_level: ConflictDetectionLevel = ConflictDetectionLevel.MODERATE
    # Top-conflict confidence (0-100) at which a candidate is suggested for skipping
    skip_confidence: int = Field(default=80, ge=0, le=100)
    max_workers: int = Field(default=1, ge=1)


class DuplicateScanSettings(BaseModel):
    """Settings for scanning the existing ledger for duplicates."""

    lookback_days: int = Field(default=180, ge=1)
    date_tolerance_days: int = Field(default=1, ge=0)
    amount_tolerance: float = Field(default=0.01, ge=0.0)
    same_account_only: bool = False
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class InputConfig(BaseModel):
    """Configuration for loading normalized record files."""

    encoding: str = "utf-8"
    delimiter: str = ","
    date_format: Optional[str] = None
    column_mappings: dict[str, str] = Field(
        default_factory=lambda: {
            "amount": "amount",
            "date": "date",
            "description": "description",
            "external_id": "external_id",
            "reference_number": "reference_number",
            "source_id": "source_id",
            "source": "source",
            "transfer_id": "transfer_id",
            "account_id": "account_id",
            "is_reconciled": "is_reconciled",
        }
    )


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    matched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Matched"))
    unmatched_bank: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Unmatched Bank")
    )
    unmatched_ledger: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Unmatched Ledger")
    )
    review_items: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Review Items")
    )
    conflicts: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Conflicts"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    filename_template: str = "{kind}_report_{timestamp}.xlsx"
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model."""

    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    import_review: ImportReviewSettings = Field(default_factory=ImportReviewSettings)
    duplicate_scan: DuplicateScanSettings = Field(default_factory=DuplicateScanSettings)
    input: InputConfig = Field(default_factory=InputConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "reconciliation": {
            "min_confidence": 0.5,
            "exact_threshold": 0.95,
            "date_window_days": 3,
            "balance_tolerance": 0.01,
            "bulk_approve_threshold": 0.95,
            "max_unmatched_percent": 5.0,
        },
        "import_review": {
            "date_tolerance_days": 3,
            "amount_tolerance": 0.01,
            "description_threshold": 0.7,
            "enable_transfer_detection": True,
            "conflict_detection_level": "moderate",
            "skip_confidence": 80,
            "max_workers": 1,
        },
        "duplicate_scan": {
            "lookback_days": 180,
            "date_tolerance_days": 1,
            "amount_tolerance": 0.01,
            "same_account_only": False,
            "min_confidence": 0.5,
        },
        "input": {
            "encoding": "utf-8",
            "delimiter": ",",
            "date_format": None,
            "column_mappings": {
                "amount": "amount",
                "date": "date",
                "description": "description",
                "external_id": "external_id",
                "reference_number": "reference_number",
                "source_id": "source_id",
                "source": "source",
                "transfer_id": "transfer_id",
                "account_id": "account_id",
                "is_reconciled": "is_reconciled",
            },
        },
        "output": {
            "filename_template": "{kind}_report_{timestamp}.xlsx",
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "matched": {"enabled": True, "name": "Matched"},
                "unmatched_bank": {"enabled": True, "name": "Unmatched Bank"},
                "unmatched_ledger": {"enabled": True, "name": "Unmatched Ledger"},
                "review_items": {"enabled": True, "name": "Review Items"},
                "conflicts": {"enabled": True, "name": "Conflicts"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or holds invalid values
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
            raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")

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

    yaml_content = """# Ledger matching and reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
