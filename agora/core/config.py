"""
Marketplace configuration parameters for Agora.

Defines economic defaults (fee and royalty ratios), listing limits and
operational paths. Ratios are expressed in parts per 10000.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Denominator for every ratio in the engine
RATIO_DENOMINATOR = 10_000

ENV_PREFIX = "AGORA_"


@dataclass
class MarketConfig:
    """Marketplace-wide configuration parameters"""

    # Economic defaults (snapshotted onto each sale at creation)
    default_fee_ratio: int = 250          # 2.5% platform service fee
    default_royalty_ratio: int = 0        # Royalty when the lister gives none
    max_royalty_ratio: int = 5000         # Upper bound for royalty overrides
    dev_fee_ratio: int = 10               # 0.1% dev cut when a recipient is set

    # Listing limits (seconds)
    min_duration: int = 1
    max_duration: int = 365 * 24 * 60 * 60

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    def __post_init__(self):
        """Normalise paths and check ratio bounds"""
        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)

        for name in ("default_fee_ratio", "default_royalty_ratio", "max_royalty_ratio", "dev_fee_ratio"):
            value = getattr(self, name)
            if not 0 <= value <= RATIO_DENOMINATOR:
                raise ValueError(f"{name} must be within [0, {RATIO_DENOMINATOR}], got {value}")

        if self.default_royalty_ratio > self.max_royalty_ratio:
            raise ValueError(
                f"default_royalty_ratio {self.default_royalty_ratio} exceeds "
                f"max_royalty_ratio {self.max_royalty_ratio}"
            )

        if self.min_duration <= 0 or self.max_duration < self.min_duration:
            raise ValueError(f"Invalid duration bounds: [{self.min_duration}, {self.max_duration}]")

    def to_dict(self) -> dict:
        """Plain representation (paths as strings)."""
        return {
            f.name: str(getattr(self, f.name)) if isinstance(getattr(self, f.name), Path) else getattr(self, f.name)
            for f in fields(self)
        }


def load_config(config_path: Optional[str] = None) -> MarketConfig:
    """
    Load configuration from the environment.

    Every field can be overridden with an ``AGORA_<FIELD>`` variable,
    e.g. ``AGORA_DEFAULT_FEE_RATIO=300``.

    Args:
        config_path: Optional path to a .env file read before the environment

    Returns:
        MarketConfig instance
    """
    if config_path:
        load_dotenv(config_path, override=False)

    overrides = {}
    for f in fields(MarketConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        if f.type is Path or f.name.endswith("_dir"):
            overrides[f.name] = Path(raw)
        else:
            overrides[f.name] = int(raw)

    return MarketConfig(**overrides)
