"""Marketplace application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from common.config import AppConfig, load_env


@dataclass
class MarketplaceConfig:
    """Secrets and stripe credentials on top of the shared AppConfig."""

    app: AppConfig
    stripe_secret_key: str
    stripe_connect_secret: str
    stripe_pay_secret: str
    stripe_refund_secret: str
    project_root: Path

    @property
    def secret_key(self) -> str:
        return self.app.secret_key

    @classmethod
    def load(cls) -> "MarketplaceConfig":
        """Build settings from the environment, reading ``.env`` at the project root first."""

        project_root = Path(__file__).resolve().parent
        load_dotenv(project_root / ".env")

        return cls(
            app=load_env(),
            stripe_secret_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            stripe_connect_secret=os.environ.get("STRIPE_CONNECT_SECRET", ""),
            stripe_pay_secret=os.environ.get("STRIPE_PAY_SECRET", ""),
            stripe_refund_secret=os.environ.get("STRIPE_REFUND_SECRET", ""),
            project_root=project_root,
        )
