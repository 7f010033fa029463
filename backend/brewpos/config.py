# backend/brewpos/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/brewpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///brewpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Pricing
    TAX_RATE = Decimal(os.environ.get("TAX_RATE", "0.12"))
    DEFAULT_DELIVERY_FEE = Decimal(os.environ.get("DEFAULT_DELIVERY_FEE", "50.00"))

    # Shift reconciliation
    # |variance| strictly above this amount flags the shift as discrepant
    SHIFT_DISCREPANCY_THRESHOLD = Decimal(os.environ.get("SHIFT_DISCREPANCY_THRESHOLD", "100.00"))
    MAX_OPENING_CASH_FLOAT = Decimal(os.environ.get("MAX_OPENING_CASH_FLOAT", "1000000"))

    # Cash drawer location used when the caller does not name one
    DEFAULT_LOCATION = os.environ.get("DEFAULT_LOCATION", "main")
