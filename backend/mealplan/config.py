# backend/mealplan/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/mealplan.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///mealplan.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Billing calendar: weeks run from the anchor weekday through the day before it
    RENEWAL_ANCHOR_WEEKDAY = os.environ.get("RENEWAL_ANCHOR_WEEKDAY", "sunday")
    DELIVERY_HOUR = int(os.environ.get("DELIVERY_HOUR", "12"))

    # Rewards (minor currency units)
    LOYALTY_MILESTONE = int(os.environ.get("LOYALTY_MILESTONE", "10"))
    LOYALTY_REWARD_CENTS = int(os.environ.get("LOYALTY_REWARD_CENTS", "5000"))
    REFERRAL_REWARD_CENTS = int(os.environ.get("REFERRAL_REWARD_CENTS", "10000"))

    CURRENCY = os.environ.get("CURRENCY", "BDT")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
