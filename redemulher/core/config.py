from __future__ import annotations

import os

from redemulher.core.municipios import CEARA_GEOJSON_URL


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///rede_mulher.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_ENV = os.getenv("APP_ENV", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    GEOJSON_URL = os.getenv("GEOJSON_URL", CEARA_GEOJSON_URL)
