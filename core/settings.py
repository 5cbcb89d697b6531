from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[1] / "config" / "settings.yaml"


class AppConfig(BaseModel):
    name: str
    environment: str = "development"
    log_level: str = "INFO"


class DBConfig(BaseModel):
    url: str


class GradingConfig(BaseModel):
    passing_percentage: float = Field(50.0, ge=0, le=100)
    default_method: str = "weighted"
    default_best_of: Optional[int] = None


class AttainmentConfig(BaseModel):
    direct_weight: float = Field(0.8, ge=0, le=1)
    threshold_table: str = "four_tier"


class EngineConfig(BaseModel):
    calculation_timeout_seconds: Optional[float] = 30.0
    lock_wait_seconds: float = 0.0


class Settings(BaseModel):
    app: AppConfig
    db: DBConfig
    grading: GradingConfig = GradingConfig()
    attainment: AttainmentConfig = AttainmentConfig()
    engine: EngineConfig = EngineConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    if path is None:
        path = os.getenv("RESULTS_SETTINGS") or DEFAULT_SETTINGS_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return Settings(
        app=AppConfig(**data["app"]),
        db=DBConfig(**data["db"]),
        grading=GradingConfig(**(data.get("grading") or {})),
        attainment=AttainmentConfig(**(data.get("attainment") or {})),
        engine=EngineConfig(**(data.get("engine") or {})),
    )
