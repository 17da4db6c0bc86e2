from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class ApiCfg(BaseModel):
    base_url: str
    timeout_sec: float = 15.0
    token_env: str = "LABTRACK_TOKEN"

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str):
        if not v or not v.strip():
            raise ValueError("api.base_url is required")
        return v.rstrip("/") + "/"


class UserCtx(BaseModel):
    hospital_id: int
    user_id: int
    role_name: str = "pathology"


class RetryCfg(BaseModel):
    attempts: int = Field(default=3, ge=1)
    backoff_sec: float = Field(default=0.5, ge=0)


class UploadCfg(BaseModel):
    readiness_attempts: int = Field(default=5, ge=1)
    readiness_backoff_sec: float = Field(default=0.2, ge=0)


class LoggingCfg(BaseModel):
    level: str = "INFO"
    retention_days: int = Field(default=14, ge=1)
    console: bool = True


class PatientsCfg(BaseModel):
    page_size: int = Field(default=10, ge=1)


class Settings(BaseModel):
    app: Dict[str, Any] = {}
    paths: Dict[str, str]
    api: ApiCfg
    user: UserCtx
    retry: RetryCfg = RetryCfg()
    upload: UploadCfg = UploadCfg()
    patients: PatientsCfg = PatientsCfg()
    logging: LoggingCfg = LoggingCfg()
