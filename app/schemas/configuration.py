from datetime import datetime

from pydantic import BaseModel, Field


class ConfigurationIn(BaseModel):
    value: str = Field(min_length=1, max_length=4000)


class ConfigurationOut(BaseModel):
    path: str
    value: str
    updated_at: datetime | None = None


class ConfigurationListOut(BaseModel):
    items: list[ConfigurationOut]
