from pydantic import BaseModel, ConfigDict, Field


class ReminderCreateModel(BaseModel):
    owner_id: str = Field(min_length=1)
    text: str
    """Command text, like `3/20 9:00 A廠商開會`."""


class ReminderOwnerModel(BaseModel):
    owner_id: str = Field(min_length=1)


class ScanRequestModel(BaseModel):
    """
    Optional body of the scan trigger, for callers which cannot set headers.
    """

    model_config = ConfigDict(populate_by_name=True)

    api_key: str | None = Field(default=None, alias="apiKey")
