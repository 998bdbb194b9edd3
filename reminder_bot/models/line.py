from pydantic import BaseModel, ConfigDict, Field


class LineSourceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    user_id: str | None = Field(default=None, alias="userId")


class LineMessageModel(BaseModel):
    id: str | None = None
    text: str | None = None
    type: str


class LineEventModel(BaseModel):
    """
    Webhook event, only the fields used by the bot are declared.

    See: https://developers.line.biz/en/reference/messaging-api/#webhook-event-objects
    """

    model_config = ConfigDict(populate_by_name=True)

    message: LineMessageModel | None = None
    reply_token: str | None = Field(default=None, alias="replyToken")
    source: LineSourceModel | None = None
    type: str


class LineWebhookModel(BaseModel):
    destination: str | None = None
    events: list[LineEventModel] = []
