from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Subset of the Bot API Update object; unknown fields are ignored
class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None


class WebhookAck(BaseModel):
    ok: bool = True
