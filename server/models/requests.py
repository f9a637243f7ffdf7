from pydantic import BaseModel, ConfigDict, Field


class DriveTrainRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chatbot_id: str = Field(alias="chatbotId", min_length=1)
    file_id: str = Field(alias="fileId", min_length=1)
    name: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    chatbot_id: str = Field(alias="chatbotId", min_length=1)
