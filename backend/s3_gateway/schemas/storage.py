from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    message: str


class ListObjectsResponse(BaseModel):
    message: str
    objects: list[str] = Field(default_factory=list)
