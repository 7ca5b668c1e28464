from typing import List

from pydantic import BaseModel, Field


class TryonRequest(BaseModel):
    modelImage: str = Field(..., min_length=1)
    apparelImages: List[str] = Field(..., min_length=1)


class TryonResult(BaseModel):
    imageData: str


class OnSuccessTryonResponse(BaseModel):
    img_generated: str
