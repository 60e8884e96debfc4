from typing import Literal

from fastapi import APIRouter
from typing_extensions import TypedDict

router = APIRouter(tags=["Health"])


class HealthResponse(TypedDict):
    status: Literal["pass"]


@router.get("/health", responses={200: {"model": HealthResponse}})
async def health() -> HealthResponse:
    return {"status": "pass"}
