from datetime import datetime

from pydantic import BaseModel


class GreenPointTransactionResponse(BaseModel):
    id: int
    points: int
    source: str
    description: str | None = None
    reference_id: str | None = None
    created_at: datetime


class GreenPointsResponse(BaseModel):
    balance: int
    transactions: list[GreenPointTransactionResponse] | None = None
