from pydantic import BaseModel


class ErrorInnerModel(BaseModel):
    code: str
    """Stable error type, like `not_found`, for API clients to branch on."""
    details: list[str] = []
    message: str


class ErrorModel(BaseModel):
    error: ErrorInnerModel
