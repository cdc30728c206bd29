"""HTTP surface: FastAPI router and Pydantic request/response schemas."""

__all__: list[str] = []
