from pydantic import BaseModel


class EmbedProgress(BaseModel):
    """
    Loading progress of an embedding backend.

    Attributes:
        status:            "initiate", "loading" or "ready".
        fraction_complete: Value in [0, 1].
        file:              Model artifact currently being fetched, if reported.
    """

    status: str
    fraction_complete: float = 0.0
    file: str | None = None
