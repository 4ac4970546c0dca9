from pydantic import BaseModel


class Identity(BaseModel):
    email: str
    display_name: str | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.email


class EmailCheckIn(BaseModel):
    email: str
