from pydantic import BaseModel, ConfigDict


class CurrentUser(BaseModel):
    """
    Authenticated caller, taken from the access token subject.
    """
    id: str
    model_config = ConfigDict(from_attributes=True)
