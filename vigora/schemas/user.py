# vigora/schemas/user.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # wire format is camelCase; python side stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class UserProfile(CamelModel):
    first_name: str = ""
    last_name: str = ""


class UserRead(CamelModel):
    """Sanitized user as returned by every auth response."""
    id: int
    username: str
    email: EmailStr
    role: str
    profile: UserProfile

    @classmethod
    def from_user(cls, user) -> "UserRead":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            profile=UserProfile(first_name=user.first_name or "", last_name=user.last_name or ""),
        )
