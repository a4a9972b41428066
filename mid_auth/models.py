from pydantic import BaseModel, ConfigDict, Field

# provider session ids are UUIDs; anything else never reaches the provider URL
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartAuthRequest(_CamelModel):
    # demo test numbers are not valid E.164 numbers, so only length is checked here
    phone_number: str = Field(alias="phoneNumber", min_length=9, max_length=15)
    national_identity_number: str = Field(alias="nationalIdentityNumber", min_length=11, max_length=11)


class StartAuthResponse(_CamelModel):
    code: str
    session_id: str = Field(alias="sessionId")
    challenge: str


class AuthStatusRequest(_CamelModel):
    session_id: str = Field(alias="sessionId", pattern=UUID_PATTERN)
    challenge: str = Field(min_length=1)


class TokenValidateRequest(BaseModel):
    token: str = Field(min_length=1)
