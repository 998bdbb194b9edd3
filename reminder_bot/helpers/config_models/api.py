from pydantic import BaseModel, SecretStr


class ApiModel(BaseModel):
    secret_key: SecretStr
    """Shared secret the scan trigger must present, in the `X-API-Key` header or the `apiKey` body field."""
