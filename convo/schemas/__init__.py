from convo.schemas.api import (  # noqa: F401
    AccessTokenResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    ResultGroup,
    TokenResponse,
)
