import re
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_list(v: Any) -> Union[List[str], str]:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, (list, str)):
        return v
    raise ValueError(v)


CommaList = Annotated[Union[List[str], str], BeforeValidator(parse_list)]

_BYTE_UNITS = {"b": 0, "kb": 1, "mb": 2, "gb": 3, "tb": 4, "pb": 5}
_BYTE_SIZE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgtp]?b)?\s*$", re.IGNORECASE)


def parse_byte_size(v: Any) -> Any:
    """Parse "1mb" style sizes; units are binary multiples, as in the `bytes` npm package."""
    if not isinstance(v, str):
        return v
    match = _BYTE_SIZE.match(v)
    if not match:
        raise ValueError(f"invalid byte size: {v!r}")
    value, unit = match.groups()
    return int(float(value) * 1024 ** _BYTE_UNITS[(unit or "b").lower()])


ByteLimit = Annotated[int, BeforeValidator(parse_byte_size)]


class CorsPolicy(BaseModel):
    """
    CORS policy applied to every http-in listener.

    Field names follow the options of the `cors` middleware the flow editor
    documents, and are translated to starlette's CORSMiddleware arguments.
    """

    origin: CommaList = "*"
    methods: CommaList = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
    allowed_headers: CommaList = Field(default_factory=list, alias="allowedHeaders")
    exposed_headers: CommaList = Field(default_factory=list, alias="exposedHeaders")
    credentials: bool = False
    max_age: int = Field(default=600, alias="maxAge")

    model_config = {"populate_by_name": True}

    def to_middleware_kwargs(self) -> dict:
        origins = [self.origin] if isinstance(self.origin, str) else list(self.origin)
        methods = [self.methods] if isinstance(self.methods, str) else list(self.methods)
        # An empty header list means "reflect whatever the client asks for"
        headers = list(self.allowed_headers) or ["*"]
        return {
            "allow_origins": origins,
            "allow_methods": [m.upper() for m in methods],
            "allow_headers": headers,
            "allow_credentials": self.credentials,
            "expose_headers": list(self.exposed_headers),
            "max_age": self.max_age,
        }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_empty=True, extra="ignore"
    )

    PROJECT_NAME: str = "httpin"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Interface every http-in listener binds to
    HTTP_NODE_HOST: str = "0.0.0.0"

    # Global CORS policy; None disables the CORS stage
    HTTP_NODE_CORS: Optional[CorsPolicy] = None

    # Callable, "module:attr" import string, or a list of either
    HTTP_NODE_MIDDLEWARE: Any = None

    # Limit for the JSON and urlencoded body parsers
    API_MAX_LENGTH: ByteLimit = 5 * 1024 * 1024

    METRICS_ENABLED: bool = False

    # Seconds allowed for reading a request body before failing it
    BODY_READ_TIMEOUT: float = 30.0

    # Seconds to wait for in-flight requests on close; None waits for all
    SHUTDOWN_TIMEOUT: Optional[float] = None

    # Seconds an unanswered request may hold a closing listener open
    CLOSE_PENDING_TIMEOUT: float = 10.0

    # Template directory used by res.render()
    VIEWS_DIR: str = "views"

    ACCESS_LOG: bool = False


settings = Settings()  # type: ignore
