from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 6379


def parse_addr(addr: str) -> Tuple[str, int]:
    """
    Split a "host:port" address.
    Accepts "[::1]:6379" for IPv6 and a bare host (port defaults to 6379).
    """
    addr = addr.strip()
    if addr.startswith("["):
        host, sep, rest = addr[1:].partition("]")
        if not sep:
            raise ValueError(f"invalid address: {addr!r}")
        port = rest[1:] if rest.startswith(":") else ""
    elif addr.count(":") == 1:
        host, _, port = addr.partition(":")
        if not port:
            raise ValueError(f"address has no port after ':': {addr!r}")
    else:
        host, port = addr, ""

    if not host:
        raise ValueError(f"address has no host: {addr!r}")
    if not port:
        return host, DEFAULT_PORT
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"invalid port in address: {addr!r}")
    return host, int(port)


class StoreConfig(BaseSettings):
    addr: str = "localhost:6379"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    db: int = Field(default=0, ge=0)

    # Connection pool
    pool_size: int = Field(default=10, ge=1)
    min_idle_conns: int = Field(default=5, ge=0)
    max_conn_age: float = Field(default=30 * 60, ge=0)  # seconds, 0 disables
    pool_timeout: float = Field(default=4, ge=0)  # seconds
    idle_timeout: float = Field(default=5 * 60, ge=0)  # seconds, 0 disables
    idle_check_interval: float = Field(default=60, ge=0)  # seconds, 0 disables the reaper

    # Sockets
    socket_timeout: Optional[float] = Field(default=None, ge=0)
    socket_connect_timeout: Optional[float] = Field(default=None, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="KVSTORE_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @field_validator("addr")
    @classmethod
    def _check_addr(cls, value: str) -> str:
        parse_addr(value)
        return value.strip()

    @property
    def host(self) -> str:
        return parse_addr(self.addr)[0]

    @property
    def port(self) -> int:
        return parse_addr(self.addr)[1]


def default_config(**overrides) -> StoreConfig:
    """Return a fresh configuration; keyword overrides win over the environment."""
    return StoreConfig(**overrides)
