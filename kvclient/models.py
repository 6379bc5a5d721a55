from pydantic import BaseModel

# ttl() sentinels, as returned by the store
TTL_NO_EXPIRY = -1
TTL_KEY_MISSING = -2

class PoolStats(BaseModel):
    max_connections: int
    connected: int
    in_use: int
    idle: int
