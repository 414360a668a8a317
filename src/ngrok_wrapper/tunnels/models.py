"""Tunnel models for the ngrok control API."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..common.utils import validate_local_address, validate_non_empty_string


class Protocol(str, Enum):
    """Tunnel protocols the agent supports."""

    HTTP = "http"
    TCP = "tcp"
    TLS = "tls"


class Tunnel(BaseModel):
    """A requested or active tunnel.

    ``remote_address`` and ``is_created`` always change together: a tunnel is
    created exactly when it has a public URL. Use :meth:`mark_created` and
    :meth:`mark_closed` rather than assigning either field on its own.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    proto: Protocol = Field(description="Protocol used for tunneling")
    name: str = Field(frozen=True, description="Name used to create and close the tunnel")
    local_address: str = Field(description="Local host:port or bare port to expose")
    auth: str = Field(default="", description="Basic auth credential, user:password")
    inspect: bool = Field(default=False, description="Let the agent log traffic")
    remote_address: str = Field(default="", description="Public URL once created")
    is_created: bool = Field(default=False, description="Whether the tunnel is live")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_non_empty_string(v, "Tunnel name")

    @field_validator("local_address", mode="before")
    @classmethod
    def validate_address(cls, v: Any) -> str:
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        return validate_local_address(v)

    @model_validator(mode="after")
    def check_created_state(self) -> "Tunnel":
        if self.is_created != bool(self.remote_address):
            raise ValueError("is_created must be set exactly when remote_address is")
        return self

    def mark_created(self, remote_address: str) -> None:
        """Record a successful create call."""
        if not remote_address:
            raise ValueError("Created tunnel needs a remote address")
        self.remote_address = remote_address
        self.is_created = True

    def mark_closed(self) -> None:
        """Record a successful destroy call."""
        self.remote_address = ""
        self.is_created = False

    def request_body(self) -> dict[str, Any]:
        """JSON body for ``POST /api/tunnels``."""
        body: dict[str, Any] = {
            "addr": self.local_address,
            "proto": self.proto.value,
            "name": self.name,
            "inspect": self.inspect,
            "auth": self.auth,
        }
        if self.proto == Protocol.HTTP:
            body["bind_tls"] = True
        return body
