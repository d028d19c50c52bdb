"""Bridge command models.

Commands arrive as method-channel style calls::

    {"method": "startTracking", "arguments": {"username": "alice"}}

:func:`parse_command` turns such a call into one of the typed commands
below.  Identity arguments accept both ``identity`` and the legacy
``username`` key.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from drivertrack.exceptions import InvalidIdentityError, UnknownCommandError


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class StartTracking(_Command):
    method: Literal["startTracking"] = "startTracking"
    identity: str = Field(default="", validation_alias=AliasChoices("identity", "username"))


class StopTracking(_Command):
    method: Literal["stopTracking"] = "stopTracking"


class IsTracking(_Command):
    method: Literal["isTracking"] = "isTracking"


class GetLastLocation(_Command):
    method: Literal["getLastLocation"] = "getLastLocation"


class UpdateIdentity(_Command):
    method: Literal["updateIdentity"] = "updateIdentity"
    identity: str = Field(default="", validation_alias=AliasChoices("identity", "username"))


BridgeCommand = Annotated[
    StartTracking | StopTracking | IsTracking | GetLastLocation | UpdateIdentity,
    Field(discriminator="method"),
]

_COMMAND_ADAPTER: TypeAdapter[Any] = TypeAdapter(BridgeCommand)
_KNOWN_METHODS = frozenset({"startTracking", "stopTracking", "isTracking", "getLastLocation", "updateIdentity"})


def parse_command(call: Mapping[str, Any]) -> BridgeCommand:
    """Parse a ``{"method": ..., "arguments": {...}}`` call into a command."""
    method = str(call.get("method") or "")
    if method not in _KNOWN_METHODS:
        raise UnknownCommandError(method)

    arguments = call.get("arguments")
    payload: dict[str, Any] = dict(arguments) if isinstance(arguments, Mapping) else {}
    payload["method"] = method
    try:
        return _COMMAND_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise InvalidIdentityError(f"Invalid arguments for {method}: {exc.errors()[0]['msg']}") from exc
