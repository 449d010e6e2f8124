from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

REQUEST_TAG = "__request"
RESPONSE_TAG = "__response"
HANDLE_ID_KEY = "__handleId"
FUNCTION_KEY = "__function"

# Reserved target for registry administration, never a valid attribute name
# on the root context.
REGISTRY_TARGET = "__registry"


class BridgeMessage(BaseModel):
    """
    Payload of a request: call ``method`` on the object reachable at ``target``.
    target is a dotted path into the root context or a handle id.
    """

    target: str
    method: str
    args: List[Any] = Field(default_factory=list)
    kwargs: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self):
        return self.model_dump(mode="python")


class BridgeRequest(BaseModel):
    id: int
    message: BridgeMessage
    # token of the sending client; ids are only unique per client
    client: Optional[str] = Field(default=None)

    def to_dict(self):
        data = {REQUEST_TAG: True, "id": self.id, "message": self.message.to_dict()}
        if self.client is not None:
            data["client"] = self.client
        return data


class BridgeResult(BaseModel):
    success: bool
    data: Optional[Any] = Field(default=None)
    error: Optional[str] = Field(default=None)

    @classmethod
    def ok(cls, data: Any = None) -> "BridgeResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "BridgeResult":
        return cls(success=False, error=error)

    def to_dict(self):
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


class BridgeResponse(BaseModel):
    id: int
    result: BridgeResult
    client: Optional[str] = Field(default=None)

    def to_dict(self):
        data = {RESPONSE_TAG: True, "id": self.id, "result": self.result.to_dict()}
        if self.client is not None:
            data["client"] = self.client
        return data


def is_request(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and data.get(REQUEST_TAG) is True
        and isinstance(data.get("id"), int)
        and "message" in data
    )


def is_response(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and data.get(RESPONSE_TAG) is True
        and isinstance(data.get("id"), int)
        and isinstance(data.get("result"), dict)
    )


def is_handle_reference(data: Any) -> bool:
    return isinstance(data, dict) and HANDLE_ID_KEY in data


def is_serialized_function(data: Any) -> bool:
    return isinstance(data, dict) and FUNCTION_KEY in data
