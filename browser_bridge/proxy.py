"""
Worker-side stand-ins for remote objects.

A ``RemoteProxy`` is bound to a dotted path. Reading an attribute gives the proxy
for the extended path; calling it sends a request whose method is the last path
segment and whose target is the rest, and returns a coroutine for the result::

    await page.keyboard.press("Enter")    # target "page.keyboard", method "press"

A ``HandleProxy`` stands for a registered host object. Its attributes are remote
methods routed by handle id; it cannot be navigated further.
"""

from typing import Any, Dict

from browser_bridge.serialization import RemoteHandle

BRIDGE_PREFIX = "_bridge_"


def _is_local_name(name: str) -> bool:
    return name.startswith(BRIDGE_PREFIX) or (name.startswith("__") and name.endswith("__"))


class RemoteMethod:
    def __init__(self, client, target: str, method: str):
        self._bridge_client = client
        self._bridge_target = target
        self._bridge_method = method

    def __call__(self, *args, **kwargs):
        return self._bridge_client.call(
            self._bridge_target, self._bridge_method, args, kwargs
        )

    def __repr__(self):
        return f"<RemoteMethod {self._bridge_target}.{self._bridge_method}>"


class RemoteProxy:
    def __init__(self, client, path: str):
        self._bridge_client = client
        self._bridge_path = path
        self._bridge_children: Dict[str, "RemoteProxy"] = {}

    def __getattr__(self, name: str) -> "RemoteProxy":
        if _is_local_name(name):
            raise AttributeError(name)
        child = self._bridge_children.get(name)
        if child is None:
            child = RemoteProxy(self._bridge_client, f"{self._bridge_path}.{name}")
            self._bridge_children[name] = child
        return child

    def __call__(self, *args, **kwargs):
        target, _, method = self._bridge_path.rpartition(".")
        if not target:
            raise TypeError(f"'{self._bridge_path}' is a root object, call one of its methods")
        return self._bridge_client.call(target, method, args, kwargs)

    def __repr__(self):
        return f"<RemoteProxy {self._bridge_path}>"


class HandleProxy(RemoteHandle):
    def __init__(self, client, handle_id: str):
        self._bridge_client = client
        self._bridge_handle_id = handle_id
        self._bridge_methods: Dict[str, RemoteMethod] = {}

    @property
    def handle_id(self) -> str:
        return self._bridge_handle_id

    def __getattr__(self, name: str) -> RemoteMethod:
        if _is_local_name(name):
            raise AttributeError(name)
        method = self._bridge_methods.get(name)
        if method is None:
            method = RemoteMethod(self._bridge_client, self._bridge_handle_id, name)
            self._bridge_methods[name] = method
        return method

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, HandleProxy):
            return self._bridge_handle_id == other._bridge_handle_id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._bridge_handle_id)

    def __repr__(self):
        return f"<HandleProxy {self._bridge_handle_id}>"


def make_root(client, name: str) -> RemoteProxy:
    return RemoteProxy(client, name)
