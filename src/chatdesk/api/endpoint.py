"""API endpoint configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


@dataclass
class APIEndpoint:
    """Where and how to reach one backend.

    ``type`` selects the adapter class registered with the ``APIManager``;
    ``params`` holds adapter specific defaults such as ``model``.
    """

    type: str
    name: str
    url: str | None = None
    key: str | None = None
    cookie: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def deserialize(cls, data: Any) -> APIEndpoint:
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("type"), str)
            or not isinstance(data.get("name"), str)
        ):
            raise ValueError(f"Unknown APIEndpoint: {data!r}")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("The params of APIEndpoint must be a mapping")
        return cls(
            type=data["type"],
            name=data["name"],
            url=data.get("url"),
            key=data.get("key"),
            cookie=data.get("cookie"),
            params=dict(params),
            id=data.get("id"),
        )

    def serialize(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "name": self.name}
        if self.id:
            data["id"] = self.id
        if self.url:
            data["url"] = self.url
        if self.key:
            data["key"] = self.key
        if self.cookie:
            data["cookie"] = self.cookie
        if self.params:
            data["params"] = dict(self.params)
        return data


def next_endpoint_id(name: str, existing: list[str]) -> str:
    """Build a readable id like ``my-gpt-3`` that is not in *existing*."""
    prefix = re.sub(r"[^a-zA-Z0-9]", "-", name).lower() + "-"
    numbers = sorted(
        (int(k[len(prefix):]) for k in existing if k.startswith(prefix) and k[len(prefix):].isdigit()),
        reverse=True,
    )
    if not numbers:
        return prefix + "1"
    return f"{prefix}{numbers[0] + 1}"


__all__ = ["APIEndpoint", "next_endpoint_id"]
