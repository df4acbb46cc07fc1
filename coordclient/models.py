"""
Value types returned by coordination clients.
"""

from typing import NamedTuple, Optional


class KeyValue(NamedTuple):
    key: str
    value: str
    lease: int
    create_revision: int
    mod_revision: int
    version: int = 1

    @classmethod
    def from_dict(cls, data: dict) -> "KeyValue":
        return cls(
            key=data["key"],
            value=data["value"],
            lease=data.get("lease", 0),
            create_revision=data["create_revision"],
            mod_revision=data["mod_revision"],
            version=data.get("version", 1),
        )


class WatchEvent(NamedTuple):
    type: str  # "put" or "delete"
    kv: KeyValue
    revision: int

    @classmethod
    def from_dict(cls, data: dict) -> "WatchEvent":
        return cls(type=data["type"], kv=KeyValue.from_dict(data["kv"]), revision=data["revision"])


class LeaderChange(NamedTuple):
    leader: Optional[str]  # None once the election namespace is empty
    revision: int
