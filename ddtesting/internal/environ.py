"""
Read-only access to process environment variables.

Provider extractors never touch ``os.environ`` directly, they receive an
:class:`Environment` so a run can be reproduced from any mapping::

    env = Environment({"GITHUB_SHA": "abc"})
    env.get("GITHUB_SHA")      # "abc"
    env.get("GITHUB_REF")      # ""
"""
import json
import os
import typing as t


class Environment(t.Mapping[str, str]):
    """Snapshot of environment variables where unset variables read as the empty string."""

    def __init__(self, source: t.Optional[t.Mapping[str, t.Optional[str]]] = None) -> None:
        source = os.environ if source is None else source
        # None values come from callers building environments by hand, treat them as unset
        self._vars: t.Dict[str, str] = {str(k): str(v) for k, v in source.items() if v is not None}

    def __getitem__(self, key: str) -> str:
        return self._vars[key]

    def __iter__(self) -> t.Iterator[str]:
        return iter(self._vars)

    def __len__(self) -> int:
        return len(self._vars)

    def __contains__(self, key: object) -> bool:
        return key in self._vars

    def __repr__(self) -> str:
        return "{}({} variables)".format(self.__class__.__name__, len(self._vars))

    def get(self, key: str, default: str = "") -> str:  # type: ignore[override]
        return self._vars.get(key, default)

    def first(self, *keys: str) -> str:
        """Return the first non-empty value among ``keys``."""
        for key in keys:
            value = self._vars.get(key)
            if value:
                return value
        return ""

    def non_empty(self, key: str) -> t.Optional[str]:
        return self._vars.get(key) or None

    def json(self, *keys: str) -> str:
        """Serialize the set, non-empty ``keys`` as a compact JSON object, or ``""`` if none is set."""
        values = {k: self._vars[k] for k in keys if self._vars.get(k)}
        if not values:
            return ""
        return json.dumps(values, separators=(",", ":"), sort_keys=True)


def snapshot(env: t.Optional[t.Mapping[str, t.Optional[str]]] = None) -> Environment:
    if isinstance(env, Environment):
        return env
    return Environment(env)
