from typing import Any, Mapping

_MISSING = object()


def lookup(data: Mapping[str, Any], name: str, default: Any = _MISSING) -> Any:
    """Case-insensitive key lookup.

    The evaluator emits Go-style field names (``TargetHost``) while hand-written
    deployment files tend to use ``targetHost`` or ``target_host``; all of them
    resolve to the same field.
    """
    if name in data:
        return data[name]
    wanted = name.replace("_", "").lower()
    for key, value in data.items():
        if key.replace("_", "").lower() == wanted:
            return value
    if default is _MISSING:
        raise KeyError(name)
    return default
