import importlib
import types
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Callable, Dict, List, Tuple, Union

from .errors import ArgumentError


def as_collection(data: Any) -> Dict[Any, Any]:
    """
    Coerces stage input into a key/value collection.

    Accepts any mapping, or a flat list/tuple of alternating keys and values
    (``["a", 1, "b", 2]``). A flat sequence that repeats a key keeps the last
    value, like ``dict`` does.

    Raises:
        ArgumentError: If the data is neither, a flat sequence has an odd
            number of elements, or a key is unhashable.
    """
    try:
        if isinstance(data, Mapping):
            return dict(data)
        if isinstance(data, (list, tuple)):
            if len(data) % 2:
                raise ArgumentError(
                    f"data argument is not a key/value collection: odd number of elements ({len(data)})"
                )
            return dict(zip(data[0::2], data[1::2]))
    except TypeError as e:
        raise ArgumentError(f"data argument is not a key/value collection: {e}") from e
    raise ArgumentError(f"data argument is not a key/value collection: {type(data).__name__}")


def resolve_function(fn: Union[str, Callable[..., Any]]) -> Callable[..., Any]:
    """
    Resolves a function reference.

    A reference is either a callable or a ``"package.module:attribute"`` path,
    where the attribute may itself be dotted (``"pkg.mod:Class.method"``).
    """
    if callable(fn):
        return fn
    if not isinstance(fn, str):
        raise ArgumentError(f"function reference is not callable: {fn!r}")

    try:
        module_path, attr_path = fn.split(":", 1)
    except ValueError:
        raise ArgumentError(
            f"function path must be in the format 'path.to.module:function', got '{fn}'"
        )

    try:
        target: Any = importlib.import_module(module_path)
    except ImportError as e:
        raise ArgumentError(f"function does not exist: {fn} (could not import '{module_path}': {e})") from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ArgumentError(f"function does not exist: {fn}") from None

    if not callable(target):
        raise ArgumentError(f"function reference is not callable: {fn}")
    return target


def function_name(fn: Callable[..., Any]) -> str:
    """Returns a readable, qualified name for a callable."""
    module = getattr(fn, "__module__", None)
    qualname = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    if qualname is None:
        return repr(fn)
    return f"{module}.{qualname}" if module else qualname


def ensure_list(obj: Any) -> List[Any]:
    """
    Normalises the return value of a reduce function into a list.

    Lists are returned as is. Other sequences (tuples, ranges, ...) are
    copied into a list, and generators and other iterators are consumed.
    `None` is treated as an empty list. Any other value, including a string,
    is wrapped in a list as a single item.
    """
    if obj is None:
        return []
    if isinstance(obj, list):
        return obj
    if isinstance(obj, (str, bytes)):
        return [obj]
    if isinstance(obj, (Sequence, types.GeneratorType, Iterator)):
        return list(obj)
    return [obj]


def materialize(obj: Any) -> Any:
    """Consumes generators and iterators so a result can leave a worker."""
    if isinstance(obj, (types.GeneratorType, Iterator)):
        return list(obj)
    return obj


def iter_pairs(obj: Any) -> List[Tuple[Any, Any]]:
    """
    Validates the return value of a map function as (key, value) pairs.

    Raises:
        TypeError: If the value is not iterable, an element is not a
            two-item sequence, or a key is unhashable.
    """
    if obj is None:
        return []
    if isinstance(obj, (str, bytes, Mapping)):
        raise TypeError(
            f"map function must return an iterable of (key, value) pairs, got {type(obj).__name__}"
        )
    try:
        items = list(obj)
    except TypeError:
        raise TypeError(
            f"map function must return an iterable of (key, value) pairs, got {type(obj).__name__}"
        ) from None

    pairs = []
    for item in items:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise TypeError(f"map function returned a malformed (key, value) pair: {item!r}")
        try:
            hash(item[0])
        except TypeError as e:
            raise TypeError(f"map function returned an unhashable key: {item[0]!r} ({e})") from None
        pairs.append((item[0], item[1]))
    return pairs
