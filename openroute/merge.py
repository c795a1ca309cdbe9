"""
Path-parameter schema merging.

Routes can be mounted under prefixes that declare their own path parameters,
and routers can be nested. Resolving a route walks every level from the
root mount down to the route itself and folds the declarations into one
ordered, name-deduplicated list.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import SchemaMismatchError
from .parameters import Parameter, ParameterLocation

PATH_PARAM_PATTERN = re.compile(r"\{(\w+)\}")

# (path segment contributed by this level, explicit declarations at this level)
Level = Tuple[str, Sequence[Parameter]]


def path_parameter_names(path: str) -> List[str]:
    """Return ``{name}`` parameters of a path in URL order."""
    return PATH_PARAM_PATTERN.findall(path)


def merge_path_parameters(accumulator: Sequence[Tuple[Parameter, bool]]) -> List[Parameter]:
    """Fold an accumulator of ``(parameter, explicit)`` pairs into one list.

    Position comes from the first occurrence of a name. The definition comes
    from the last explicit occurrence, so deeper declarations override
    shallower ones; implicit entries are used only when nothing explicit
    exists for that name.
    """
    order: List[str] = []
    chosen: Dict[str, Tuple[Parameter, bool]] = {}
    for parameter, explicit in accumulator:
        if parameter.location is not ParameterLocation.PATH:
            raise SchemaMismatchError(
                f"'{parameter.name}' is declared in {parameter.location.value}, expected path",
                field=parameter.name,
            )
        current = chosen.get(parameter.name)
        if current is None:
            order.append(parameter.name)
            chosen[parameter.name] = (parameter, explicit)
        elif explicit or not current[1]:
            chosen[parameter.name] = (parameter, explicit)
    return [chosen[name][0] for name in order]


def resolve_path_parameters(levels: Sequence[Level]) -> List[Parameter]:
    """Resolve the effective path parameters of a route.

    Args:
        levels: ``(segment, declarations)`` pairs from the root mount to the route

    Raises:
        SchemaMismatchError: if a name repeats in the URL or a declaration
            names a parameter that the URL does not contain
    """
    full_path = "".join(segment for segment, _ in levels)
    url_names = path_parameter_names(full_path)
    seen = set()
    for name in url_names:
        if name in seen:
            raise SchemaMismatchError(
                f"Path parameter '{name}' appears more than once in '{full_path}'",
                field=name,
                path=full_path,
            )
        seen.add(name)

    accumulator: List[Tuple[Parameter, bool]] = []
    for segment, declarations in levels:
        declared = {parameter.name for parameter in declarations}
        for name in path_parameter_names(segment):
            if name not in declared:
                accumulator.append((Parameter(name, ParameterLocation.PATH), False))
        accumulator.extend((parameter, True) for parameter in declarations)

    merged = merge_path_parameters(accumulator)
    for parameter in merged:
        if parameter.name not in seen:
            raise SchemaMismatchError(
                f"Path parameter '{parameter.name}' is declared but does not appear in '{full_path}'",
                field=parameter.name,
                path=full_path,
            )
    return merged


def match_path_keys(keys: Sequence[str], path_names: Sequence[str], path: str, explicit: bool = False) -> None:
    """Check that endpoint keys and URL parameters correspond one-to-one.

    Raises:
        SchemaMismatchError: naming the first key with no matching path
            parameter, or the first path parameter with no matching key
    """
    kind = "path parameter" if explicit else "primary key"
    available = set(path_names)
    for key in keys:
        if key not in available:
            raise SchemaMismatchError(
                f"Primary keys differ from URL parameters: {kind} '{key}' has no matching "
                f"path parameter in '{path}'",
                field=key,
                path=path,
            )
    wanted = set(keys)
    for name in path_names:
        if name not in wanted:
            raise SchemaMismatchError(
                f"Primary keys differ from URL parameters: path parameter '{name}' in '{path}' "
                f"matches no {kind}",
                field=name,
                path=path,
            )


def key_names(primary_keys: Sequence[str], explicit: Optional[Sequence[str]]) -> Tuple[str, ...]:
    return tuple(explicit) if explicit else tuple(primary_keys)
