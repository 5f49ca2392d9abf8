"""SDS selection grammar.

Tools accept SDS names with an optional dot extension selecting a layer
of a 3D or 4D SDS:

    sur_refl_b02          the whole SDS
    sur_refl_b02.1        layer 1 of the 3rd dimension
    Surface_Refl.1.2      element 1 of the 3rd and 2 of the 4th dimension
    Surface_Refl.*.2      all elements of the 3rd dimension, element 2 of the 4th
    Surface_Refl.1-3.2    elements 1 to 3 of the 3rd dimension

Element numbers are 1-based on the command line and 0-based everywhere else.
"""

from typing import Callable, Iterable, List, Sequence, Tuple

from loguru import logger

from lib.sds_layout import NO_LAYER, layer_sizes

L2G_COMPACT_SUFFIX = "_c"
L2G_FIRST_SUFFIX = "_1"


def _is_index(text: str) -> bool:
    return text.isdigit()


def parse_sds_name(spec: str) -> Tuple[str, int, int]:
    """Split an SDS name into its base name and 0-based layer indices.

    Args:
        spec (str): SDS name, optionally with .n or .n.m extension

    Returns:
        Tuple[str, int, int]: (base name, n, m) where an absent index is -1

    Raises:
        ValueError: If an element number is 0

    Note:
        Names containing '(' are MODIS dimension-annotated names and are
        never split. An extension that is not numeric is kept as part of
        the name, so SDS names that contain dots still resolve.
    """
    if "(" in spec or "." not in spec:
        return spec, NO_LAYER, NO_LAYER

    base, ext = spec.split(".", 1)
    parts = ext.split(".")
    if len(parts) > 2 or not all(_is_index(part) for part in parts):
        return spec, NO_LAYER, NO_LAYER

    numbers = [int(part) for part in parts]
    if 0 in numbers:
        raise ValueError(f"Invalid SDS element number in {spec}: element numbers are 1-based")
    n = numbers[0] - 1
    m = numbers[1] - 1 if len(numbers) == 2 else NO_LAYER
    return base, n, m


def parse_dim_numbers(text: str, dim_size: int) -> List[int]:
    """Expand a 1-based element list such as "*", "2", "1,3" or "1-4".

    Args:
        text (str): Element list
        dim_size (int): Size of the dimension being indexed

    Returns:
        List[int]: 1-based element numbers in the order given

    Raises:
        ValueError: If an element is malformed or outside 1..dim_size
    """
    text = text.strip()
    if text == "*":
        return list(range(1, dim_size + 1))

    numbers = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        if "-" in token:
            low, high = token.split("-", 1)
            if not (_is_index(low.strip()) and _is_index(high.strip())):
                raise ValueError(f"Invalid element range: {token}")
            numbers.extend(range(int(low), int(high) + 1))
        elif _is_index(token):
            numbers.append(int(token))
        else:
            raise ValueError(f"Invalid element number: {token}")

    for number in numbers:
        if not 1 <= number <= dim_size:
            raise ValueError(f"Element number {number} out of range 1-{dim_size}")
    return numbers


def expand_sds_names(specs: Iterable[str],
                     lookup: Callable[[str], Sequence[int]]) -> List[str]:
    """Expand wildcard and range layer selections into explicit SDS names.

    Args:
        specs (Iterable[str]): SDS names as given by the user
        lookup (Callable[[str], Sequence[int]]): Returns the dimensions of a
            base SDS name, raising KeyError if it does not exist

    Returns:
        List[str]: Names with at most one element number per layer dimension

    Raises:
        ValueError: If a 2D SDS is given an extension or the extension does
            not match the SDS rank
    """
    names = []
    for spec in specs:
        if "(" in spec or "." not in spec:
            names.append(spec)
            continue

        base, ext = spec.split(".", 1)
        try:
            dims = lookup(base)
        except KeyError:
            # the dot is part of the SDS name
            names.append(spec)
            continue

        parts = ext.split(".")
        rank = len(dims)
        if rank == 2:
            raise ValueError(f"{spec}: a 2D SDS has no layers to select")
        sizes = layer_sizes(dims)
        if len(parts) != len(sizes):
            raise ValueError(
                f"{spec}: a {rank}D SDS needs {len(sizes)} element number(s), got {len(parts)}"
            )

        first = parse_dim_numbers(parts[0], sizes[0])
        if rank == 3:
            names.extend(f"{base}.{n}" for n in first)
        else:
            second = parse_dim_numbers(parts[1], sizes[1])
            names.extend(f"{base}.{n}.{m}" for n in first for m in second)
    return names


def l2g_base_names(names: Iterable[str]) -> List[str]:
    """Return the base names of the compact L2G SDSs in a name list."""
    return [name[:-len(L2G_COMPACT_SUFFIX)] for name in names
            if name.endswith(L2G_COMPACT_SUFFIX)]


def expand_l2g_names(specs: Iterable[str], nobs: int,
                     has_sds: Callable[[str], bool]) -> List[str]:
    """Expand L2G observation selections such as "sur_refl_b01.1-3".

    Args:
        specs (Iterable[str]): L2G SDS names with an observation extension
        nobs (int): Maximum number of observations in the file
        has_sds (Callable[[str], bool]): Tells whether an SDS exists in the file

    Returns:
        List[str]: One "name.k" entry per selected observation
    """
    names = []
    for spec in specs:
        if "." not in spec:
            logger.warning(f"L2G SDS name {spec} needs an observation number, skipping")
            continue
        base, ext = spec.split(".", 1)
        if not has_sds(base + L2G_FIRST_SUFFIX):
            logger.warning(f"L2G SDS {base} not found, skipping")
            continue
        names.extend(f"{base}.{k}" for k in parse_dim_numbers(ext, nobs))
    return names
