import hashlib
from pathlib import Path
from typing import List, Union

YAML_SUFFIXES = (".yaml", ".yml")


def version_key(v: str) -> tuple:
    """
    Convert a version string into a sortable tuple.

    Numeric parts compare as numbers, anything else as text after the numbers.
    """
    v_str = str(v) if v is not None else ""
    parts = []
    for part in v_str.replace("-", ".").split("."):
        try:
            parts.append((0, int(part)))
        except ValueError:
            parts.append((1, part))
    return tuple(parts)


def sha256_file(path: Union[str, Path]) -> str:
    """
    Hex sha256 of a file's content. Symlinks are followed.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def is_yaml_file_name(name: str) -> bool:
    return name.endswith(YAML_SUFFIXES)


def has_path_suffix(path: str, suffix: str) -> bool:
    """
    True if the last components of ``path`` are exactly those of ``suffix``.

    Both are compared component by component so 'a/bc.yaml' is not a suffix
    match for 'c.yaml'.
    """
    if not suffix:
        return False
    path_parts = Path(path).parts
    suffix_parts = Path(suffix).parts
    if len(suffix_parts) > len(path_parts):
        return False
    return path_parts[-len(suffix_parts):] == suffix_parts


def insert_in_order_no_case(values: List[str], value: str) -> List[str]:
    """
    Insert a string in a case-insensitively sorted list, skipping duplicates.
    """
    if value in values:
        return values
    keys = [v.lower() for v in values]
    pos = 0
    while pos < len(keys) and keys[pos] < value.lower():
        pos += 1
    values.insert(pos, value)
    return values
