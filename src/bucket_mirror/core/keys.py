"""Source/destination key mapping."""

from typing import Optional


def calculate_dest_key(source_key: str, source_prefix: str, dest_prefix: Optional[str]) -> str:
    """
    Calculate the destination key for a source key.

    Without a destination prefix the key is mirrored unchanged. With one, the
    source prefix is stripped and the destination prefix prepended as-is, so
    ``src/file.txt`` with ``src/ -> dst/`` becomes ``dst/file.txt``.

    Args:
        source_key: Key as listed in the source container
        source_prefix: Listing prefix of the source
        dest_prefix: Replacement prefix, or None for no remap

    Returns:
        Destination key
    """
    if dest_prefix is None:
        return source_key
    if source_prefix and source_key.startswith(source_prefix):
        relative_key = source_key[len(source_prefix):]
    else:
        relative_key = source_key
    return dest_prefix + relative_key


def calculate_source_key(dest_key: str, source_prefix: str, dest_prefix: Optional[str]) -> str:
    """Inverse of calculate_dest_key, used when pruning the destination."""
    if dest_prefix is None:
        return dest_key
    if dest_prefix and dest_key.startswith(dest_prefix):
        relative_key = dest_key[len(dest_prefix):]
    else:
        relative_key = dest_key
    return source_prefix + relative_key
