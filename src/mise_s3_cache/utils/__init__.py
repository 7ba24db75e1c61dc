"""Pure helpers: hashing, validation, host introspection, retry."""

from __future__ import annotations

from mise_s3_cache.utils.hashing import calculate_file_hash, calculate_hash
from mise_s3_cache.utils.retry import retry_with_backoff
from mise_s3_cache.utils.system import (
    current_timestamp,
    directory_size,
    find_project_root,
    get_architecture,
    get_platform,
    human_readable_size,
    is_ci_environment,
)
from mise_s3_cache.utils.validation import (
    is_valid_s3_bucket_name,
    is_valid_tool_name,
    is_valid_version,
    sanitize_path_component,
)

__all__ = [
    "calculate_file_hash",
    "calculate_hash",
    "current_timestamp",
    "directory_size",
    "find_project_root",
    "get_architecture",
    "get_platform",
    "human_readable_size",
    "is_ci_environment",
    "is_valid_s3_bucket_name",
    "is_valid_tool_name",
    "is_valid_version",
    "retry_with_backoff",
    "sanitize_path_component",
]
