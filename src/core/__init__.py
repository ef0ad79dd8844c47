"""
Core layer: 저장소 정합성 핵심 모듈.

이 모듈만 건드리면 사용자 데이터 손상 → 가장 보수적으로 관리

역할:
- 경로 격리, index.json (락 + 원자적 쓰기 + reconcile), 인코딩, 3중 사본 동기화
"""

from .derivatives import generate_derivative, parse_size, render_primary
from .hashing import compute_content_hash, slugify
from .metadata import (
    atomic_write_json,
    metadata_lock,
    read_metadata,
    reconcile_order,
    update_metadata,
)
from .paths import check_reserved_names, resolve_path
from .store import AssetStore

__all__ = [
    # paths
    "resolve_path",
    "check_reserved_names",
    # metadata
    "metadata_lock",
    "atomic_write_json",
    "read_metadata",
    "update_metadata",
    "reconcile_order",
    # hashing
    "compute_content_hash",
    "slugify",
    # derivatives
    "parse_size",
    "render_primary",
    "generate_derivative",
    # store
    "AssetStore",
]
