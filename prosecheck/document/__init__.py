"""
Document Model
==============
Tree types with source provenance, the markup reader and the workspace of
project files.
"""

from .tree import BLOCK_KINDS, LEAF_KINDS, DocumentNode, NodeKind, SourceFile
from .reader import MarkupReader, split_language_tag
from .workspace import Snapshot, Workspace, file_id_for, resolve_project

__version__ = "1.0.0"
__all__ = [
    'BLOCK_KINDS',
    'LEAF_KINDS',
    'DocumentNode',
    'NodeKind',
    'SourceFile',
    'MarkupReader',
    'split_language_tag',
    'Snapshot',
    'Workspace',
    'file_id_for',
    'resolve_project',
]
