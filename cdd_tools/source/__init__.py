"""Rust source model and structural patching."""

from .syntax import DeclHandle, Node, NodeKind, Tree, find_declaration, parse
from .patcher import (
    AddAttribute,
    AddField,
    AddImport,
    InsertRegistration,
    MutationRequest,
    RetypeField,
    apply,
)

__all__ = [
    "DeclHandle",
    "Node",
    "NodeKind",
    "Tree",
    "find_declaration",
    "parse",
    "AddAttribute",
    "AddField",
    "AddImport",
    "InsertRegistration",
    "MutationRequest",
    "RetypeField",
    "apply",
]
