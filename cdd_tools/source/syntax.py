"""
Declaration-level syntax model for generated Rust sources.

The tree is an arena: nodes live in ``Tree.nodes`` and refer to each other by
index. Only item structure is modelled (attributes, structs and their fields,
enums and their variants, functions and their bodies, modules, impl/trait
blocks, imports). Expressions inside function bodies are kept as opaque spans.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Final, Iterator

from cdd_tools.shared.errors import ParseFailure, StaleHandleError

from .lexer import Token, TokenKind, match_delimiters, tokenize

QUALIFIERS: Final[frozenset[str]] = frozenset({"const", "async", "unsafe", "extern", "default"})

_serials = itertools.count(1)


class NodeKind(Enum):
    FILE = "file"
    STRUCT = "struct"
    ENUM = "enum"
    FUNCTION = "function"
    USE = "use"
    ATTRIBUTE = "attribute"
    FIELD = "field"
    VARIANT = "variant"
    MODULE = "module"
    IMPL = "impl"
    TRAIT = "trait"
    TYPE_ALIAS = "type_alias"
    OTHER = "other"


@dataclass(slots=True)
class Node:
    """One syntax node. Offsets index into ``Tree.source``.

    ``start`` includes leading attributes; ``item_start`` is the offset of the
    visibility or keyword that follows them.
    """

    kind: NodeKind
    name: str | None
    start: int
    end: int
    item_start: int
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    # Offsets of the opening and closing brace (or paren for tuple structs)
    body: tuple[int, int] | None = None
    type_span: tuple[int, int] | None = None
    attr_path: str | None = None
    # Offsets of the parentheses of a list-style attribute
    attr_args: tuple[int, int] | None = None
    inner: bool = False


@dataclass(frozen=True, slots=True)
class DeclHandle:
    """Opaque reference to a declaration in one parse of a file."""

    serial: int
    index: int
    kind: NodeKind
    name: str


def bare_name(name: str) -> str:
    """Strip a raw-identifier prefix."""
    return name[2:] if name.startswith("r#") else name


@dataclass(slots=True)
class Tree:
    source: str
    nodes: list[Node]
    serial: int = field(default_factory=lambda: next(_serials))

    @property
    def root(self) -> Node:
        return self.nodes[0]

    def node(self, handle: DeclHandle) -> Node:
        """Return the node behind a handle.

        Raises:
            StaleHandleError: If the handle comes from another parse.
        """
        if handle.serial != self.serial:
            raise StaleHandleError(f"Handle for '{handle.name}' belongs to another parse")
        return self.nodes[handle.index]

    def text(self, node: Node) -> str:
        return self.source[node.start:node.end]

    def children(self, node: Node, kind: NodeKind | None = None) -> list[Node]:
        return [
            self.nodes[index] for index in node.children
            if kind is None or self.nodes[index].kind is kind
        ]

    def walk(self, start: int = 0) -> Iterator[tuple[int, Node]]:
        """Yield ``(index, node)`` depth-first, in source order."""
        stack = [start]
        while stack:
            index = stack.pop()
            current = self.nodes[index]
            yield index, current
            stack.extend(reversed(current.children))

    def handle(self, index: int) -> DeclHandle:
        node = self.nodes[index]
        return DeclHandle(self.serial, index, node.kind, node.name or "")

    def find_declaration(
        self,
        name: str,
        kinds: frozenset[NodeKind] | None = None,
    ) -> DeclHandle | None:
        """Find a struct, enum or function with the given name.

        Top-level items win over items nested in ``mod`` or ``impl`` blocks;
        within each level the first match in source order is returned.
        """
        wanted = kinds or frozenset({NodeKind.STRUCT, NodeKind.ENUM, NodeKind.FUNCTION})
        target = bare_name(name)
        for index in self.root.children:
            node = self.nodes[index]
            if node.kind in wanted and node.name is not None and bare_name(node.name) == target:
                return self.handle(index)
        for index, node in self.walk():
            if node.kind in wanted and node.name is not None and bare_name(node.name) == target:
                return self.handle(index)
        return None

    def attributes(self, handle: DeclHandle) -> list[Node]:
        return self.children(self.node(handle), NodeKind.ATTRIBUTE)

    def fields(self, handle: DeclHandle) -> list[Node]:
        return self.children(self.node(handle), NodeKind.FIELD)

    def variants(self, handle: DeclHandle) -> list[Node]:
        return self.children(self.node(handle), NodeKind.VARIANT)

    def find_field(self, handle: DeclHandle, name: str) -> Node | None:
        target = bare_name(name)
        for node in self.fields(handle):
            if node.name is not None and bare_name(node.name) == target:
                return node
        return None

    def function_body(self, handle: DeclHandle) -> tuple[int, int] | None:
        return self.node(handle).body

    def declarations(self, kind: NodeKind) -> list[Node]:
        return [node for _, node in self.walk() if node.kind is kind]

    def function_names(self) -> set[str]:
        return {node.name for node in self.declarations(NodeKind.FUNCTION) if node.name}

    def imports(self) -> list[str]:
        return [self.text(node) for node in self.declarations(NodeKind.USE)]


class _Parser:
    def __init__(self, text: str, source_path: str | None) -> None:
        self.text = text
        self.source_path = source_path
        self.tokens: list[Token] = tokenize(text, source_path)
        self.pairs = match_delimiters(text, self.tokens, source_path)
        self.nodes: list[Node] = []

    # -- helpers -----------------------------------------------------------

    def fail(self, message: str, index: int) -> ParseFailure:
        offset = self.tokens[index].start if index < len(self.tokens) else len(self.text)
        line = self.text.count("\n", 0, offset) + 1
        return ParseFailure(message, offset, line, self.source_path)

    def tok(self, index: int, limit: int) -> Token:
        if index >= limit:
            raise self.fail("unexpected end of item", index)
        return self.tokens[index]

    def is_punct(self, index: int, limit: int, text: str) -> bool:
        return (
            index < limit
            and self.tokens[index].kind is TokenKind.PUNCT
            and self.tokens[index].text == text
        )

    def is_word(self, index: int, limit: int, word: str) -> bool:
        return (
            index < limit
            and self.tokens[index].kind is TokenKind.IDENT
            and self.tokens[index].text == word
        )

    def add(self, node: Node, parent: int | None) -> int:
        index = len(self.nodes)
        node.parent = parent
        self.nodes.append(node)
        if parent is not None:
            self.nodes[parent].children.append(index)
        return index

    def skip_group(self, index: int) -> int:
        """Return the index just past a delimited group starting at ``index``."""
        return self.pairs[index] + 1

    def skip_generics(self, index: int, limit: int) -> int:
        if not self.is_punct(index, limit, "<"):
            return index
        depth = 0
        while index < limit:
            token = self.tokens[index]
            if token.kind is TokenKind.PUNCT:
                if token.text in ("(", "[", "{"):
                    index = self.skip_group(index)
                    continue
                if token.text == "<":
                    depth += 1
                elif token.text == ">":
                    depth -= 1
                    if depth == 0:
                        return index + 1
            index += 1
        raise self.fail("unterminated generic parameter list", index)

    def scan_to(self, index: int, limit: int, stops: tuple[str, ...]) -> int:
        """Advance to the first top-level punctuation in ``stops``."""
        while index < limit:
            token = self.tokens[index]
            if token.kind is TokenKind.PUNCT:
                if token.text in stops:
                    return index
                if token.text in ("(", "[", "{"):
                    index = self.skip_group(index)
                    continue
            index += 1
        raise self.fail(f"expected one of {', '.join(stops)}", index)

    def scan_list_entry(self, index: int, limit: int) -> int:
        """Advance to the ``,`` ending a field or variant, or to ``limit``."""
        angle = 0
        while index < limit:
            token = self.tokens[index]
            if token.kind is TokenKind.PUNCT:
                if token.text in ("(", "[", "{"):
                    index = self.skip_group(index)
                    continue
                if token.text == "<":
                    angle += 1
                elif token.text == ">" and angle > 0:
                    angle -= 1
                elif token.text == "," and angle == 0:
                    return index
            index += 1
        return limit

    def is_qualifier(self, index: int, limit: int) -> bool:
        """Check for a function or impl qualifier, as opposed to a const or default item."""
        if index >= limit or self.tokens[index].kind is not TokenKind.IDENT:
            return False
        word = self.tokens[index].text
        if word not in QUALIFIERS:
            return False
        if word in ("const", "default") and index + 1 < limit:
            following = self.tokens[index + 1]
            return following.text in QUALIFIERS or following.text in ("fn", "impl", "trait", "unsafe")
        return True

    def ident(self, index: int, limit: int, what: str) -> str:
        token = self.tok(index, limit)
        if token.kind is not TokenKind.IDENT:
            raise self.fail(f"expected {what} name", index)
        return token.text

    # -- attributes --------------------------------------------------------

    def parse_attributes(self, index: int, limit: int, parent: int | None) -> tuple[int, list[int]]:
        """Parse ``#[...]`` attributes; inner ``#![...]`` attach to ``parent``."""
        outer: list[int] = []
        while self.is_punct(index, limit, "#"):
            inner = self.is_punct(index + 1, limit, "!")
            open_index = index + (2 if inner else 1)
            if not self.is_punct(open_index, limit, "["):
                break
            close_index = self.pairs[open_index]
            node = self.attribute_node(index, open_index, close_index, inner)
            if inner:
                self.add(node, parent)
            else:
                outer.append(self.add(node, None))
            index = close_index + 1
        return index, outer

    def attribute_node(self, hash_index: int, open_index: int, close_index: int, inner: bool) -> Node:
        path_parts: list[str] = []
        args: tuple[int, int] | None = None
        cursor = open_index + 1
        while cursor < close_index:
            token = self.tokens[cursor]
            if token.kind is TokenKind.IDENT or token.text == "::":
                path_parts.append(token.text)
                cursor += 1
                continue
            if token.text == "(":
                args = (token.start, self.tokens[self.pairs[cursor]].start)
            break
        return Node(
            kind=NodeKind.ATTRIBUTE,
            name="".join(path_parts) or None,
            start=self.tokens[hash_index].start,
            end=self.tokens[close_index].end,
            item_start=self.tokens[hash_index].start,
            attr_path="".join(path_parts) or None,
            attr_args=args,
            inner=inner,
        )

    def attach(self, index: int, attributes: list[int]) -> None:
        for attr in attributes:
            self.nodes[attr].parent = index
        self.nodes[index].children[:0] = attributes
        if attributes:
            self.nodes[index].start = self.nodes[attributes[0]].start

    # -- items -------------------------------------------------------------

    def parse_items(self, index: int, limit: int, parent: int) -> None:
        while index < limit:
            index = self.parse_item(index, limit, parent)

    def parse_item(self, index: int, limit: int, parent: int) -> int:
        index, attributes = self.parse_attributes(index, limit, parent)
        if index >= limit:
            # Trailing attributes with no item stay on the enclosing node
            for attr in attributes:
                self.nodes[attr].parent = parent
                self.nodes[parent].children.append(attr)
            return index

        token = self.tokens[index]
        item_start = token.start
        cursor = index

        if token.kind is TokenKind.PUNCT and token.text == ";":
            return index + 1

        if self.is_word(cursor, limit, "pub"):
            cursor += 1
            if self.is_punct(cursor, limit, "("):
                cursor = self.skip_group(cursor)

        while self.is_qualifier(cursor, limit):
            word = self.tokens[cursor].text
            cursor += 1
            if word == "extern" and cursor < limit and self.tokens[cursor].kind is TokenKind.LITERAL:
                cursor += 1

        keyword = self.tokens[cursor].text if cursor < limit else ""
        if keyword in ("struct", "union"):
            end, node_index = self.parse_struct(cursor, limit, item_start, parent)
        elif keyword == "enum":
            end, node_index = self.parse_enum(cursor, limit, item_start, parent)
        elif keyword == "fn":
            end, node_index = self.parse_fn(cursor, limit, item_start, parent)
        elif keyword == "mod":
            end, node_index = self.parse_block_item(cursor, limit, item_start, parent, NodeKind.MODULE)
        elif keyword == "trait":
            end, node_index = self.parse_block_item(cursor, limit, item_start, parent, NodeKind.TRAIT)
        elif keyword == "impl":
            end, node_index = self.parse_block_item(cursor, limit, item_start, parent, NodeKind.IMPL)
        elif keyword == "type" and cursor + 1 < limit and self.tokens[cursor + 1].kind is TokenKind.IDENT:
            end = self.scan_to(cursor, limit, (";",)) + 1
            node_index = self.add(Node(
                NodeKind.TYPE_ALIAS, self.tokens[cursor + 1].text, item_start,
                self.tokens[end - 1].end, item_start,
            ), parent)
        elif keyword == "use":
            end = self.scan_to(cursor, limit, (";",)) + 1
            node_index = self.add(Node(
                NodeKind.USE, None, item_start, self.tokens[end - 1].end, item_start,
            ), parent)
        else:
            end = self.skip_other(cursor, limit)
            node_index = self.add(Node(
                NodeKind.OTHER, None, item_start, self.tokens[end - 1].end, item_start,
            ), parent)

        self.attach(node_index, attributes)
        return end

    def skip_other(self, index: int, limit: int) -> int:
        """Skip an item the model does not describe: up to ``;`` or a closing brace group."""
        while index < limit:
            token = self.tokens[index]
            if token.kind is TokenKind.PUNCT:
                if token.text == ";":
                    return index + 1
                if token.text == "{":
                    end = self.skip_group(index)
                    if self.is_punct(end, limit, ";"):
                        end += 1
                    return end
                if token.text in ("(", "["):
                    index = self.skip_group(index)
                    continue
            index += 1
        return limit

    def parse_struct(self, index: int, limit: int, item_start: int, parent: int) -> tuple[int, int]:
        name = self.ident(index + 1, limit, "struct")
        cursor = self.skip_generics(index + 2, limit)
        node = Node(NodeKind.STRUCT, name, item_start, 0, item_start)
        node_index = self.add(node, parent)

        if self.is_punct(cursor, limit, "("):
            close = self.pairs[cursor]
            node.body = (self.tokens[cursor].start, self.tokens[close].start)
            self.parse_tuple_fields(cursor, close, node_index)
            end = self.scan_to(close + 1, limit, (";",)) + 1
        else:
            cursor = self.scan_to(cursor, limit, ("{", ";"))
            if self.tokens[cursor].text == ";":
                end = cursor + 1
            else:
                close = self.pairs[cursor]
                node.body = (self.tokens[cursor].start, self.tokens[close].start)
                self.parse_record_fields(cursor, close, node_index)
                end = close + 1
        node.end = self.tokens[end - 1].end
        return end, node_index

    def parse_record_fields(self, open_index: int, close_index: int, parent: int) -> None:
        index = open_index + 1
        while index < close_index:
            index, attributes = self.parse_attributes(index, close_index, None)
            if index >= close_index:
                break
            field_start = self.tokens[index].start
            if self.is_word(index, close_index, "pub"):
                index += 1
                if self.is_punct(index, close_index, "("):
                    index = self.skip_group(index)
            name = self.ident(index, close_index, "field")
            if not self.is_punct(index + 1, close_index, ":"):
                raise self.fail("expected ':' after field name", index + 1)
            type_first = index + 2
            stop = self.scan_list_entry(type_first, close_index)
            if stop <= type_first:
                raise self.fail("expected field type", type_first)
            type_span = (self.tokens[type_first].start, self.tokens[stop - 1].end)
            field_index = self.add(Node(
                NodeKind.FIELD, name, field_start, type_span[1], field_start, type_span=type_span,
            ), parent)
            self.attach(field_index, attributes)
            index = stop + 1

    def parse_tuple_fields(self, open_index: int, close_index: int, parent: int) -> None:
        index = open_index + 1
        position = 0
        while index < close_index:
            index, attributes = self.parse_attributes(index, close_index, None)
            if index >= close_index:
                break
            field_start = self.tokens[index].start
            if self.is_word(index, close_index, "pub"):
                index += 1
                if self.is_punct(index, close_index, "("):
                    index = self.skip_group(index)
            stop = self.scan_list_entry(index, close_index)
            type_span = (self.tokens[index].start, self.tokens[stop - 1].end)
            field_index = self.add(Node(
                NodeKind.FIELD, str(position), field_start, type_span[1], field_start, type_span=type_span,
            ), parent)
            self.attach(field_index, attributes)
            position += 1
            index = stop + 1

    def parse_enum(self, index: int, limit: int, item_start: int, parent: int) -> tuple[int, int]:
        name = self.ident(index + 1, limit, "enum")
        cursor = self.scan_to(self.skip_generics(index + 2, limit), limit, ("{",))
        close = self.pairs[cursor]
        node = Node(
            NodeKind.ENUM, name, item_start, self.tokens[close].end, item_start,
            body=(self.tokens[cursor].start, self.tokens[close].start),
        )
        node_index = self.add(node, parent)

        variant = cursor + 1
        while variant < close:
            variant, attributes = self.parse_attributes(variant, close, None)
            if variant >= close:
                break
            variant_name = self.ident(variant, close, "variant")
            stop = self.scan_list_entry(variant, close)
            variant_index = self.add(Node(
                NodeKind.VARIANT, variant_name, self.tokens[variant].start,
                self.tokens[stop - 1].end, self.tokens[variant].start,
            ), node_index)
            self.attach(variant_index, attributes)
            variant = stop + 1
        return close + 1, node_index

    def parse_fn(self, index: int, limit: int, item_start: int, parent: int) -> tuple[int, int]:
        name = self.ident(index + 1, limit, "function")
        cursor = self.scan_to(index + 2, limit, ("{", ";"))
        node = Node(NodeKind.FUNCTION, name, item_start, self.tokens[cursor].end, item_start)
        if self.tokens[cursor].text == "{":
            close = self.pairs[cursor]
            node.body = (self.tokens[cursor].start, self.tokens[close].start)
            node.end = self.tokens[close].end
            cursor = close
        return cursor + 1, self.add(node, parent)

    def parse_block_item(
        self,
        index: int,
        limit: int,
        item_start: int,
        parent: int,
        kind: NodeKind,
    ) -> tuple[int, int]:
        name = None
        if kind is not NodeKind.IMPL:
            name = self.ident(index + 1, limit, kind.value)
        cursor = self.scan_to(index + 1, limit, ("{", ";"))
        node = Node(kind, name, item_start, self.tokens[cursor].end, item_start)
        node_index = self.add(node, parent)
        if self.tokens[cursor].text == ";":
            return cursor + 1, node_index
        close = self.pairs[cursor]
        node.body = (self.tokens[cursor].start, self.tokens[close].start)
        node.end = self.tokens[close].end
        self.parse_items(cursor + 1, close, node_index)
        return close + 1, node_index

    def run(self) -> Tree:
        root = Node(NodeKind.FILE, None, 0, len(self.text), 0)
        self.add(root, None)
        self.parse_items(0, len(self.tokens), 0)
        return Tree(self.text, self.nodes)


def parse(source: str, source_path: str | None = None) -> Tree:
    """Parse Rust source text into a declaration-level tree.

    Raises:
        ParseFailure: If the text cannot be tokenized or an item is malformed.
    """
    return _Parser(source, source_path).run()


def find_declaration(tree: Tree, name: str, kind: NodeKind | None = None) -> DeclHandle | None:
    """Find a struct, enum or function by name, optionally restricted to one kind."""
    return tree.find_declaration(name, frozenset({kind}) if kind else None)
