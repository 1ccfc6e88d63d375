"""
Immutable HTML document model used by the extraction engine.

BeautifulSoup parses the markup once; the tree is then flattened into an
arena of `Node` records stored in pre-order. Every node knows the index of
its parent, its children, and where its subtree ends, so navigation is plain
list indexing:

    - ancestors walk `parent` indices up to the root.
    - descendants of node i are exactly `nodes[i + 1:subtree_end]`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, CData, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

SKIPPED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
# Text inside these elements never renders as page content.
SILENT_TAGS = {"script", "style", "template", "noscript"}


def normalize_whitespace(value: str) -> str:
    """Collapse whitespace runs (newlines, tabs, nbsp) to one space and trim."""
    return " ".join(value.split())


@dataclass(frozen=True)
class Node:
    index: int
    tag: Optional[str]  # None for text nodes
    text: str
    parent: Optional[int]
    children: Tuple[int, ...]
    subtree_end: int

    @property
    def is_text(self) -> bool:
        return self.tag is None


class Document:
    """Read-only node arena built from an HTML string."""

    def __init__(self, nodes: Sequence[Node]):
        self._nodes: Tuple[Node, ...] = tuple(nodes)

    @classmethod
    def from_html(cls, html: str) -> "Document":
        soup = BeautifulSoup(html, "html.parser")
        tags: List[Optional[str]] = ["[document]"]
        texts: List[str] = [""]
        parents: List[Optional[int]] = [None]
        index_by_id: Dict[int, int] = {id(soup): 0}

        for element in soup.descendants:
            if isinstance(element, SKIPPED_STRINGS):
                continue
            parent_index = index_by_id.get(id(element.parent))
            if parent_index is None:
                continue
            if isinstance(element, Tag):
                index_by_id[id(element)] = len(tags)
                tags.append(element.name.lower())
                texts.append("")
            elif isinstance(element, NavigableString):
                if tags[parent_index] in SILENT_TAGS:
                    continue
                tags.append(None)
                texts.append(str(element))
            parents.append(parent_index)

        children: List[List[int]] = [[] for _ in tags]
        for index, parent_index in enumerate(parents):
            if parent_index is not None:
                children[parent_index].append(index)

        # Pre-order: a subtree ends where its last child's subtree ends.
        ends = [index + 1 for index in range(len(tags))]
        for index in range(len(tags) - 1, -1, -1):
            if children[index]:
                ends[index] = ends[children[index][-1]]

        nodes = [
            Node(
                index=index,
                tag=tags[index],
                text=texts[index],
                parent=parents[index],
                children=tuple(children[index]),
                subtree_end=ends[index],
            )
            for index in range(len(tags))
        ]
        return cls(nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, index: int) -> Node:
        return self._nodes[index]

    @property
    def root(self) -> "Element":
        return Element(self, 0)

    def element(self, index: int) -> "Element":
        if self._nodes[index].is_text:
            raise ValueError(f"node {index} is a text node, not an element")
        return Element(self, index)

    def descendants(self, index: int) -> Iterator[Node]:
        node = self._nodes[index]
        for offset in range(index + 1, node.subtree_end):
            yield self._nodes[offset]

    def ancestors(self, index: int) -> Iterator[Node]:
        parent = self._nodes[index].parent
        while parent is not None:
            yield self._nodes[parent]
            parent = self._nodes[parent].parent

    def is_descendant(self, index: int, ancestor: int) -> bool:
        return ancestor < index < self._nodes[ancestor].subtree_end


@dataclass(frozen=True)
class Element:
    """A view of one element node inside a `Document`."""

    document: Document
    index: int

    def find_all(self, tag: str) -> List["Element"]:
        """Descendant elements with the given tag, in document order."""
        tag = tag.lower()
        return [Element(self.document, node.index) for node in self.document.descendants(self.index) if node.tag == tag]

    def closest(self, *tags: str) -> Optional["Element"]:
        """Nearest proper ancestor whose tag is one of `tags`."""
        wanted = {tag.lower() for tag in tags}
        for node in self.document.ancestors(self.index):
            if node.tag in wanted:
                return Element(self.document, node.index)
        return None

    def text_tokens(self) -> List[str]:
        """Whitespace-normalized, non-blank descendant text nodes in document order."""
        tokens: List[str] = []
        for node in self.document.descendants(self.index):
            if not node.is_text:
                continue
            token = normalize_whitespace(node.text)
            if token:
                tokens.append(token)
        return tokens

    def contains(self, other: "Element") -> bool:
        return self.document.is_descendant(other.index, self.index)
