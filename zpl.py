"""
ZPL - Runtime Reader/Writer

A small, zero-dependency reader and writer for ZPL configuration text.
Nesting is expressed purely through indentation (4 spaces per level); every
line is either a section header or a key=value pair.

Usage:
    import zpl

    # Load from string
    doc = zpl.parse('''
    server
        host=localhost
        # Default port
        port=8080
    ''')

    # Relaxed mode also understands // and /* ... */ comments
    doc = zpl.parse_relaxed(text)

    # Build and render
    text = zpl.render(zpl.create(
        zpl.make_section('server', zpl.make_keyvalue('host', 'localhost'))))

    # Files
    with open('app.zpl', 'r') as f:
        doc = zpl.load(f)
    with open('app.zpl', 'w', newline='') as f:
        zpl.dump(doc, f)
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, TextIO, Tuple, Union

__all__ = [
    'Section', 'KeyValue', 'Element', 'Document',
    'parse', 'parse_relaxed', 'load', 'loads',
    'render', 'dump', 'dumps', 'single', 'to_zpl',
    'make_section', 'make_keyvalue', 'create',
    'is_section', 'is_keyvalue', 'unpack_section', 'unpack_keyvalue',
    'find_sections', 'find_section', 'find_section_or_empty',
    'find_values', 'find_value', 'find_value_or',
    'ParseError', 'ElementTypeError',
]

logger = logging.getLogger(__name__)

INDENT_WIDTH = 4
INDENT = ' ' * INDENT_WIDTH
NEWLINE = '\r\n'

# ==========================================
# Data Structures
# ==========================================

@dataclass(frozen=True)
class KeyValue:
    key: str
    value: str

@dataclass(frozen=True)
class Section:
    name: str
    elements: Tuple['Element', ...] = ()

Element = Union[Section, KeyValue]
Document = Tuple[Section, ...]

@dataclass
class Line:
    text: str
    number: int

class ParseError(Exception):
    def __init__(self, message: str, line: int = 0):
        super().__init__(f"Parse error at line {line}: {message}")
        self.line = line

class ElementTypeError(TypeError):
    """Raised when an element is unwrapped as the variant it is not."""

# ==========================================
# Line Normalizer
# ==========================================

class _ZPLNormalizer:
    def __init__(self, source: str, strict: bool):
        if source.startswith('\ufeff'):
            source = source[1:]
        self.source = source
        self.strict = strict
        self.in_block_comment = False
        self.block_start = 0

    def is_comment(self, trimmed):
        return trimmed.startswith('#') or (not self.strict and trimmed.startswith('//'))

    def opens_block(self, trimmed):
        return not self.strict and trimmed.startswith('/*')

    @staticmethod
    def closes_block(trimmed):
        return trimmed.endswith('*/')

    def physical_lines(self):
        # \r\n must be consumed as one terminator, a lone \r is one too
        text = self.source.replace('\r\n', '\n').replace('\r', '\n')
        lines = text.split('\n')
        if lines and lines[-1] == '':
            lines.pop()
        return lines

    def lines(self) -> List[Line]:
        result = []
        for number, raw in enumerate(self.physical_lines(), 1):
            trimmed = raw.strip()

            if self.in_block_comment:
                if self.closes_block(trimmed):
                    self.in_block_comment = False
                continue

            if self.is_comment(trimmed):
                continue

            if self.opens_block(trimmed):
                # /* ... */ closes on its own line
                if not self.closes_block(trimmed):
                    self.in_block_comment = True
                    self.block_start = number
                continue

            if not trimmed:
                continue

            result.append(Line(raw, number))

        if self.in_block_comment:
            logger.warning("Unterminated block comment (started at line %d)", self.block_start)
        return result

# ==========================================
# Structural Parser
# ==========================================

@dataclass
class _OpenSection:
    name: str
    child_level: int
    elements: List[Element] = field(default_factory=list)

    def freeze(self) -> Section:
        return Section(self.name, tuple(self.elements))

def indent_level(text: str) -> int:
    count = len(text) - len(text.lstrip(' '))
    return count // INDENT_WIDTH

class _ZPLParser:
    def __init__(self, lines: List[Line]):
        self.lines = lines
        self.stack: List[_OpenSection] = []
        self.document: List[Section] = []

    def error(self, message: str, line: Line):
        raise ParseError(message, line.number)

    def close_innermost(self):
        section = self.stack.pop().freeze()
        if self.stack:
            self.stack[-1].elements.append(section)
        else:
            self.document.append(section)

    def dedent_to(self, level):
        while self.stack and self.stack[-1].child_level > level:
            self.close_innermost()

    def parse_line(self, line: Line):
        level = indent_level(line.text)
        self.dedent_to(level)

        content = line.text.lstrip()
        if '=' in content:
            key, value = content.split('=', 1)
            if not self.stack:
                self.error(f"Key-value pair '{key.strip()}' outside of any section", line)
            self.stack[-1].elements.append(KeyValue(key.strip(), value))
        else:
            self.stack.append(_OpenSection(content.strip(), level + 1))

    def parse(self) -> Document:
        for line in self.lines:
            self.parse_line(line)
        while self.stack:
            self.close_innermost()
        return tuple(self.document)

# ==========================================
# Canonical Renderer
# ==========================================

def _render_section(section: Section, out: List[str]):
    pending: List[Tuple[Element, int]] = [(section, 0)]
    while pending:
        element, depth = pending.pop()
        if isinstance(element, Section):
            out.append(INDENT * depth + element.name + NEWLINE)
            # reversed so the first child is popped first
            pending.extend((child, depth + 1) for child in reversed(element.elements))
        else:
            out.append(INDENT * depth + element.key + '=' + element.value + NEWLINE)

# ==========================================
# Public API
# ==========================================

def loads(source: str, strict: bool = True) -> Document:
    """Parse ZPL source string."""
    lines = _ZPLNormalizer(source, strict).lines()
    document = _ZPLParser(lines).parse()
    logger.debug("Parsed %d content lines into %d sections (%s mode)",
                 len(lines), len(document), 'strict' if strict else 'relaxed')
    return document

def load(fp: TextIO, strict: bool = True) -> Document:
    """Parse ZPL from a file-like object."""
    return loads(fp.read(), strict)

def parse(text: str) -> Document:
    """Parse with '#' line comments only."""
    return loads(text, strict=True)

def parse_relaxed(text: str) -> Document:
    """Parse with '#', '//' and '/* ... */' comments."""
    return loads(text, strict=False)

def render(document: Iterable[Section]) -> str:
    """
    Render sections as canonical ZPL: four spaces per nesting level and
    CRLF after every line, independent of how the tree was produced.
    """
    out: List[str] = []
    for section in document:
        _render_section(section, out)
    return ''.join(out)

dumps = render

def dump(document: Iterable[Section], fp: TextIO):
    """Write canonical ZPL to a file-like object (open files with newline='')."""
    fp.write(render(document))

def single(name: str, elements: Iterable[Element]) -> str:
    return render([make_section(name, *elements)])

def to_zpl(sections: Iterable[Section]) -> str:
    return render(tuple(sections))

# Builders

def make_keyvalue(key: str, value: str) -> KeyValue:
    return KeyValue(key, value)

def make_section(name: str, *elements: Element) -> Section:
    if not name.strip():
        raise ValueError("Section name must not be empty")
    return Section(name, tuple(elements))

def create(*sections: Section) -> Document:
    return tuple(sections)

# Queries

def is_section(element: Element) -> bool:
    return isinstance(element, Section)

def is_keyvalue(element: Element) -> bool:
    return isinstance(element, KeyValue)

def unpack_section(element: Element) -> Section:
    if not isinstance(element, Section):
        raise ElementTypeError(f"Expected a section, got {type(element).__name__}")
    return element

def unpack_keyvalue(element: Element) -> KeyValue:
    if not isinstance(element, KeyValue):
        raise ElementTypeError(f"Expected a key-value pair, got {type(element).__name__}")
    return element

def find_sections(name: str, elements: Iterable[Element]) -> List[Section]:
    return [unpack_section(e) for e in elements if is_section(e) and e.name == name]

def find_section(name: str, elements: Iterable[Element]) -> Optional[Section]:
    found = find_sections(name, elements)
    return found[0] if found else None

def find_section_or_empty(name: str, elements: Iterable[Element]) -> Section:
    found = find_section(name, elements)
    return found if found is not None else make_section(name)

def find_values(key: str, elements: Iterable[Element]) -> List[str]:
    return [unpack_keyvalue(e).value for e in elements if is_keyvalue(e) and e.key == key]

def find_value(key: str, elements: Iterable[Element]) -> Optional[str]:
    found = find_values(key, elements)
    return found[0] if found else None

def find_value_or(key: str, default: str, elements: Iterable[Element]) -> str:
    found = find_value(key, elements)
    return found if found is not None else default
