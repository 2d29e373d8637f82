"""Removal of Vault source control bindings from Visual Studio files."""

import re
import time
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Dict, List

from loguru import logger

SOLUTION_SECTION_START = 'GlobalSection(SourceCodeControl)'
SOLUTION_SECTION_END = 'EndGlobalSection'
PROJECT_ELEMENT_PREFIX = 'Scc'
DEPLOYMENT_LINE_PREFIX = '"Scc'

_NAMESPACE = re.compile(r'^\{(?P<uri>[^}]*)\}(?P<local>.*)$')

# Markup that may surround the root element
_MISC = r'\s|<\?(?:(?!\?>).)*\?>|<!--(?:(?!-->).)*-->'
_PROLOG = re.compile(rf'(?:{_MISC}|<!DOCTYPE[^>\[]*(?:\[[^\]]*\])?\s*>)*', re.DOTALL)
_EPILOG = re.compile(rf'(?:{_MISC})*\Z', re.DOTALL)
_START_TAG = re.compile(r'<[^\s/>]+(?:\s+[^\s=/>]+\s*=\s*(?:"[^"]*"|\'[^\']*\'))*\s*/?>')
_XMLNS = re.compile(
    r'\sxmlns(?::(?P<prefix>[^\s=]+))?\s*=\s*(?P<quote>["\'])(?P<uri>.*?)(?P=quote)'
)


def _read_lines(path: Path):
    """Read a text file keeping line endings and note whether it had a BOM."""
    raw = path.read_bytes()
    bom = raw.startswith(b'\xef\xbb\xbf')
    text = raw.decode('utf-8-sig', errors='surrogateescape')
    return text.splitlines(keepends=True), bom


def _write_lines(path: Path, lines: List[str], bom: bool) -> None:
    data = ''.join(lines).encode('utf-8', errors='surrogateescape')
    path.write_bytes((b'\xef\xbb\xbf' if bom else b'') + data)


def strip_solution(path: Path) -> bool:
    """Drop every ``GlobalSection(SourceCodeControl)`` block of a .sln file.

    Returns:
        True if the file was changed
    """
    lines, bom = _read_lines(path)

    kept = []
    section = []
    for line in lines:
        stripped = line.strip()
        if section:
            section.append(line)
            if stripped.startswith(SOLUTION_SECTION_END):
                section = []
        elif stripped.startswith(SOLUTION_SECTION_START):
            section.append(line)
        else:
            kept.append(line)

    # An unterminated section is not a binding block; keep it
    kept.extend(section)
    if len(kept) == len(lines):
        return False

    _write_lines(path, kept, bom)
    return True


def strip_deployment_project(path: Path) -> bool:
    """Drop every ``"Scc...`` line of a .vdproj file."""
    lines, bom = _read_lines(path)
    kept = [line for line in lines if not line.strip().startswith(DEPLOYMENT_LINE_PREFIX)]
    if len(kept) == len(lines):
        return False
    _write_lines(path, kept, bom)
    return True


def _drop_element(parent: ET.Element, index: int) -> None:
    """Remove ``parent[index]`` together with the whitespace leading up to it."""
    child = parent[index]
    tail = child.tail or ''
    if index:
        previous = parent[index - 1]
        lead = previous.tail or ''
    else:
        lead = parent.text or ''

    # Whitespace before the element goes; the element's tail takes its place
    merged = tail if not lead.strip() else lead + tail
    if index:
        previous.tail = merged
    else:
        parent.text = merged
    parent.remove(child)


def strip_project(path: Path) -> bool:
    """Remove every element whose name starts with ``Scc`` from an MSBuild project.

    Only the root element is re-serialized. The XML declaration, comments and
    anything else around it are written back as they were read.

    Returns:
        True if the file was changed
    """
    raw = path.read_bytes()
    bom = raw.startswith(b'\xef\xbb\xbf')
    text = raw.decode('utf-8-sig')

    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    root = ET.fromstring(text, parser=parser)

    removed = 0
    for parent in list(root.iter()):
        index = 0
        while index < len(parent):
            child = parent[index]
            if isinstance(child.tag, str):
                match = _NAMESPACE.match(child.tag)
                local = match.group('local') if match else child.tag
                if local.startswith(PROJECT_ELEMENT_PREFIX):
                    _drop_element(parent, index)
                    removed += 1
                    continue
            index += 1

    if not removed:
        return False

    prolog = _PROLOG.match(text).group(0)
    epilog = _EPILOG.search(text).group(0)
    start_tag = _START_TAG.match(text, len(prolog)).group(0)
    original_uris = set()
    for declaration in _XMLNS.finditer(start_tag):
        # Serialize with the prefixes the file already uses
        ET.register_namespace(declaration.group('prefix') or '', declaration.group('uri'))
        original_uris.add(declaration.group('uri'))

    root.tail = None
    body = ET.tostring(root, encoding='unicode')
    written_tag = _START_TAG.match(body).group(0)
    if {m.group('uri') for m in _XMLNS.finditer(written_tag)} <= original_uris:
        body = start_tag + body[len(written_tag):]
    if '\r\n' in text[len(prolog):len(text) - len(epilog)]:
        body = body.replace('\n', '\r\n')

    data = (prolog + body + epilog).encode('utf-8')
    path.write_bytes((b'\xef\xbb\xbf' if bom else b'') + data)
    return True


class WorkingTreeSanitizer:
    """Applies the matching strip function to solution and project files."""

    def __init__(self):
        self.handlers: Dict[str, Callable[[Path], bool]] = {
            '.sln': strip_solution,
            '.csproj': strip_project,
            '.vbproj': strip_project,
            '.vcxproj': strip_project,
            '.vdproj': strip_deployment_project,
        }
        self.logger = logger.bind(component='Sanitizer')

    def is_supported(self, path) -> bool:
        return Path(path).suffix.lower() in self.handlers

    def sanitize(self, path) -> bool:
        """Strip source control bindings from one file.

        Files of other types are left untouched.

        Args:
            path: File to clean

        Returns:
            True if the file was changed
        """
        path = Path(path)
        handler = self.handlers.get(path.suffix.lower())
        if handler is None or not path.is_file():
            return False

        try:
            changed = handler(path)
        except (ET.ParseError, UnicodeDecodeError, ValueError) as e:
            self.logger.warning(f'Leaving {path} unchanged, cannot parse it: {e}')
            return False
        if changed:
            self.logger.debug(f'Removed source control bindings from {path}')
        return changed

    def sanitize_tree(self, root) -> int:
        """Sanitize every supported file below ``root``.

        Paths containing ``~`` are Vault temporary files and are skipped.

        Returns:
            Elapsed milliseconds
        """
        started = time.monotonic()
        root = Path(root)
        for path in sorted(root.rglob('*')):
            relative = path.relative_to(root)
            if relative.parts[0].lower().startswith('.git'):
                continue
            if '~' in str(relative) or not self.is_supported(path):
                continue
            self.sanitize(path)
        return int((time.monotonic() - started) * 1000)
