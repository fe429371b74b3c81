"""
Office template renderer.

Fills a .docx template in memory with python-docx: merge tags ``{name}`` / ``{a.b}``, sections
``{#list}...{/list}`` (repeating the enclosing table rows or paragraphs when the tags sit in them),
inverted sections ``{^name}...{/name}`` and image tags ``{%name}``. Nothing touches the filesystem
except reading the template and image paths.
"""

import asyncio
import base64
import binascii
import io
import logging
import re
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import aiofiles
import aiofiles.os
from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from app.core.exceptions import TemplateNotFound

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"\{\s*([#^/%]?)\s*([^{}<>\s][^{}<>]*?)\s*\}")
DATA_URI_RE = re.compile(r"^data:([\w\-/+.]+)?(;base64)?,(.*)$", re.DOTALL)

SECTION_KINDS = ("#", "^", "/")
IMAGE_SIZE = Pt(18)

W_P = qn("w:p")
W_T = qn("w:t")
W_TBL = qn("w:tbl")
W_TR = qn("w:tr")
W_TC = qn("w:tc")
W_DRAWING = qn("w:drawing")

MIME_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpeg", "image/jpg": "jpeg", "image/gif": "gif", "image/bmp": "bmp"}


# ----- Image resolution -----


def _sniff_extension(data: bytes) -> Optional[str]:
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"\xff\xd8"):
        return "jpeg"
    if data.startswith(b"GIF8"):
        return "gif"
    if data.startswith(b"BM"):
        return "bmp"
    return None


def resolve_image(value: Any) -> Optional[Tuple[bytes, str]]:
    """Data URI, raw bytes or a file path -> (bytes, extension). None when it cannot be resolved."""
    if not value:
        return None
    data: Optional[bytes] = None
    extension: Optional[str] = None
    try:
        if isinstance(value, (bytes, bytearray)):
            data = bytes(value)
        elif isinstance(value, str) and value.startswith("data:"):
            match = DATA_URI_RE.match(value)
            if not match or not match.group(2):
                return None
            data = base64.b64decode(match.group(3), validate=False)
            extension = MIME_EXTENSIONS.get((match.group(1) or "").lower())
        elif isinstance(value, (str, Path)):
            path = Path(value)
            if not path.is_file():
                return None
            data = path.read_bytes()
        else:
            return None
    except (OSError, ValueError, binascii.Error):
        return None
    if not data:
        return None
    extension = _sniff_extension(data) or extension
    if extension is None:
        return None
    return data, extension


# ----- Tag merging -----


def merge_split_tags(paragraph: Paragraph) -> None:
    """Pull tag text that Word split over several runs back into the run where the tag opens."""
    runs = paragraph.runs
    if len(runs) < 2:
        return
    texts = [run.text for run in runs]
    changed = set()
    open_idx: Optional[int] = None
    for i in range(len(texts)):
        if open_idx is not None:
            close = texts[i].find("}")
            if close == -1:
                texts[open_idx] += texts[i]
                texts[i] = ""
                changed.update((open_idx, i))
                continue
            texts[open_idx] += texts[i][: close + 1]
            texts[i] = texts[i][close + 1:]
            changed.update((open_idx, i))
            open_idx = None
        last_open = texts[i].rfind("{")
        if last_open != -1 and texts[i].find("}", last_open) == -1:
            open_idx = i
    for i in sorted(changed):
        runs[i].text = texts[i]


# ----- Context lookup -----


def _lookup(stack: Sequence[Any], name: str) -> Any:
    if name == ".":
        return stack[-1] if stack else None
    head, *rest = name.split(".")
    for scope in reversed(stack):
        if isinstance(scope, Mapping) and head in scope:
            value = scope[head]
            break
    else:
        return None
    for part in rest:
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            return None
    return value


def _is_truthy(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(value)


def _scopes(kind: str, value: Any, stack: List[Any]) -> List[List[Any]]:
    """One context stack per time the section body is rendered."""
    if kind == "^":
        return [] if _is_truthy(value) else [stack]
    if not _is_truthy(value):
        return []
    if isinstance(value, (list, tuple)):
        return [stack + [item] for item in value]
    if isinstance(value, Mapping):
        return [stack + [value]]
    return [stack]


def _format_value(value: Any) -> str:
    if value is None or isinstance(value, Mapping):
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else ""
    return str(value).replace("\r\n", "\n")


# ----- Block level sections -----


@dataclass
class _SectionTag:
    kind: str
    name: str
    node: Any
    start: int
    end: int

    @property
    def raw(self) -> str:
        return self.node.text[self.start:self.end]


def _section_tags(element: Any) -> List[_SectionTag]:
    tags = []
    for node in element.iter(W_T):
        for match in TOKEN_RE.finditer(node.text or ""):
            if match.group(1) in SECTION_KINDS:
                tags.append(_SectionTag(match.group(1), match.group(2), node, match.start(), match.end()))
    return tags


def _first_unclosed(tags: Sequence[_SectionTag]) -> Optional[int]:
    opened: List[int] = []
    for idx, tag in enumerate(tags):
        if tag.kind != "/":
            opened.append(idx)
            continue
        for pos in range(len(opened) - 1, -1, -1):
            if tags[opened[pos]].name == tag.name:
                del opened[pos:]
                break
    return opened[0] if opened else None


def _unclosed_in(unit: Any) -> Optional[Tuple[_SectionTag, List[_SectionTag]]]:
    """First section opened in ``unit`` and not closed there, with the tags that follow it."""
    groups = [_section_tags(tc) for tc in unit.findall(W_TC)] if unit.tag == W_TR else [_section_tags(unit)]
    for g, tags in enumerate(groups):
        idx = _first_unclosed(tags)
        if idx is not None:
            following = tags[idx + 1:] + [tag for later in groups[g + 1:] for tag in later]
            return tags[idx], following
    return None


def _find_close(
    name: str, following: Sequence[_SectionTag], later_units: Sequence[Any]
) -> Optional[Tuple[int, _SectionTag]]:
    depth = 1
    candidates = [following] + [_section_tags(unit) for unit in later_units]
    for offset, tags in enumerate(candidates):
        for tag in tags:
            if tag.name != name:
                continue
            depth += -1 if tag.kind == "/" else 1
            if depth == 0:
                return offset, tag
    return None


def _strip(tag: _SectionTag) -> None:
    tag.node.text = tag.node.text[:tag.start] + tag.node.text[tag.end:]


def _element_text(element: Any) -> str:
    return "".join(node.text or "" for node in element.iter(W_T))


def _holds_only(element: Any, tag: _SectionTag) -> bool:
    return (
        element.tag == W_P
        and _element_text(element).strip() == tag.raw
        and element.find(".//" + W_DRAWING) is None
    )


def _block_units(container: Any) -> List[Any]:
    return [child for child in container if child.tag in (W_P, W_TBL)]


# ----- Paragraph level rendering -----


@dataclass
class _Token:
    kind: str
    run: Any
    value: str = ""


@dataclass
class _Section:
    kind: str
    name: str
    children: List[Any] = field(default_factory=list)


@dataclass
class _Piece:
    run: Any
    text: Optional[str] = None
    image: Optional[Tuple[bytes, str]] = None


def _tokenize(runs: Sequence[Run]) -> List[_Token]:
    tokens: List[_Token] = []
    for run in runs:
        text = run.text
        if not TOKEN_RE.search(text):
            tokens.append(_Token("run", run._r))
            continue
        cursor = 0
        for match in TOKEN_RE.finditer(text):
            if match.start() > cursor:
                tokens.append(_Token("text", run._r, text[cursor:match.start()]))
            tokens.append(_Token(match.group(1) or "tag", run._r, match.group(2)))
            cursor = match.end()
        if cursor < len(text):
            tokens.append(_Token("text", run._r, text[cursor:]))
    return tokens


def _parse(tokens: Sequence[_Token]) -> List[Any]:
    root: List[Any] = []
    open_sections: List[Tuple[Optional[str], List[Any]]] = [(None, root)]
    for token in tokens:
        if token.kind in ("#", "^"):
            section = _Section(token.kind, token.value)
            open_sections[-1][1].append(section)
            open_sections.append((token.value, section.children))
        elif token.kind == "/":
            if any(name == token.value for name, _ in open_sections[1:]):
                while open_sections[-1][0] != token.value:
                    open_sections.pop()
                open_sections.pop()
            else:
                logger.warning("Closing tag {/%s} without an opening tag; dropped", token.value)
        else:
            open_sections[-1][1].append(token)
    return root


class _StoryRenderer:
    """Renders one story (document body, header or footer) in place."""

    def __init__(self, story: Any) -> None:
        self.story = story

    def render(self, container: Any, context: Dict[str, Any]) -> None:
        for p in list(container.iter(W_P)):
            merge_split_tags(Paragraph(p, self.story))
        self._render_units(_block_units(container), [context])
        for tc in container.iter(W_TC):
            if tc.find(W_P) is None:
                tc.append(OxmlElement("w:p"))

    # Blocks, rows and cells

    def _render_units(self, units: List[Any], stack: List[Any]) -> None:
        i = 0
        while i < len(units):
            unit = units[i]
            unclosed = _unclosed_in(unit)
            if unclosed is None:
                self._render_unit(unit, stack)
                i += 1
                continue
            opening, following = unclosed
            found = _find_close(opening.name, following, units[i + 1:])
            if found is None:
                logger.warning("Unclosed section {%s%s}; tag dropped", opening.kind, opening.name)
                _strip(opening)
                continue
            offset, closing = found
            self._expand(units[i:i + offset + 1], opening, closing, stack)
            i += offset + 1

    def _render_unit(self, unit: Any, stack: List[Any]) -> None:
        if unit.tag == W_P:
            self._render_paragraph(unit, stack)
        elif unit.tag == W_TBL:
            self._render_units(unit.findall(W_TR), stack)
        elif unit.tag == W_TR:
            for tc in unit.findall(W_TC):
                self._render_units(_block_units(tc), stack)

    def _expand(self, fragment: List[Any], opening: _SectionTag, closing: _SectionTag, stack: List[Any]) -> None:
        body = list(fragment)
        if len(fragment) > 1:
            if _holds_only(fragment[-1], closing):
                body = body[:-1]
            if _holds_only(fragment[0], opening):
                body = body[1:]
        # later offsets first so a shared text node keeps the earlier ones valid
        _strip(closing)
        _strip(opening)

        anchor = fragment[0]
        for scope in _scopes(opening.kind, _lookup(stack, opening.name), stack):
            copies = [deepcopy(unit) for unit in body]
            for copy in copies:
                anchor.addprevious(copy)
            self._render_units(copies, scope)
        for unit in fragment:
            unit.getparent().remove(unit)

    # Runs

    def _render_paragraph(self, p: Any, stack: List[Any]) -> None:
        paragraph = Paragraph(p, self.story)
        runs = paragraph.runs
        if not any(TOKEN_RE.search(run.text) for run in runs):
            return
        pieces: List[_Piece] = []
        self._emit(_parse(_tokenize(runs)), stack, pieces)

        first = runs[0]._r
        for piece in _coalesce(pieces):
            new_r = deepcopy(piece.run)
            first.addprevious(new_r)
            if piece.text is None and piece.image is None:
                continue
            run = Run(new_r, paragraph)
            run.text = piece.text or ""
            if piece.image is not None:
                self._add_picture(run, piece.image)
        for run in runs:
            p.remove(run._r)

    def _emit(self, nodes: Sequence[Any], stack: List[Any], pieces: List[_Piece]) -> None:
        for node in nodes:
            if isinstance(node, _Section):
                for scope in _scopes(node.kind, _lookup(stack, node.name), stack):
                    self._emit(node.children, scope, pieces)
            elif node.kind == "run":
                pieces.append(_Piece(node.run))
            elif node.kind == "text":
                pieces.append(_Piece(node.run, text=node.value))
            elif node.kind == "%":
                image = resolve_image(_lookup(stack, node.value))
                if image is not None:
                    pieces.append(_Piece(node.run, text="", image=image))
            else:
                pieces.append(_Piece(node.run, text=_format_value(_lookup(stack, node.value))))

    @staticmethod
    def _add_picture(run: Run, image: Tuple[bytes, str]) -> None:
        data, extension = image
        try:
            run.add_picture(io.BytesIO(data), width=IMAGE_SIZE, height=IMAGE_SIZE)
        except Exception as e:
            logger.warning("Could not embed %s image: %s", extension, e)


def _coalesce(pieces: Sequence[_Piece]) -> Iterator[_Piece]:
    """Adjacent text from the same template run becomes one run."""
    pending: Optional[_Piece] = None
    for piece in pieces:
        mergeable = piece.text is not None and piece.image is None
        if pending is not None and mergeable and pending.run is piece.run:
            pending.text += piece.text
            continue
        if pending is not None:
            yield pending
            pending = None
        if mergeable:
            pending = _Piece(piece.run, text=piece.text)
        else:
            yield piece
    if pending is not None:
        yield pending


# ----- Documents -----


def _stories(document: Any) -> Iterator[Tuple[Any, Any]]:
    yield document, document.element.body
    seen = set()
    for section in document.sections:
        for story in (
            section.header,
            section.first_page_header,
            section.even_page_header,
            section.footer,
            section.first_page_footer,
            section.even_page_footer,
        ):
            if story.is_linked_to_previous or id(story.part) in seen:
                continue
            seen.add(id(story.part))
            yield story, story._element


def render_document(template_bytes: bytes, data: Optional[Mapping[str, Any]]) -> bytes:
    """Render an in-memory .docx template and return the populated document bytes."""
    document = Document(io.BytesIO(template_bytes))
    context: Dict[str, Any] = dict(data or {})
    for story, container in list(_stories(document)):
        _StoryRenderer(story).render(container, context)
    out = io.BytesIO()
    document.save(out)
    return out.getvalue()


async def render_template(template_path: Any, data: Optional[Mapping[str, Any]]) -> bytes:
    """Load a template from disk and render it in a worker thread. Raises TemplateNotFound before opening the document."""
    path = str(template_path)
    if not await aiofiles.os.path.isfile(path):
        raise TemplateNotFound(path)
    async with aiofiles.open(path, "rb") as f:
        template_bytes = await f.read()
    return await asyncio.to_thread(render_document, template_bytes, data)
