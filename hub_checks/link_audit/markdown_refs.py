"""
Markdown Reference Extraction

Finds every link and image target in a Markdown document, together with
the heading anchors the document exposes. Handles:
- Inline links and images, including badges ([![alt](img)](url))
- Reference-style links ([text][label], [text][], [label]) and definitions
- Autolinks (<https://...>) and bare URLs
- Raw HTML <a href> and <img src>
- Fenced code blocks, inline code and HTML comments are ignored

Links are assumed not to wrap across lines.
"""
import re
from pathlib import Path
from typing import List, Dict, Set, Tuple, Iterator, Optional

from .models import Reference


FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
ATX_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
SETEXT_UNDERLINE_RE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
NOT_PARAGRAPH_RE = re.compile(r"^ {0,3}(?:[-*+][ \t]|\d+[.)][ \t]|>|<|#|\||$)")
DEFINITION_RE = re.compile(
    r"""^ {0,3}\[([^\]]+)\]:[ \t]*(<[^>]*>|\S+)(?:[ \t]+(?:"[^"]*"|'[^']*'|\([^)]*\)))?[ \t]*$"""
)

CODE_SPAN_RE = re.compile(r"(`+)(.+?)(?<!`)\1(?!`)")
ESCAPE_RE = re.compile(r"\\[\\`*_{}\[\]()#+\-.!<>|]")

# Link text may hold one level of nested brackets (badge images)
_TEXT = r"((?:[^\[\]]|\[[^\[\]]*\])*)"
_DEST = r"(<[^<>]*>|(?:[^\s()]|\([^\s()]*\))*)"
_TITLE = r"""(?:\s+(?:"[^"]*"|'[^']*'|\([^)]*\)))?"""

INLINE_RE = re.compile(r"(!?)\[" + _TEXT + r"\]\(\s*" + _DEST + _TITLE + r"\s*\)")
FULL_REFERENCE_RE = re.compile(r"(!?)\[" + _TEXT + r"\]\[([^\[\]]*)\]")
SHORTCUT_REFERENCE_RE = re.compile(r"(!?)\[([^\[\]]+)\](?![\[(:])")
AUTOLINK_RE = re.compile(r"<((?:https?|mailto|ftp):[^\s<>]+)>", re.IGNORECASE)
HTML_TAG_RE = re.compile(r"<(img|a)\b([^>]*)>", re.IGNORECASE)
HTML_ATTR_RE = re.compile(r"""\b(src|href)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""", re.IGNORECASE)
HTML_ANCHOR_RE = re.compile(r"""<[a-z][^>]*?\b(?:id|name)\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
BARE_URL_RE = re.compile(r"(?<![\w/\"'=])(https?://[^\s<>\[\]]+)")
TRAILING_PUNCTUATION = ".,;:!?*_~'\""


def normalize_label(label: str) -> str:
    """Reference labels match case-insensitively with collapsed whitespace"""
    return " ".join(label.split()).lower()


def github_slug(heading: str) -> str:
    """
    Convert heading text to the anchor GitHub generates for it.

    Lowercase, drop everything except letters, digits, spaces, hyphens and
    underscores, then turn each space into a hyphen.
    """
    slug = heading.strip().lower()
    slug = re.sub(r"[^\w\- ]", "", slug)
    return slug.replace(" ", "-")


def heading_anchors(headings: List[str]) -> Set[str]:
    """
    Build the set of anchors for a document's headings.

    Repeated headings get -1, -2, ... suffixes in document order.
    """
    seen: Dict[str, int] = {}
    anchors = set()
    for heading in headings:
        base = github_slug(heading)
        if base in seen:
            seen[base] += 1
            anchors.add(f"{base}-{seen[base]}")
        else:
            seen[base] = 0
            anchors.add(base)
    return anchors


def _mask(line: str, start: int, end: int) -> str:
    """Blank out a span while keeping column positions stable"""
    return line[:start] + " " * (end - start) + line[end:]


def _mask_pattern(line: str, pattern: re.Pattern) -> str:
    for match in list(pattern.finditer(line)):
        line = _mask(line, match.start(), match.end())
    return line


def _strip_comments(line: str, in_comment: bool) -> Tuple[str, bool]:
    """Blank out HTML comments, which may span several lines"""
    out = []
    pos = 0
    while pos < len(line):
        if in_comment:
            end = line.find("-->", pos)
            if end == -1:
                out.append(" " * (len(line) - pos))
                pos = len(line)
            else:
                out.append(" " * (end + 3 - pos))
                pos = end + 3
                in_comment = False
        else:
            start = line.find("<!--", pos)
            if start == -1:
                out.append(line[pos:])
                break
            out.append(line[pos:start])
            pos = start
            in_comment = True
    return "".join(out), in_comment


def _content_lines(lines: List[str]) -> Iterator[Tuple[int, str, bool]]:
    """
    Walk the document, flagging lines that belong to fenced code.

    Yields:
        (1-based line number, line with comments blanked, is_code)
    """
    fence: Optional[str] = None
    in_comment = False

    for number, line in enumerate(lines, start=1):
        if fence:
            closing = r"^ {0,3}" + re.escape(fence[0]) + "{%d,}" % len(fence) + r"[ \t]*$"
            if re.match(closing, line):
                fence = None
            yield number, "", True
            continue

        match = FENCE_RE.match(line)
        if match and not in_comment:
            fence = match.group(1)
            yield number, "", True
            continue

        line, in_comment = _strip_comments(line, in_comment)
        yield number, line, False


def _strip_emphasis(text: str) -> str:
    # Intraword underscores (snake_case) are literal, asterisks never are
    text = re.sub(r"\*+|~~", "", text)
    return re.sub(r"(?<![^\W_])_+|_+(?![^\W_])", "", text)


def _heading_text(raw: str) -> str:
    """
    Rendered text of a heading.

    Link text is kept, images and tags are dropped, emphasis markers are
    removed and code spans keep their content verbatim.
    """
    text = INLINE_RE.sub(lambda m: "" if m.group(1) else m.group(2), raw)
    text = re.sub(r"<[^>]+>", "", text)

    parts = []
    position = 0
    for match in CODE_SPAN_RE.finditer(text):
        parts.append(_strip_emphasis(text[position:match.start()]))
        parts.append(match.group(2).strip())
        position = match.end()
    parts.append(_strip_emphasis(text[position:]))
    return "".join(parts).strip()


def _unwrap(destination: str) -> str:
    if destination.startswith("<") and destination.endswith(">"):
        return destination[1:-1]
    return destination


class MarkdownDocument:
    """
    Parsed view of one Markdown document.

    Attributes:
        source: Document path as reported in findings
        references: Link and image references in document order
        headings: Heading texts in document order
        definitions: Reference definitions (normalized label -> target)
        undefined_labels: (line, label) for [text][label] uses with no definition
    """

    def __init__(self, text: str, source: str):
        self.source = source
        self.lines = text.splitlines()
        self.definitions: Dict[str, str] = {}
        self.references: List[Reference] = []
        self.headings: List[str] = []
        self.html_anchors: Set[str] = set()
        self.undefined_labels: List[Tuple[int, str]] = []
        self._parse()

    @classmethod
    def from_file(cls, path: Path, source: Optional[str] = None) -> "MarkdownDocument":
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            return cls(f.read(), source or str(path))

    @property
    def anchors(self) -> Set[str]:
        return heading_anchors(self.headings) | self.html_anchors

    def _parse(self) -> None:
        content = list(_content_lines(self.lines))

        # Definitions can appear after their uses, so collect them first
        for _, line, is_code in content:
            if is_code:
                continue
            match = DEFINITION_RE.match(line)
            if match:
                label = normalize_label(match.group(1))
                # First definition wins
                self.definitions.setdefault(label, _unwrap(match.group(2)))

        previous = ""
        for number, line, is_code in content:
            if is_code:
                previous = ""
                continue

            if DEFINITION_RE.match(line):
                previous = ""
                continue

            heading = ATX_HEADING_RE.match(line)
            if heading:
                self.headings.append(_heading_text(heading.group(2) or ""))
            elif SETEXT_UNDERLINE_RE.match(line) and previous.strip() and not NOT_PARAGRAPH_RE.match(previous):
                self.headings.append(_heading_text(previous))
                previous = ""
                continue

            self.html_anchors.update(m.group(1) for m in HTML_ANCHOR_RE.finditer(line))

            for _, reference in self._scan(line, number):
                self.references.append(reference)

            previous = "" if heading else line

    def _scan(self, line: str, number: int) -> List[Tuple[int, Reference]]:
        """Find references on one line, returned as (column, reference) pairs"""
        line = _mask_pattern(line, CODE_SPAN_RE)
        line = _mask_pattern(line, ESCAPE_RE)
        found: List[Tuple[int, Reference]] = []

        def reference(target: str, text: str, is_image: bool, syntax: str) -> Reference:
            return Reference(
                source=self.source,
                line=number,
                target=target.strip(),
                text=text.strip(),
                is_image=is_image,
                syntax=syntax,
            )

        # Inline links and images; link text is scanned again for badges
        for match in list(INLINE_RE.finditer(line)):
            bang, text, destination = match.group(1), match.group(2), match.group(3)
            found.append((match.start(), reference(_unwrap(destination), text, bool(bang), "inline")))
            if not bang and "[" in text:
                for column, nested in self._scan(text, number):
                    found.append((match.start(2) + column, nested))
            line = _mask(line, match.start(), match.end())

        # [text][label] and [text][]
        for match in list(FULL_REFERENCE_RE.finditer(line)):
            bang, text, label = match.group(1), match.group(2), match.group(3)
            key = normalize_label(label or text)
            if key in self.definitions:
                found.append((match.start(), reference(self.definitions[key], text, bool(bang), "reference")))
            else:
                self.undefined_labels.append((number, label or text))
            if not bang and "[" in text:
                for column, nested in self._scan(text, number):
                    found.append((match.start(2) + column, nested))
            line = _mask(line, match.start(), match.end())

        # [label] only counts when the label is defined
        for match in list(SHORTCUT_REFERENCE_RE.finditer(line)):
            key = normalize_label(match.group(2))
            if key in self.definitions:
                found.append((match.start(), reference(self.definitions[key], match.group(2), bool(match.group(1)), "reference")))
                line = _mask(line, match.start(), match.end())

        for match in list(AUTOLINK_RE.finditer(line)):
            found.append((match.start(), reference(match.group(1), "", False, "autolink")))
            line = _mask(line, match.start(), match.end())

        for match in list(HTML_TAG_RE.finditer(line)):
            tag = match.group(1).lower()
            wanted = "src" if tag == "img" else "href"
            for attr in HTML_ATTR_RE.finditer(match.group(2)):
                if attr.group(1).lower() == wanted:
                    target = next(g for g in attr.groups()[1:] if g is not None)
                    found.append((match.start(), reference(target, "", tag == "img", "html")))
            line = _mask(line, match.start(), match.end())

        for match in list(BARE_URL_RE.finditer(line)):
            url = match.group(1).rstrip(TRAILING_PUNCTUATION)
            # Keep a closing paren only when the URL opened one
            while url.endswith(")") and url.count(")") > url.count("("):
                url = url[:-1].rstrip(TRAILING_PUNCTUATION)
            found.append((match.start(), reference(url, "", False, "autolink")))

        found.sort(key=lambda item: item[0])
        return found


def extract_references(text: str, source: str) -> List[Reference]:
    """Extract link and image references from Markdown text in document order"""
    return MarkdownDocument(text, source).references


def extract_headings(text: str) -> List[str]:
    """Extract heading texts (ATX and setext), skipping code blocks"""
    return MarkdownDocument(text, "<text>").headings
