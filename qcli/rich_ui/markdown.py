"""
Markdown to ANSI terminal text.

``render_sync`` renders code fences as plain blocks; ``render`` awaits a
lazily created pygments highlighter for fences in a known language. Both
share one tree walker, so everything except code blocks renders the same.
"""
import asyncio
import logging
import re
from typing import Callable, Optional

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from pygments import highlight
from pygments.formatters import TerminalTrueColorFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .theme import Palette, RenderConfig


logger = logging.getLogger(__name__)

SUPPORTED_LANGS = frozenset({
    "javascript", "typescript", "python", "rust", "go", "bash", "shell",
    "json", "yaml", "toml", "markdown", "html", "css", "sql", "diff",
})

LANG_ALIASES = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "sh": "bash",
    "zsh": "bash",
    "yml": "yaml",
    "md": "markdown",
}

HIGHLIGHT_STYLE = "github-dark"

# Underscore between two letters/digits, e.g. UX_AUDIT_REPORT.md
_INNER_UNDERSCORE = re.compile(r"(?<=[^\W_])_(?=[^\W_])")
# Private-use stand-in for an inner underscore while markdown-it parses
UNDERSCORE_MARK = "\ue000"
# The mark as it appears in a percent-encoded link target
_URL_MARK = re.compile("%EE%80%80", re.IGNORECASE)
_CODE_SPAN = re.compile(r"(`+[^`]*`+|<[^<>\s]+>)")
_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_BLANK_RUN = re.compile(r"\n{3,}")


def escape_underscores(markdown: str) -> str:
    """
    Mark underscores inside words so they are never read as emphasis.

    Each one becomes ``UNDERSCORE_MARK``; ``unescape_underscores`` restores
    them in the rendered text. Fenced code, inline code spans and autolinks
    are left untouched.
    """
    out = []
    fence: Optional[str] = None
    for line in markdown.split("\n"):
        match = _FENCE_OPEN.match(line)
        if fence is not None:
            if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
                fence = None
            out.append(line)
            continue
        if match:
            fence = match.group(1)
            out.append(line)
            continue
        parts = _CODE_SPAN.split(line)
        for i in range(0, len(parts), 2):
            parts[i] = _INNER_UNDERSCORE.sub(UNDERSCORE_MARK, parts[i])
        out.append("".join(parts))
    return "\n".join(out)


def unescape_underscores(text: str) -> str:
    """Turn the marks left by ``escape_underscores`` back into underscores."""
    return text.replace(UNDERSCORE_MARK, "_")


def normalize_lang(lang: str) -> str:
    """Lowercased fence language with common aliases resolved."""
    lang = lang.strip().split(" ")[0].lower() if lang else ""
    return LANG_ALIASES.get(lang, lang)


def is_supported(lang: str) -> bool:
    return normalize_lang(lang) in SUPPORTED_LANGS


class Highlighter:
    """Pygments lexers and a true-color terminal formatter."""

    def __init__(self) -> None:
        self._formatter = TerminalTrueColorFormatter(style=HIGHLIGHT_STYLE)
        self._lexers: dict = {}
        for lang in SUPPORTED_LANGS:
            try:
                self._lexers[lang] = get_lexer_by_name(lang, stripnl=False)
            except ClassNotFound:
                logger.debug("No pygments lexer for %s", lang)

    @classmethod
    def create(cls) -> "Highlighter":
        global _init_count
        _init_count += 1
        logger.debug("Initializing syntax highlighter")
        return cls()

    def highlight(self, code: str, lang: str) -> Optional[str]:
        """
        Highlight code as ANSI text.

        Returns:
            Highlighted text, or None when the language has no lexer
        """
        lexer = self._lexers.get(normalize_lang(lang))
        if lexer is None:
            return None
        return highlight(code, lexer, self._formatter).rstrip("\n")


_highlighter: Optional[Highlighter] = None
_loading: Optional[asyncio.Future] = None
_init_count = 0


async def get_highlighter() -> Highlighter:
    """
    Get the process-wide highlighter, creating it on first use.

    Concurrent first calls share a single in-flight initialization.
    """
    global _highlighter, _loading
    if _highlighter is not None:
        return _highlighter

    loop = asyncio.get_running_loop()
    if _loading is None or _loading.get_loop() is not loop:
        _loading = asyncio.ensure_future(asyncio.to_thread(Highlighter.create))

    try:
        _highlighter = await asyncio.shield(_loading)
    except Exception:
        _loading = None
        raise
    return _highlighter


def reset_highlighter() -> None:
    """Forget the shared highlighter (tests only)."""
    global _highlighter, _loading, _init_count
    _highlighter = None
    _loading = None
    _init_count = 0


def highlighter_init_count() -> int:
    return _init_count


def _parser() -> MarkdownIt:
    return MarkdownIt("commonmark").enable("table")


class _TerminalRenderer:
    """Walks a markdown-it syntax tree and emits ANSI text."""

    def __init__(
        self,
        palette: Palette,
        code_block: Callable[[SyntaxTreeNode], str],
    ) -> None:
        self.p = palette
        self._code_block = code_block

    def render(self, root: SyntaxTreeNode) -> str:
        text = self._blocks(root.children)
        return unescape_underscores(_BLANK_RUN.sub("\n\n", text).strip())

    def _blocks(self, nodes, sep: str = "\n\n") -> str:
        parts = [self._block(node) for node in nodes]
        return sep.join(part for part in parts if part)

    def _block(self, node: SyntaxTreeNode) -> str:
        p = self.p
        kind = node.type

        if kind == "heading":
            level = int(node.tag[1])
            text = f"{'#' * level} {self._inline_children(node)}"
            if level == 1:
                return p.paint(text, "purple", "bold")
            if level == 2:
                return p.paint(text, "cyan", "bold")
            return p.paint(text, "yellow")

        if kind == "paragraph":
            return self._inline_children(node)

        if kind in ("bullet_list", "ordered_list"):
            return self._list(node)

        if kind == "blockquote":
            content = self._blocks(node.children)
            lines = [line for line in content.split("\n") if line.strip()]
            bar = p.muted("│")
            return "\n".join(f"{bar} {line}" for line in lines)

        if kind == "hr":
            return p.muted("─" * self.p.config.width)

        if kind in ("fence", "code_block"):
            return self._code_block(node)

        if kind == "table":
            return self._table(node)

        if kind == "html_block":
            return node.content.strip()

        if kind == "inline":
            return self._inline(node.children)

        logger.debug("Unhandled markdown block: %s", kind)
        return self._blocks(node.children) if node.children else ""

    def _list(self, node: SyntaxTreeNode) -> str:
        ordered = node.type == "ordered_list"
        start = int(node.attrs.get("start", 1)) if ordered else 1
        items = []
        for i, item in enumerate(node.children):
            if ordered:
                bullet = self.p.paint(f"{start + i}.", "coral")
            else:
                bullet = self.p.paint("•", "purple")
            content = self._blocks(item.children, sep="\n").strip()
            first, *rest = content.split("\n") if content else [""]
            lines = [f"  {bullet} {first}"]
            lines.extend(f"  {line}" for line in rest)
            items.append("\n".join(lines))
        return "\n".join(items)

    def _table(self, node: SyntaxTreeNode) -> str:
        sep = self.p.muted(" │ ")
        rows = []
        for section in node.children:
            for row in section.children:
                cells = [self._inline_children(cell) for cell in row.children]
                line = sep.join(cells)
                if section.type == "thead":
                    line = self.p.paint(line, "bold")
                rows.append(line)
        return "\n".join(rows)

    def _inline_children(self, node: SyntaxTreeNode) -> str:
        parts = []
        for child in node.children:
            if child.type == "inline":
                parts.append(self._inline(child.children))
        return "".join(parts)

    def _inline(self, nodes) -> str:
        p = self.p
        out = []
        for node in nodes:
            kind = node.type
            if kind == "text":
                out.append(node.content)
            elif kind in ("softbreak", "hardbreak"):
                out.append("\n")
            elif kind == "strong":
                out.append(p.paint(self._inline(node.children), "bold"))
            elif kind == "em":
                out.append(p.paint(self._inline(node.children), "italic"))
            elif kind == "code_inline":
                out.append(p.paint(node.content, "coral"))
            elif kind == "link":
                label = self._inline(node.children)
                href = _URL_MARK.sub(UNDERSCORE_MARK, node.attrs.get("href", ""))
                if label == href:
                    out.append(p.paint(label, "cyan"))
                else:
                    out.append(f"{p.paint(label, 'cyan')} {p.muted(f'({href})')}")
            elif kind == "image":
                alt = self._inline(node.children)
                out.append(p.muted(f"[image: {alt}] ({node.attrs.get('src', '')})"))
            elif kind == "html_inline":
                out.append(node.content)
            else:
                out.append(self._inline(node.children) if node.children else node.content)
        return "".join(out)


def _fence_parts(node: SyntaxTreeNode) -> tuple[str, str]:
    if node.type == "fence":
        return node.content.rstrip("\n"), node.info.strip().split(" ")[0]
    return node.content.rstrip("\n"), ""


def _label(lang: str, palette: Palette) -> str:
    return f"{palette.muted('───')} {palette.info(lang)}"


def render_code_block_plain(code: str, lang: str, palette: Palette) -> str:
    """Plain code block: optional language label, indented coral lines."""
    body = "\n".join(f"  {palette.paint(line, 'coral')}" for line in code.split("\n"))
    if not lang:
        return body
    return f"{_label(lang, palette)}\n{body}"


def render_code_block_highlighted(code: str, lang: str, palette: Palette, hl: Highlighter) -> str:
    """Highlighted code block, or the plain block when there is no lexer."""
    ansi = hl.highlight(code, lang)
    if ansi is None:
        return render_code_block_plain(code, lang, palette)
    body = "\n".join(f"  {line}" for line in ansi.split("\n"))
    return f"{_label(lang, palette)}\n{body}"


def _parse(markdown: str) -> SyntaxTreeNode:
    return SyntaxTreeNode(_parser().parse(escape_underscores(markdown)))


def render_sync(markdown: str, config: Optional[RenderConfig] = None) -> str:
    """
    Render markdown without syntax highlighting.

    Args:
        markdown: Markdown source
        config: Rendering configuration (no color by default)

    Returns:
        ANSI text, blank-line runs collapsed and trimmed
    """
    palette = Palette(config)
    root = _parse(markdown)

    def code_block(node: SyntaxTreeNode) -> str:
        code, lang = _fence_parts(node)
        return render_code_block_plain(code, lang, palette)

    return _TerminalRenderer(palette, code_block).render(root)


async def render(markdown: str, config: Optional[RenderConfig] = None) -> str:
    """
    Render markdown, highlighting code fences in supported languages.

    The highlighter is only loaded when color is enabled and a fence
    needs it.

    Args:
        markdown: Markdown source
        config: Rendering configuration (no color by default)

    Returns:
        ANSI text, blank-line runs collapsed and trimmed
    """
    palette = Palette(config)
    root = _parse(markdown)

    highlighted: dict[int, str] = {}
    if palette.enabled:
        fences = [
            node for node in root.walk()
            if node.type == "fence" and is_supported(_fence_parts(node)[1])
        ]
        if fences:
            hl = await get_highlighter()
            for node in fences:
                code, lang = _fence_parts(node)
                highlighted[id(node)] = render_code_block_highlighted(code, lang, palette, hl)

    def code_block(node: SyntaxTreeNode) -> str:
        if id(node) in highlighted:
            return highlighted[id(node)]
        code, lang = _fence_parts(node)
        return render_code_block_plain(code, lang, palette)

    return _TerminalRenderer(palette, code_block).render(root)
