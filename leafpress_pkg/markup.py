"""
Lightweight markup to HTML conversion.

The converter is a fixed sequence of passes over the text. Code fences are
pulled out first and parked behind placeholder tokens, so heading-like or
list-like lines inside them are never reinterpreted; the tokens are put
back verbatim at the very end.
"""

import html
import re

FENCE_OPEN = re.compile(r'^```\s*([A-Za-z0-9_+\-]*)[ \t]*$')
FENCE_CLOSE = re.compile(r'^```\s*$')
HEADING = re.compile(r'^(#{1,6})\s+(.+?)\s*$')
HEADING_ANCHOR = re.compile(r'\s*\{#([^}]+)\}\s*$')
BULLET_ITEM = re.compile(r'^[-*]\s+(.+)$')
ORDERED_ITEM = re.compile(r'^\d+\.\s+(.+)$')
PROTECTED_BLOCK = re.compile(r'<(pre|script)\b[^>]*>.*?</\1>', re.DOTALL | re.IGNORECASE)
BLOCK_LINE = re.compile(
    r'^\s*</?(?:h[1-6]|ul|ol|li|div|p|pre|table|thead|tbody|tr|td|th|blockquote|hr|section|'
    r'article|aside|header|footer|nav|figure|figcaption|details|summary|span|script|style)\b',
    re.IGNORECASE,
)

TOKEN = re.compile(r'\x00(?:BLOCK|INLINE)(\d+)\x00')
BLOCK_TOKEN = re.compile(r'\x00BLOCK\d+\x00')

WINDOW_EXTENSIONS = {
    'ruby': 'rb',
    'python': 'py',
    'javascript': 'js',
    'typescript': 'ts',
    'shell': 'sh',
    'bash': 'sh',
}


def build_code_window(language, code, executable=False):
    """Render a code sample as a window-style HTML fragment."""
    lang = language or None
    if lang:
        window_title = f"{lang}.{WINDOW_EXTENSIONS.get(lang, lang)}"
    else:
        window_title = 'code'

    code_classes = [f"language-{lang or 'code'}"]
    if executable:
        code_classes.append(f"{lang or 'code'}-exec")

    pre_attributes = [f'class="language-{lang}"'] if lang else []
    if executable:
        pre_attributes.append('data-executable="true"')
        pre_attributes.append('contenteditable="true"')
    pre_attributes.append('style="white-space: pre-wrap; outline: none;"')
    pre_attr = ' ' + ' '.join(pre_attributes)

    escaped_code = html.escape(code)
    return (
        '<div class="code-window">\n'
        '  <div class="code-header">\n'
        '    <span class="window-btn red"></span>\n'
        '    <span class="window-btn yellow"></span>\n'
        '    <span class="window-btn green"></span>\n'
        f'    <span class="window-title">{window_title}</span>\n'
        '  </div>\n'
        '  <div class="code-content">\n'
        f'    <pre{pre_attr}><code class="{" ".join(code_classes)}">{escaped_code}\n'
        '    </code></pre>\n'
        '  </div>\n'
        '</div>'
    )


def trim_code(code):
    """Drop blank lines around a code sample and trailing whitespace."""
    return code.strip('\r\n').rstrip()


class BlockStore:
    """Placeholder tokens for text that later passes must not touch."""

    def __init__(self):
        self.blocks = []

    def protect(self, block, inline=False):
        kind = 'INLINE' if inline else 'BLOCK'
        token = f"\x00{kind}{len(self.blocks)}\x00"
        self.blocks.append(block)
        return token

    def restore(self, text):
        # Restored blocks may themselves contain tokens (inline code in a
        # protected list item), so repeat until none are left.
        previous = None
        while previous != text:
            previous = text
            text = TOKEN.sub(lambda m: self.blocks[int(m.group(1))], text)
        return text


class MarkupConverter:
    """Converts the simplified markup dialect into HTML."""

    def __init__(self, exec_language='ruby'):
        self.exec_language = exec_language

    def convert(self, text):
        store = BlockStore()
        text = text.replace('\r\n', '\n')
        text = self.extract_fences(text, store)
        text = self.protect_blocks(text, store)
        text = self.convert_headings(text)
        text = self.convert_lists(text)
        text = self.convert_inline(text, store)
        text = self.wrap_paragraphs(text)
        text = store.restore(text)
        return f'<div class="markdown">{text}</div>'

    def extract_fences(self, text, store):
        """Replace fenced code blocks with tokens. An unclosed fence runs to the end."""
        output = []
        fence_lang = None
        fence_lines = []
        in_fence = False

        for line in text.split('\n'):
            if not in_fence:
                match = FENCE_OPEN.match(line)
                if match:
                    in_fence = True
                    fence_lang = match.group(1)
                    fence_lines = []
                else:
                    output.append(line)
                continue

            if FENCE_CLOSE.match(line):
                output.append(store.protect(self._fence_window(fence_lang, fence_lines)))
                in_fence = False
            else:
                fence_lines.append(line)

        if in_fence:
            output.append(store.protect(self._fence_window(fence_lang, fence_lines)))

        return '\n'.join(output)

    def _fence_window(self, language, lines):
        code = trim_code('\n'.join(lines))
        if language and language.endswith('-exec'):
            return build_code_window(language[:-len('-exec')], code, executable=True)
        language = language or None
        return build_code_window(language, code, executable=bool(language) and language == self.exec_language)

    def protect_blocks(self, text, store):
        """Park pre-rendered ``<pre>`` and ``<script>`` blocks behind tokens."""
        return PROTECTED_BLOCK.sub(lambda m: store.protect(m.group(0)), text)

    def convert_headings(self, text):
        lines = []
        for line in text.split('\n'):
            match = HEADING.match(line)
            if not match:
                lines.append(line)
                continue
            level = len(match.group(1))
            heading_text = match.group(2)
            anchor = HEADING_ANCHOR.search(heading_text)
            if anchor:
                heading_text = heading_text[:anchor.start()].strip()
                lines.append(f'<h{level} id="{anchor.group(1)}">{heading_text}</h{level}>')
            else:
                lines.append(f'<h{level}>{heading_text}</h{level}>')
        return '\n'.join(lines)

    def convert_lists(self, text):
        """Consecutive bullet (or numbered) lines collapse into one list element."""
        lines = []
        current_tag = None

        for line in text.split('\n'):
            bullet = BULLET_ITEM.match(line)
            ordered = None if bullet else ORDERED_ITEM.match(line)
            tag = 'ul' if bullet else ('ol' if ordered else None)

            if tag != current_tag and current_tag is not None:
                lines[-1] += f'</{current_tag}>'
            if tag is None:
                current_tag = None
                lines.append(line)
                continue

            item = f'<li>{(bullet or ordered).group(1)}</li>'
            if tag != current_tag:
                lines.append(f'<{tag}>{item}')
            else:
                lines.append(item)
            current_tag = tag

        if current_tag is not None:
            lines[-1] += f'</{current_tag}>'
        return '\n'.join(lines)

    def convert_inline(self, text, store):
        def code_span(match):
            return store.protect(f'<code>{html.escape(match.group(1), quote=False)}</code>', inline=True)

        text = re.sub(r'`([^`\n]+)`', code_span, text)
        text = re.sub(r'!\[([^\]]*)\]\(([^)\s]+)\)', r'<img src="\2" alt="\1">', text)
        text = re.sub(r'\[([^\]]+)\]\(([^)\s]+)\)', r'<a href="\2">\1</a>', text)
        text = re.sub(r'\*\*([^*\n]+)\*\*', r'<strong>\1</strong>', text)
        text = re.sub(r'(?<![*\w])\*([^*\s][^*\n]*?)\*(?![*\w])', r'<em>\1</em>', text)
        text = re.sub(r'(?<![_\w])_([^_\s][^_\n]*?)_(?![_\w])', r'<em>\1</em>', text)
        return text

    def wrap_paragraphs(self, text):
        """Wrap runs of plain text lines in ``<p>``; block lines stay as they are."""
        output = []
        paragraph = []

        def flush():
            if paragraph:
                output.append('<p>' + '\n'.join(paragraph) + '</p>')
                paragraph.clear()

        for line in text.split('\n'):
            stripped = line.strip()
            if not stripped:
                flush()
                continue
            if BLOCK_LINE.match(stripped) or BLOCK_TOKEN.fullmatch(stripped):
                flush()
                output.append(line)
            else:
                paragraph.append(line)
        flush()
        return '\n'.join(output)


def render_markup(text, exec_language='ruby'):
    return MarkupConverter(exec_language=exec_language).convert(text)
