"""
Content pipeline: an ordered list of named body transforms.

The step order comes from configuration. Steps are looked up by name in a
per-pipeline table; a name nobody registered is passed over, so configs
written for newer or older versions still build.
"""

import logging
import re

import mistune

from .formatter import identity_formatter
from .markup import MarkupConverter, build_code_window

DEFAULT_STEPS = ['format_blocks', 'hash_blocks', 'exec_blocks', 'markdown']

HASH_BLOCK = re.compile(r'^#>[ \t]*([A-Za-z0-9_+\-]+)(?::[ \t]*(.*?))?[ \t]*\r?\n(.*?)^#![ \t]*$', re.MULTILINE | re.DOTALL)
EXEC_FENCE = re.compile(r'^```([A-Za-z0-9_+]+)-exec[ \t]*\r?\n(.*?)^```[ \t]*$', re.MULTILINE | re.DOTALL)


def create_commonmark_parser():
    """Create a Mistune markdown parser with a custom renderer."""
    class CustomRenderer(mistune.HTMLRenderer):
        def __init__(self):
            super().__init__(escape=False)

        def block_code(self, code, info=None):
            language = info.split()[0] if info else None
            return build_code_window(language, code.rstrip()) + '\n'

    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'task_lists', 'strikethrough']
    )


class ContentPipeline:
    """Runs a page body through the configured steps, in order."""

    def __init__(self, steps=None, formatter=None, formatter_language='ruby', exec_language='ruby'):
        self.steps = [str(step) for step in steps] if steps else list(DEFAULT_STEPS)
        self.formatter = formatter or identity_formatter
        self.formatter_language = formatter_language
        self.exec_language = exec_language
        self.logger = logging.getLogger('Leafpress.pipeline')
        self.markup = MarkupConverter(exec_language=exec_language)
        self._commonmark = None
        self.registry = {
            'format_blocks': self.format_blocks,
            'hash_blocks': self.hash_blocks,
            'exec_blocks': self.exec_blocks,
            'markdown': self.markdown,
            'commonmark': self.commonmark,
        }

    @classmethod
    def from_settings(cls, pipeline_settings, formatter=None):
        pipeline_settings = pipeline_settings or {}
        formatter_settings = pipeline_settings.get('formatter') or {}
        return cls(
            steps=pipeline_settings.get('steps'),
            formatter=formatter,
            formatter_language=formatter_settings.get('language', 'ruby'),
            exec_language=pipeline_settings.get('exec_language', 'ruby'),
        )

    def register(self, name, step):
        """Add or replace a named step. ``step(body, page) -> body``."""
        self.registry[str(name)] = step

    def run(self, body, page=None):
        for name in self.steps:
            step = self.registry.get(name)
            if step is None:
                self.logger.debug(f"Skipping unknown pipeline step: {name}")
                continue
            body = step(body, page)
        return body

    def format_blocks(self, body, page):
        """Reformat ``#> <lang>: format`` blocks with the external formatter."""
        def replace(match):
            lang = match.group(1)
            tokens = (match.group(2) or '').split()
            code = match.group(3)
            if lang != self.formatter_language or 'format' not in tokens:
                return match.group(0)
            try:
                formatted = self.formatter(code)
            except Exception as e:
                source = page.source if page is not None else '(string)'
                self.logger.warning(f"Formatter failed for a {lang} block in {source}: {e}")
                return match.group(0)
            remaining = [token for token in tokens if token != 'format']
            suffix = f": {' '.join(remaining)}" if remaining else ''
            return f"#> {lang}{suffix}\n{formatted.rstrip()}\n#!"

        return HASH_BLOCK.sub(replace, body)

    def hash_blocks(self, body, page):
        """``#> <lang>[: options]`` ... ``#!`` blocks become code windows."""
        def replace(match):
            tokens = (match.group(2) or '').split()
            code = match.group(3).strip()
            return build_code_window(match.group(1), code, executable='run' in tokens)

        return HASH_BLOCK.sub(replace, body)

    def exec_blocks(self, body, page):
        """Fences tagged ``<lang>-exec`` become executable code windows."""
        def replace(match):
            return build_code_window(match.group(1), match.group(2).strip(), executable=True)

        return EXEC_FENCE.sub(replace, body)

    def markdown(self, body, page):
        return self.markup.convert(body)

    def commonmark(self, body, page):
        if self._commonmark is None:
            self._commonmark = create_commonmark_parser()
        return f'<div class="markdown">{self._commonmark(body)}</div>'
