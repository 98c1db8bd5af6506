"""
Page model and page context construction.

A page's slug, date, section, permalink, output path and URL all derive
from its path under the content root plus its front matter. All of that
happens here, once, before any indexing or rendering.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Any, Dict, List, Optional

logger = logging.getLogger('Leafpress.page')

POSTS_SECTION = 'posts'
PAGES_SECTION = 'pages'

CONTENT_EXTENSIONS = ('.md', '.markdown', '.html', '.htm', '.j2', '.jinja')
TEMPLATE_COMPOUND_EXTENSIONS = ('.html.j2', '.html.jinja')

DATED_STEM = re.compile(r'^(\d{4}-\d{2}-\d{2})-(.+)$')

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d', '%b %d, %Y', '%B %d, %Y']


def is_content_file(filename):
    """Whether the builder should treat this file as a content document."""
    lower = filename.lower()
    if lower.endswith(TEMPLATE_COMPOUND_EXTENSIONS):
        return True
    return os.path.splitext(lower)[1] in CONTENT_EXTENSIONS


def renderer_for(filename):
    """Pick how a content file's body is turned into HTML."""
    lower = filename.lower()
    if lower.endswith(TEMPLATE_COMPOUND_EXTENSIONS):
        return 'template'
    ext = os.path.splitext(lower)[1]
    if ext in ('.md', '.markdown'):
        return 'markdown'
    if ext in ('.html', '.htm'):
        return 'html'
    if ext in ('.j2', '.jinja'):
        return 'template'
    return 'markdown'


def strip_content_extension(filename):
    lower = filename.lower()
    for ext in TEMPLATE_COMPOUND_EXTENSIONS:
        if lower.endswith(ext):
            return filename[:-len(ext)]
    stem, ext = os.path.splitext(filename)
    if ext.lower() in CONTENT_EXTENSIONS:
        return stem
    return filename


def parse_date(value):
    """Parse a date value into a calendar date, or None."""
    if isinstance(value, datetime):
        return value.date()
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        text = value.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            logger.debug(f"Could not parse date: {value!r}")
    return None


def normalize_permalink(permalink):
    """One leading slash, one trailing slash, no doubled slashes."""
    normalized = str(permalink or '').strip()
    normalized = re.sub(r'/{2,}', '/', '/' + normalized + '/')
    return normalized


def output_path_for(permalink):
    return permalink.lstrip('/') + 'index.html'


def prettify_slug(slug):
    words = re.split(r'[-_\s]+', str(slug))
    return ' '.join(word.capitalize() for word in words if word)


def coerce_tags(value):
    """Tags are always an order-preserving list of unique strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    tags = []
    for item in items:
        if item is None:
            continue
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class FrontMatter:
    """Read-only, string-keyed view of a front matter block with coalescing accessors."""

    def __init__(self, data=None):
        self._data = dict(data) if isinstance(data, dict) else {}

    def get(self, key, default=None):
        value = self._data.get(key)
        return default if value is None else value

    def text(self, key, default=''):
        value = self._data.get(key)
        if value is None:
            return default
        text = str(value).strip()
        return text if text else default

    def strings(self, key):
        return coerce_tags(self._data.get(key))

    def date(self, key):
        return parse_date(self._data.get(key))

    def __contains__(self, key):
        return key in self._data

    def as_dict(self):
        return dict(self._data)


@dataclass
class Page:
    """One content document, fully derived before indexing."""
    source_path: str
    source: str
    section: str
    slug: str
    layout: str
    permalink: str
    output_path: str
    url: str
    title: str
    renderer: str = 'markdown'
    date: Optional[date] = None
    theme: Optional[str] = None
    type: str = ''
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    body: str = ''

    @property
    def date_iso(self):
        return self.date.strftime('%Y-%m-%d') if self.date else None

    def to_context(self):
        """The mapping templates see as ``page``."""
        context = dict(self.metadata)
        context.update({
            'source': self.source,
            'section': self.section,
            'slug': self.slug,
            'layout': self.layout,
            'theme': self.theme,
            'type': self.type,
            'date': self.date,
            'date_iso': self.date_iso,
            'permalink': self.permalink,
            'output_path': self.output_path,
            'url': self.url,
            'title': self.title,
            'tags': list(self.tags),
        })
        return context


class PageContextBuilder:
    """Derive a Page from a content file path and its front matter."""

    def __init__(self, content_dir, base_url=''):
        self.content_dir = content_dir
        self.base_url = base_url or ''

    def build(self, file_path, front_matter, body='', renderer=None):
        meta = FrontMatter(front_matter)
        relative = os.path.relpath(file_path, self.content_dir).replace(os.sep, '/')
        segments = relative.split('/')
        filename = segments[-1]
        directories = segments[:-1]
        section = directories[0] if directories else ''
        intermediate = directories[1:]
        stem = strip_content_extension(filename)

        slug, page_date = self.derive_slug_and_date(stem, meta)
        layout = meta.text('layout') or self.default_layout_for(section)

        permalink = meta.text('permalink')
        if not permalink:
            permalink = self.default_permalink(section, intermediate, slug, stem)
        permalink = normalize_permalink(permalink)

        title = meta.text('title') or prettify_slug(slug)

        return Page(
            source_path=file_path,
            source=relative,
            section=section,
            slug=slug,
            layout=layout,
            permalink=permalink,
            output_path=output_path_for(permalink),
            url=self.build_url(permalink),
            title=title,
            renderer=renderer or renderer_for(filename),
            date=page_date,
            theme=meta.text('theme') or None,
            type=meta.text('type') or section,
            tags=meta.strings('tags'),
            metadata=meta.as_dict(),
            body=body,
        )

    def derive_slug_and_date(self, stem, meta):
        match = DATED_STEM.match(stem)
        if match:
            slug = match.group(2)
            raw_date = meta.get('date', match.group(1))
        else:
            slug = stem
            raw_date = meta.get('date')
        slug = meta.text('slug') or slug
        return slug, parse_date(raw_date)

    def default_layout_for(self, section):
        return 'post' if section == POSTS_SECTION else 'page'

    def default_permalink(self, section, intermediate, slug, stem):
        is_index = stem == 'index'
        if not section:
            return '/' if is_index else f"/{slug}/"
        if section == POSTS_SECTION:
            return f"/{POSTS_SECTION}/" if is_index else f"/{POSTS_SECTION}/{slug}/"
        if section == PAGES_SECTION:
            if is_index and not intermediate:
                return '/'
            parts = [PAGES_SECTION] + list(intermediate)
            if not is_index:
                parts.append(slug)
            return '/' + '/'.join(parts) + '/'
        return f"/{section}/" if is_index else f"/{slug}/"

    def build_url(self, permalink):
        if not self.base_url:
            return permalink
        return f"{self.base_url}{permalink}"
