"""
Template rendering for Leafpress.

Layouts, partials and template content pages are Jinja2 templates. They are
rendered in an immutable sandbox against read-only ``site`` and ``page``
views, with a fixed set of helper functions plus any project helpers
registered by name.
"""

import importlib.util
import logging
import os
import re
from collections.abc import Mapping
from datetime import date, datetime
from types import MappingProxyType

from jinja2.sandbox import ImmutableSandboxedEnvironment

from .errors import LayoutNotFoundError, PartialNotFoundError, TemplateRecursionError
from .frontmatter import parse_front_matter
from .page import parse_date
from .themes import ThemeResolver

MAX_INCLUDE_DEPTH = 25

logger = logging.getLogger('Leafpress.rendering')


def freeze(value):
    """Deep read-only copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value


class ReadOnlyEnvironment(ImmutableSandboxedEnvironment):
    """Sandboxed environment where ``mapping.key`` reads the key before any attribute."""

    def getattr(self, obj, attribute):
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                pass
        return super().getattr(obj, attribute)


class HelperRegistry:
    """Named table of project-supplied template helpers."""

    def __init__(self, helpers=None):
        self._helpers = {}
        for name, func in (helpers or {}).items():
            self.register(name, func)

    def register(self, name, func=None):
        """Register ``func`` under ``name``. Usable as a decorator."""
        if func is None:
            def decorator(f):
                self.register(name, f)
                return f
            return decorator
        if not callable(func):
            raise TypeError(f"Helper '{name}' is not callable")
        if name in self._helpers:
            logger.debug(f"Replacing template helper: {name}")
        self._helpers[str(name)] = func
        return func

    def get(self, name):
        return self._helpers.get(name)

    def items(self):
        return self._helpers.items()

    def __contains__(self, name):
        return name in self._helpers

    def __len__(self):
        return len(self._helpers)

    def load_file(self, path):
        """Load a helper module and register everything in its ``HELPERS`` mapping."""
        module_name = 'leafpress_helpers_' + re.sub(r'\W', '_', os.path.abspath(path))
        spec = importlib.util.spec_from_file_location(module_name, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        helpers = getattr(module, 'HELPERS', None) or {}
        for name, func in helpers.items():
            self.register(name, func)
        logger.debug(f"Loaded {len(helpers)} template helpers from {path}")
        return len(helpers)

    def load_directory(self, directory):
        if not directory or not os.path.isdir(directory):
            return 0
        loaded = 0
        for filename in sorted(os.listdir(directory)):
            if filename.endswith('.py') and not filename.startswith('_'):
                loaded += self.load_file(os.path.join(directory, filename))
        return loaded


class TemplateRenderer:
    """Build-scoped renderer: owns the Jinja environment and the template cache."""

    def __init__(self, site, themes, site_includes_dir=None, helpers=None):
        self.site = site
        self.themes = themes
        self.site_includes_dir = site_includes_dir
        self.helpers = helpers or HelperRegistry()
        self.env = ReadOnlyEnvironment(autoescape=False, keep_trailing_newline=True)
        self._site_view = None
        self._templates = {}

    @property
    def site_view(self):
        if self._site_view is None:
            self._site_view = freeze(self.site)
        return self._site_view

    def refresh_site_view(self):
        """Drop the frozen site view so the next render sees injected collections."""
        self._site_view = None

    def load_template(self, path, front_matter=True):
        """Compile a template file once per build. Returns (front_matter, template)."""
        key = (path, front_matter)
        if key not in self._templates:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
            if front_matter:
                metadata, body = parse_front_matter(raw, source=path)
            else:
                metadata, body = {}, raw
            self._templates[key] = (metadata, self.env.from_string(body))
        return self._templates[key]

    def render_layout(self, layout_name, content, page, theme_name, depth=0):
        """Render ``content`` through a layout and then through each parent layout."""
        if depth > MAX_INCLUDE_DEPTH:
            raise TemplateRecursionError(f"Layout chain too deep at '{layout_name}'")

        layout_path = self.themes.layout_path(layout_name, theme_name)
        if not layout_path:
            raise LayoutNotFoundError(layout_name, theme_name)

        front_matter, template = self.load_template(layout_path)
        owner = self.themes.theme_path_for_layout(layout_path)
        if owner:
            theme_includes_dir = os.path.join(owner, 'includes')
        else:
            theme_includes_dir = self.themes.includes_dir_for(theme_name)

        context = TemplateContext(self, page, content=content,
                                  theme_includes_dir=theme_includes_dir, current_theme=theme_name)
        rendered = context.render_template(template)

        parent = front_matter.get('layout')
        if parent:
            return self.render_layout(str(parent), rendered, page, theme_name, depth + 1)
        return rendered

    def render_inline(self, template_text, page, theme_name):
        """Render a content page that is itself a template."""
        context = TemplateContext(self, page, content='',
                                  theme_includes_dir=self.themes.includes_dir_for(theme_name),
                                  current_theme=theme_name)
        return context.render(template_text)


class TemplateContext:
    """Data and helpers visible to one template render."""

    BUILTIN_HELPERS = (
        'asset_path', 'theme_asset_path', 'url_for', 'absolute_url', 'truncate', 'strip_html',
        'where', 'where_type', 'get_nested_value', 'sort_by_field', 'take_first', 'format_date',
        'render_partial', 'has_partial',
    )

    def __init__(self, renderer, page, content='', theme_includes_dir=None, current_theme=None, depth=0):
        self.renderer = renderer
        self.page_data = dict(page)
        self.page = freeze(self.page_data)
        self.content = content
        self.theme_includes_dir = theme_includes_dir
        self.current_theme = current_theme
        self.depth = depth

    @property
    def site(self):
        return self.renderer.site_view

    @property
    def base_path(self):
        return self.renderer.site.get('base_path') or ''

    def variables(self):
        variables = {name: func for name, func in self.renderer.helpers.items()}
        variables.update({name: getattr(self, name) for name in self.BUILTIN_HELPERS})
        variables.update({
            'site': self.site,
            'page': self.page,
            'content': self.content,
            'base_path': self.base_path,
        })
        return variables

    def render(self, template_text):
        return self.render_template(self.renderer.env.from_string(template_text))

    def render_template(self, template):
        return template.render(self.variables())

    # URL helpers

    def combine_with_base(self, relative):
        base = self.base_path
        clean_relative = str(relative or '')
        if not clean_relative or clean_relative == '/':
            return f"{base}/" if base else '/'
        clean_relative = clean_relative.lstrip('/')
        path = f"{base}/{clean_relative}" if base else f"/{clean_relative}"
        return re.sub(r'/{2,}', '/', path)

    def asset_path(self, relative_path):
        return self.combine_with_base(str(relative_path or '').lstrip('/'))

    def theme_asset_path(self, relative_path, theme_name=None):
        name = str(theme_name or self.current_theme or '')
        relative = str(relative_path or '').lstrip('/')
        return self.combine_with_base(f"themes/{name}/{relative}")

    def url_for(self, relative_path):
        relative = str(relative_path or '')
        if relative != '/':
            relative = relative.lstrip('/')
        return self.combine_with_base(relative)

    def absolute_url(self, relative_path):
        base_url = self.renderer.site.get('base_url') or ''
        if not base_url:
            return self.url_for(relative_path)
        relative = str(relative_path or '')
        if not relative.startswith('/'):
            relative = '/' + relative
        return f"{base_url}{relative}"

    # Text helpers

    def truncate(self, text, length=100, omission='…'):
        if text is None:
            return ''
        text = str(text)
        if len(text) <= length:
            return text
        return text[:length].rstrip() + omission

    def strip_html(self, text):
        if text is None:
            return ''
        return re.sub(r'<[^>]*>', '', str(text))

    def format_date(self, value, fmt='%B %d, %Y'):
        parsed = value if isinstance(value, (date, datetime)) else parse_date(value)
        return parsed.strftime(fmt) if parsed else ''

    # Collection helpers

    def get_nested_value(self, item, field_path):
        current = item
        for part in str(field_path).split('.'):
            if isinstance(current, Mapping):
                current = current.get(part)
            elif current is not None and not part.startswith('_') and hasattr(current, part):
                current = getattr(current, part)
            else:
                return None
            if current is None:
                return None
        return current

    def where(self, collection, field, value):
        if not _is_sequence(collection):
            return []
        return [item for item in collection if self.get_nested_value(item, field) == value]

    def where_type(self, collection, type_value):
        return self.where(collection, 'type', type_value)

    def sort_by_field(self, collection, field_path, reverse=False):
        if not _is_sequence(collection):
            return []

        # Items without the field go last regardless of direction.
        present = [item for item in collection if self.get_nested_value(item, field_path) is not None]
        missing = [item for item in collection if self.get_nested_value(item, field_path) is None]
        present.sort(key=lambda item: self.get_nested_value(item, field_path), reverse=bool(reverse))
        return present + missing

    def take_first(self, collection, n):
        if not _is_sequence(collection):
            return []
        return list(collection)[:int(n)]

    # Partials

    def has_partial(self, name):
        return self._partial_path(name) is not None

    def _partial_path(self, name):
        return ThemeResolver.partial_path(name, self.renderer.site_includes_dir, self.theme_includes_dir)

    def render_partial(self, name, values=None, **kwargs):
        """Render a partial with the caller's page merged with ``values``/keyword locals."""
        if self.depth >= MAX_INCLUDE_DEPTH:
            raise TemplateRecursionError(f"Partial '{name}' nested more than {MAX_INCLUDE_DEPTH} levels deep")

        path = self._partial_path(name)
        if not path:
            raise PartialNotFoundError(name)

        page = dict(self.page_data)
        for source in (values or {}, kwargs):
            page.update({str(key): value for key, value in source.items()})

        _, template = self.renderer.load_template(path, front_matter=False)
        child = TemplateContext(self.renderer, page, content='',
                                theme_includes_dir=self.theme_includes_dir,
                                current_theme=self.current_theme, depth=self.depth + 1)
        return child.render_template(template)


def _is_sequence(value):
    return isinstance(value, (list, tuple))
