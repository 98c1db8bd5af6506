import os
import shutil
import json
import logging
import time
import yaml
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List
from urllib.parse import urlparse
import csscompressor
import rjsmin

from .frontmatter import parse_front_matter
from .indexer import CollectionIndexer
from .page import Page, PageContextBuilder, is_content_file
from .pipeline import ContentPipeline
from .formatter import formatter_from_settings
from .rendering import HelperRegistry, TemplateRenderer, MAX_INCLUDE_DEPTH
from .settings import Settings
from .themes import ThemeResolver
from .errors import LayoutNotFoundError, TemplateRecursionError

QUOTE_TARGET_EXTENSIONS = ('.md', '.markdown')
SMART_QUOTES = {
    '“': '"',
    '”': '"',
    '‘': "'",
    '’': "'",
    '–': '-',
    '—': '-',
}

COLLECTION_INDEX_DIR = 'leafpress'


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "Building site",
            "Site build completed in",
            "Total pages generated:",
            "Total assets copied:",
            "Normalized quotes in:",
            "Generated collection indexes",
            "Minified",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


def setup_logging(log_dir=None, quiet=False):
    """Set up logging configuration."""
    logger = logging.getLogger('Leafpress')
    logger.setLevel(logging.DEBUG)

    if not logger.handlers:
        # Console handler with filter
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING if quiet else logging.INFO)
        console_handler.addFilter(InfoFilter())
        console_formatter = logging.Formatter('%(message)s')
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

        # File handler for all logs
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            log_filename = datetime.now().strftime('leafpress_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(log_dir, log_filename))
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

    return logger


def load_data_files(data_dir):
    """Load data/**/*.{yaml,yml,json}; each file's basename becomes a key."""
    logger = logging.getLogger('Leafpress.data')
    data = {}
    if not data_dir or not os.path.isdir(data_dir):
        return data

    for root, dirs, files in os.walk(data_dir):
        dirs.sort()
        for filename in sorted(files):
            name, ext = os.path.splitext(filename)
            ext = ext.lower()
            if ext not in ('.yaml', '.yml', '.json'):
                continue
            file_path = os.path.join(root, filename)
            try:
                with open(file_path, 'r', encoding='utf-8') as f:
                    if ext == '.json':
                        data[name] = json.load(f)
                    else:
                        data[name] = yaml.safe_load(f)
            except (IOError, OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read data file {file_path}: {e}")
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                logger.warning(f"Could not parse data file {file_path}: {e}")
    return data


def build_site_context(settings):
    """Site-wide template data: config values plus base URL/path, title and data files."""
    base_url = str(settings.get('url') or '').strip().rstrip('/')
    base_path = urlparse(base_url).path if base_url else ''
    if base_path == '/':
        base_path = ''
    base_path = base_path.rstrip('/')

    site = dict(settings)
    site.update({
        'base_url': base_url,
        'base_path': base_path,
        'title': settings.get('site_name') or settings.get('title') or 'Leafpress Site',
        'data': load_data_files(settings.get('data')),
    })
    return site


@dataclass
class BuildContext:
    """Everything one build needs, created fresh for every ``build()`` call."""
    settings: Dict[str, Any]
    site: Dict[str, Any]
    themes: ThemeResolver
    pipeline: ContentPipeline
    helpers: HelperRegistry
    indexer: CollectionIndexer
    renderer: TemplateRenderer
    page_builder: PageContextBuilder
    pages: List[Page] = field(default_factory=list)


class Builder:
    """Reads content and themes from a project directory and writes the static site."""

    def __init__(self, project_dir=None, formatter=None, helpers=None, quiet=False, **overrides):
        self.project_dir = os.path.abspath(project_dir or os.getcwd())
        self.theme_override = overrides.pop('theme', None)
        loader = Settings(self.project_dir)
        loader.load_settings()
        self.config_file = loader.config_file_path
        self.settings = loader.resolve_paths(loader.merge_with_args(overrides))
        self.formatter = formatter
        self.extra_helpers = dict(helpers or {})
        self.logger = setup_logging(self.settings.get('log_dir'), quiet=quiet)
        self.context = None
        self.pages_generated = 0
        self.assets_copied = 0

    @property
    def output_dir(self):
        return self.settings['output']

    @property
    def content_dir(self):
        return self.settings['content']

    def create_context(self):
        """Configure themes (failing fast on missing ones) and wire up the components."""
        settings = self.settings
        themes = ThemeResolver(
            theme_root=settings['themes'],
            site_layouts_dir=settings.get('layouts'),
            fallback_theme=settings.get('fallback_theme'),
        )
        themes.configure(settings.get('theme'), override=self.theme_override)
        themes.validate()

        site = build_site_context(settings)
        formatter = self.formatter or formatter_from_settings(settings.get('pipeline'))
        helpers = HelperRegistry(self.extra_helpers)

        return BuildContext(
            settings=settings,
            site=site,
            themes=themes,
            pipeline=ContentPipeline.from_settings(settings.get('pipeline'), formatter=formatter),
            helpers=helpers,
            indexer=CollectionIndexer(),
            renderer=TemplateRenderer(site, themes, site_includes_dir=settings.get('includes'), helpers=helpers),
            page_builder=PageContextBuilder(self.content_dir, base_url=site['base_url']),
        )

    def build(self):
        """Main build process. Clears the output directory and regenerates everything."""
        start_time = time.time()
        self.logger.info("Building site...")
        self.pages_generated = 0
        self.assets_copied = 0

        context = self.create_context()
        self.context = context

        if self.settings.get('normalize_quotes'):
            self.normalize_content_quotes()

        self.collect_content_theme_overrides(context)
        self.load_helpers(context)

        context.pages = [self.parse_page(context, path) for path in self.discover_content_files()]
        self.check_layouts(context)

        self.clear_output_dir()

        for page in context.pages:
            context.indexer.index(page)
        context.indexer.inject_into_site(context.site)
        context.renderer.refresh_site_view()

        written = {}
        for page in context.pages:
            if page.output_path in written:
                self.logger.warning(
                    f"{page.source} and {written[page.output_path]} both write {page.output_path}; "
                    f"the later one wins"
                )
            self.render_page(context, page)
            written[page.output_path] = page.source

        self.assets_copied = context.themes.copy_assets(self.output_dir, self.settings.get('assets'))

        if self.settings.get('collection_indexes'):
            self.write_collection_indexes(context)

        if self.settings.get('minify'):
            self.minify_assets()

        self.logger.info(f"Total pages generated: {self.pages_generated}")
        self.logger.info(f"Total assets copied: {self.assets_copied}")
        self.logger.info(f"Site build completed in {time.time() - start_time:.2f} seconds")

    def normalize_content_quotes(self):
        """Replace typographic quotes and dashes in markdown sources, in place."""
        for root, dirs, files in os.walk(self.content_dir):
            dirs.sort()
            for filename in sorted(files):
                if not filename.lower().endswith(QUOTE_TARGET_EXTENSIONS):
                    continue
                path = os.path.join(root, filename)
                try:
                    with open(path, 'r', encoding='utf-8-sig') as f:
                        original = f.read()
                except UnicodeDecodeError as e:
                    self.logger.warning(f"Skipping {path} due to encoding error: {e}")
                    continue

                normalized = original
                for smart, plain in SMART_QUOTES.items():
                    normalized = normalized.replace(smart, plain)
                if normalized == original:
                    continue

                with open(path, 'w', encoding='utf-8') as f:
                    f.write(normalized)
                self.logger.info(f"Normalized quotes in: {path}")

    def discover_content_files(self):
        """All content documents under the content root, sorted by relative path."""
        found = []
        if not os.path.isdir(self.content_dir):
            self.logger.warning(f"Content directory not found: {self.content_dir}")
            return found
        for root, dirs, files in os.walk(self.content_dir):
            dirs[:] = [d for d in dirs if not d.startswith('.')]
            for filename in files:
                if filename.startswith('.') or not is_content_file(filename):
                    continue
                found.append(os.path.join(root, filename))
        return sorted(found, key=lambda p: os.path.relpath(p, self.content_dir).replace(os.sep, '/'))

    def collect_content_theme_overrides(self, context):
        """Register themes that pages ask for in their front matter."""
        for path in self.discover_content_files():
            try:
                with open(path, 'r', encoding='utf-8-sig') as f:
                    front_matter, _ = parse_front_matter(f.read(), source=path)
            except (IOError, OSError, UnicodeDecodeError) as e:
                self.logger.debug(f"Skipping theme scan for {path}: {e}")
                continue
            theme_name = str(front_matter.get('theme') or '').strip()
            if theme_name:
                context.themes.discover(theme_name)

    def load_helpers(self, context):
        directories = [self.settings.get('helpers')]
        directories += [os.path.join(path, 'helpers') for path in context.themes.theme_paths.values()]
        for directory in directories:
            context.helpers.load_directory(directory)

    def parse_page(self, context, path):
        with open(path, 'r', encoding='utf-8-sig', errors='replace') as f:
            raw = f.read()
        front_matter, body = parse_front_matter(raw, source=path)
        return context.page_builder.build(path, front_matter, body=body)

    def check_layouts(self, context):
        """Resolve every page's layout chain up front so a missing layout fails before any output."""
        checked = set()
        for page in context.pages:
            theme_name = context.themes.theme_for_page(page)
            key = (page.layout, theme_name)
            if key in checked:
                continue
            checked.add(key)

            name, depth = page.layout, 0
            while name:
                if depth > MAX_INCLUDE_DEPTH:
                    raise TemplateRecursionError(f"Layout chain starting at '{page.layout}' is too deep")
                layout_path = context.themes.layout_path(name, theme_name)
                if not layout_path:
                    raise LayoutNotFoundError(name, theme_name)
                front_matter, _ = context.renderer.load_template(layout_path)
                name = front_matter.get('layout')
                depth += 1

    def clear_output_dir(self):
        """Remove everything inside the output directory, keeping the directory itself."""
        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir, exist_ok=True)
            return
        for item in os.listdir(self.output_dir):
            item_path = os.path.join(self.output_dir, item)
            if os.path.isdir(item_path) and not os.path.islink(item_path):
                shutil.rmtree(item_path)
            else:
                os.remove(item_path)

    def render_page(self, context, page):
        theme_name = context.themes.theme_for_page(page)
        page_data = page.to_context()

        if page.renderer == 'markdown':
            html_content = context.pipeline.run(page.body, page)
        elif page.renderer == 'template':
            html_content = context.renderer.render_inline(page.body, page_data, theme_name)
        else:
            html_content = page.body

        rendered = context.renderer.render_layout(page.layout, html_content, page_data, theme_name)

        output_path = os.path.join(self.output_dir, page.output_path)
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(rendered)
        self.pages_generated += 1
        self.logger.debug(f"Generated: {output_path}")
        return output_path

    def write_collection_indexes(self, context):
        summaries = context.indexer.summaries()
        if not summaries:
            return
        index_dir = os.path.join(self.output_dir, COLLECTION_INDEX_DIR)
        os.makedirs(index_dir, exist_ok=True)
        for section, entries in summaries.items():
            with open(os.path.join(index_dir, f"{section}.json"), 'w', encoding='utf-8') as f:
                json.dump(entries, f, indent=2, ensure_ascii=False, default=str)
        self.logger.info(f"Generated collection indexes for {len(summaries)} sections")

    def minify_assets(self):
        """Minify CSS and JS assets."""
        minified = 0
        for root, _dirs, files in os.walk(self.output_dir):
            for file in sorted(files):
                path = os.path.join(root, file)
                if file.endswith('.css') and not file.endswith('.min.css'):
                    compress, minified_name = csscompressor.compress, file[:-len('.css')] + '.min.css'
                elif file.endswith('.js') and not file.endswith('.min.js'):
                    compress, minified_name = rjsmin.jsmin, file[:-len('.js')] + '.min.js'
                else:
                    continue
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        source = f.read()
                    with open(os.path.join(root, minified_name), 'w', encoding='utf-8') as f:
                        f.write(compress(source))
                    minified += 1
                    self.logger.debug(f"Minified: {file}")
                except (IOError, OSError, UnicodeDecodeError) as e:
                    self.logger.error(f"Failed to minify {path}: {e}")
        self.logger.info(f"Minified {minified} assets")
        return minified


def build(project_dir=None, **options):
    """Build the site in ``project_dir`` (default: current directory)."""
    Builder(project_dir, **options).build()
