"""
Theme selection, layout/partial lookup and theme asset copying.
"""

import logging
import os
import shutil

from .errors import ThemeNotFoundError

ASSET_DIRS = ('css', 'js', 'images')
LAYOUT_EXTENSIONS = ('.html', '.html.j2', '.j2')

DEFAULT_THEME = 'default'


class ThemeResolver:
    """Knows every theme in play for one build and how to search them."""

    def __init__(self, theme_root='themes', site_layouts_dir=None, fallback_theme=DEFAULT_THEME):
        self.theme_root = theme_root
        self.site_layouts_dir = site_layouts_dir
        self.fallback_theme = fallback_theme
        self.default_theme = DEFAULT_THEME
        self.section_themes = {}
        self.theme_paths = {}
        self.logger = logging.getLogger('Leafpress.themes')

    def configure(self, theme_setting=None, override=None):
        """
        Read the ``theme`` setting.

        Accepts a theme name, or a mapping with ``default`` and per-section
        ``sections``. ``override`` replaces the default theme name.
        """
        if isinstance(theme_setting, str) and theme_setting.strip():
            default = theme_setting.strip()
            sections = {}
        elif isinstance(theme_setting, dict):
            default = str(theme_setting.get('default') or self.fallback_theme or DEFAULT_THEME)
            sections = theme_setting.get('sections') or {}
        else:
            default = self.fallback_theme or DEFAULT_THEME
            sections = {}

        self.default_theme = str(override or default)
        self.section_themes = {str(k): str(v) for k, v in sections.items()}

        names = [self.default_theme] + list(self.section_themes.values())
        if self.fallback_theme and os.path.isdir(self.path_for(self.fallback_theme)):
            names.append(self.fallback_theme)

        self.theme_paths = {}
        for name in names:
            self.theme_paths.setdefault(name, self.path_for(name))
        return self

    def validate(self):
        """Fail fast if any configured theme directory is missing."""
        for name, path in self.theme_paths.items():
            if not os.path.isdir(path):
                raise ThemeNotFoundError(name, path)

    def path_for(self, name):
        return os.path.join(self.theme_root, name)

    def discover(self, name):
        """Register a theme referenced ad hoc by page metadata, if it exists."""
        name = str(name or '').strip()
        if not name or name in self.theme_paths:
            return name in self.theme_paths
        path = self.path_for(name)
        if os.path.isdir(path):
            self.theme_paths[name] = path
            self.logger.debug(f"Discovered theme from content: {name}")
            return True
        self.logger.debug(f"Ignoring unknown theme referenced by content: {name}")
        return False

    def theme_for_page(self, page):
        # Ad hoc themes that were never discovered are ignored.
        if page.theme and page.theme in self.theme_paths:
            return page.theme
        if page.section in self.section_themes:
            return self.section_themes[page.section]
        return self.default_theme

    def includes_dir_for(self, theme_name):
        path = self.theme_paths.get(theme_name)
        return os.path.join(path, 'includes') if path else None

    def _layout_candidates(self, directory, layout_name):
        return [os.path.join(directory, f"{layout_name}{ext}") for ext in LAYOUT_EXTENSIONS]

    def layout_path(self, layout_name, theme_name):
        """
        Find a layout file, or None.

        Search order: site layouts, requested theme, fallback theme, every
        other known theme, default theme.
        """
        directories = []
        if self.site_layouts_dir and os.path.isdir(self.site_layouts_dir):
            directories.append(self.site_layouts_dir)

        theme_path = self.theme_paths.get(theme_name)
        if theme_path:
            directories.append(os.path.join(theme_path, 'layouts'))

        fallback_path = self.theme_paths.get(self.fallback_theme)
        if fallback_path:
            directories.append(os.path.join(fallback_path, 'layouts'))

        for name, path in self.theme_paths.items():
            if name in (theme_name, self.fallback_theme):
                continue
            directories.append(os.path.join(path, 'layouts'))

        directories.append(os.path.join(self.path_for(self.default_theme), 'layouts'))

        for directory in directories:
            for candidate in self._layout_candidates(directory, layout_name):
                if os.path.isfile(candidate):
                    return candidate
        return None

    @staticmethod
    def partial_path(name, site_includes_dir, theme_includes_dir):
        """Site includes win over theme includes; plain name before ``_name``."""
        candidates = []
        for directory in (site_includes_dir, theme_includes_dir):
            if directory and os.path.isdir(directory):
                candidates.append(os.path.join(directory, f"{name}.html"))
                candidates.append(os.path.join(directory, f"_{name}.html"))
        for candidate in candidates:
            if os.path.isfile(candidate):
                return candidate
        return None

    def theme_path_for_layout(self, layout_path):
        """Theme directory that owns a layout file, or None for site layouts."""
        absolute = os.path.abspath(layout_path)
        for path in self.theme_paths.values():
            base = os.path.abspath(os.path.join(path, 'layouts'))
            if absolute.startswith(base + os.sep):
                return path
        return None

    def copy_assets(self, output_dir, site_assets_dir=None):
        """
        Copy theme and site static assets into the output tree.

        Every theme goes under ``themes/<name>/``; the default theme is also
        copied to the root asset directories, and site assets are copied
        last so they override theme files.
        """
        copied = 0
        for name, path in self.theme_paths.items():
            for asset_dir in ASSET_DIRS:
                destination = os.path.join(output_dir, 'themes', name, asset_dir)
                copied += self._copy_tree(os.path.join(path, asset_dir), destination, f"theme: {name}")

        default_path = self.theme_paths.get(self.default_theme, self.path_for(self.default_theme))
        for asset_dir in ASSET_DIRS:
            copied += self._copy_tree(os.path.join(default_path, asset_dir),
                                      os.path.join(output_dir, asset_dir), 'default theme (root)')

        if site_assets_dir:
            for asset_dir in ASSET_DIRS:
                copied += self._copy_tree(os.path.join(site_assets_dir, asset_dir),
                                          os.path.join(output_dir, asset_dir), 'site')
        return copied

    def _copy_tree(self, source, destination, label):
        if not os.path.isdir(source):
            return 0
        count = 0
        for root, _dirs, files in os.walk(source):
            for filename in sorted(files):
                source_file = os.path.join(root, filename)
                target = os.path.join(destination, os.path.relpath(source_file, source))
                os.makedirs(os.path.dirname(target), exist_ok=True)
                shutil.copy2(source_file, target)
                count += 1
                self.logger.debug(f"Copied {label} asset: {source_file}")
        return count
