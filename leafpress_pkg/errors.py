"""
Fatal build errors for Leafpress.

Anything raised from here aborts the whole build. Per-document problems
(bad front matter, bad dates, unreadable files) are logged and degraded
instead, so they never show up as one of these.
"""


class BuildError(Exception):
    """Base class for errors that abort a build."""


class ThemeNotFoundError(BuildError):
    """A configured theme has no directory under the themes root."""

    def __init__(self, name, path):
        self.name = name
        self.path = path
        super().__init__(f"Theme '{name}' not found at {path}")


class LayoutNotFoundError(BuildError):
    """No layout with this name exists anywhere in the fallback chain."""

    def __init__(self, layout_name, theme_name=None):
        self.layout_name = layout_name
        self.theme_name = theme_name
        super().__init__(f"Missing layout: {layout_name} (theme: {theme_name})")


class PartialNotFoundError(BuildError):
    """A template referenced a partial that cannot be found."""

    def __init__(self, name):
        self.name = name
        super().__init__(f"Missing partial: {name}")


class TemplateRecursionError(BuildError):
    """Partial includes or layout parents nested past the depth limit."""
