"""
Leafpress - a static site builder.

Leafpress reads Markdown and Jinja2 content, renders it through themed,
chainable layouts, and writes a fully linked static site in one pass.
It supports multiple themes per site, a configurable content pipeline,
section collections, yearly archives and tag pages.
"""

__version__ = "1.0.0"

from .core import Builder, BuildContext, build
from .errors import BuildError, ThemeNotFoundError, LayoutNotFoundError, PartialNotFoundError

__all__ = [
    'Builder', 'BuildContext', 'build',
    'BuildError', 'ThemeNotFoundError', 'LayoutNotFoundError', 'PartialNotFoundError',
]
