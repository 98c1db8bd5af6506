"""Test configuration and fixtures for Leafpress tests."""

import pytest
import tempfile
import shutil
import os
from pathlib import Path

import yaml


def write_files(root, files):
    """Write a {relative_path: text} mapping under root."""
    root = Path(root)
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')
    return root


BASE_LAYOUT = """<!DOCTYPE html>
<html>
<head>
    <title>{{ page.title }} | {{ site.title }}</title>
    <link rel="stylesheet" href="{{ asset_path('css/site.css') }}">
</head>
<body>
{{ render_partial('header') }}
{{ content }}
{{ render_partial('footer') }}
</body>
</html>
"""

POST_LAYOUT = """---
layout: base
---
<article class="post">
<p class="date">{{ page.date_iso }}</p>
{{ content }}
</article>
"""

PAGE_LAYOUT = """---
layout: base
---
<main class="page">
{{ content }}
</main>
"""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def theme_files():
    """Files for a minimal 'default' theme."""
    return {
        'themes/default/layouts/base.html': BASE_LAYOUT,
        'themes/default/layouts/post.html': POST_LAYOUT,
        'themes/default/layouts/page.html': PAGE_LAYOUT,
        'themes/default/includes/header.html': '<header>{{ site.title }}</header>\n',
        'themes/default/includes/_footer.html': '<footer>default footer</footer>\n',
        'themes/default/css/site.css': 'body { color: black; }\n',
        'themes/default/js/site.js': 'console.log("default theme");\n',
    }


@pytest.fixture
def project_dir(temp_dir, theme_files):
    """Create a complete project: config, theme, content and data."""
    files = dict(theme_files)
    files.update({
        'config.yml': yaml.dump({
            'title': 'Test Site',
            'url': '',
            'theme': 'default',
        }),
        'content/posts/2024-01-05-hello.md': '---\ntitle: "Hello"\ntags: [intro, python]\n---\n# Hi\n',
        'content/posts/2024-02-10-second-post.md': (
            '---\ntitle: Second\ntags: python\n---\nSome *text* with a [link](/pages/about/).\n'
        ),
        'content/posts/undated-note.md': '---\ntitle: Undated\n---\nNo date here.\n',
        'content/pages/about.md': '---\ntitle: About\n---\n## About us {#about}\n',
        'content/index.html.j2': (
            '---\ntitle: Home\n---\n'
            '<ul class="all-posts">{% for post in site.collections.posts %}'
            '<li>{{ post.title }}</li>{% endfor %}</ul>\n'
        ),
        'data/authors.yml': yaml.dump({'alice': {'name': 'Alice'}}),
    })
    write_files(temp_dir, files)
    return temp_dir
