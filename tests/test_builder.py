"""End-to-end tests for Builder."""

import pytest
import os
import json
import logging

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import yaml

from conftest import write_files
from leafpress_pkg import Builder, build
from leafpress_pkg.errors import LayoutNotFoundError, ThemeNotFoundError
from leafpress_pkg.settings import URL_OVERRIDE_ENV


def read(root, *parts):
    with open(os.path.join(root, *parts), encoding='utf-8') as f:
        return f.read()


def snapshot(directory):
    files = {}
    for root, _dirs, names in os.walk(directory):
        for name in names:
            path = os.path.join(root, name)
            with open(path, 'rb') as f:
                files[os.path.relpath(path, directory)] = f.read()
    return files


def plant_sentinel(project_dir):
    write_files(project_dir, {'public/sentinel.txt': 'keep me'})
    return os.path.join(project_dir, 'public', 'sentinel.txt')


class TestBuilder:
    """Test cases for a full site build."""

    def test_dated_post(self, project_dir):
        """Test the dated post is rendered at its permalink through the layout chain."""
        Builder(project_dir, quiet=True).build()
        html = read(project_dir, 'public', 'posts', 'hello', 'index.html')

        assert '<h1>Hi</h1>' in html
        assert '<article class="post">' in html
        assert '<p class="date">2024-01-05</p>' in html
        assert '<title>Hello | Test Site</title>' in html
        assert '<header>Test Site</header>' in html
        assert '<footer>default footer</footer>' in html
        assert 'href="/css/site.css"' in html

    def test_all_pages_written(self, project_dir):
        """Test every content file produces output."""
        builder = Builder(project_dir, quiet=True)
        builder.build()

        for parts in (('index.html',), ('posts', 'hello', 'index.html'),
                      ('posts', 'second-post', 'index.html'), ('posts', 'undated-note', 'index.html'),
                      ('pages', 'about', 'index.html')):
            assert os.path.isfile(os.path.join(project_dir, 'public', *parts))
        assert builder.pages_generated == 5

    def test_markdown_features(self, project_dir):
        """Test inline markup and heading anchors in built pages."""
        build(project_dir, quiet=True)

        second = read(project_dir, 'public', 'posts', 'second-post', 'index.html')
        about = read(project_dir, 'public', 'pages', 'about', 'index.html')

        assert '<em>text</em>' in second
        assert '<a href="/pages/about/">link</a>' in second
        assert '<h2 id="about">About us</h2>' in about
        assert '<main class="page">' in about

    def test_index_sees_every_post(self, project_dir):
        """Test a page rendered first still sees the complete collection."""
        Builder(project_dir, quiet=True).build()
        html = read(project_dir, 'public', 'index.html')

        assert '<li>Hello</li><li>Second</li><li>Undated</li>' in html

    def test_archives_and_tags(self, project_dir):
        """Test archives and tags are available to templates."""
        write_files(project_dir, {
            'content/archive.html.j2': (
                '{% for year in site.archives %}{{ year.year }}:'
                '{% for post in year.posts %}{{ post.title }},{% endfor %}{% endfor %}\n'
                '{% for tag in site.tags %}{{ tag.name }}={{ tag.posts | length }};{% endfor %}'
            ),
        })
        Builder(project_dir, quiet=True).build()
        html = read(project_dir, 'public', 'archive', 'index.html')

        assert '2024:Second,Hello,' in html
        assert 'intro=1;python=2;' in html
        assert 'Undated' not in html

    def test_data_files(self, project_dir):
        """Test data files are exposed under site.data."""
        write_files(project_dir, {'content/team.html.j2': 'Author: {{ site.data.authors.alice.name }}'})
        Builder(project_dir, quiet=True).build()

        assert 'Author: Alice' in read(project_dir, 'public', 'team', 'index.html')

    def test_assets_copied(self, project_dir):
        """Test theme and site assets land in the output."""
        write_files(project_dir, {'assets/css/site.css': 'body { color: red; }\n'})
        builder = Builder(project_dir, quiet=True)
        builder.build()

        assert read(project_dir, 'public', 'css', 'site.css') == 'body { color: red; }\n'
        assert read(project_dir, 'public', 'themes', 'default', 'css', 'site.css') == 'body { color: black; }\n'
        assert os.path.isfile(os.path.join(project_dir, 'public', 'js', 'site.js'))
        assert builder.assets_copied > 0

    def test_collection_indexes(self, project_dir):
        """Test JSON summaries are written per section."""
        Builder(project_dir, quiet=True).build()
        posts = json.loads(read(project_dir, 'public', 'leafpress', 'posts.json'))

        assert [entry['title'] for entry in posts] == ['Hello', 'Second', 'Undated']
        assert posts[0]['permalink'] == '/posts/hello/'
        assert posts[0]['date'] == '2024-01-05'
        assert posts[0]['tags'] == ['intro', 'python']
        assert posts[2]['date'] is None
        assert os.path.isfile(os.path.join(project_dir, 'public', 'leafpress', 'pages.json'))

    def test_collection_indexes_disabled(self, project_dir):
        """Test collection indexes can be turned off."""
        Builder(project_dir, quiet=True, collection_indexes=False).build()

        assert not os.path.exists(os.path.join(project_dir, 'public', 'leafpress'))

    def test_rebuild_is_idempotent(self, project_dir):
        """Test two builds give identical output and stale files are removed."""
        Builder(project_dir, quiet=True).build()
        first = snapshot(os.path.join(project_dir, 'public'))
        write_files(project_dir, {'public/stale.html': 'old'})

        Builder(project_dir, quiet=True).build()
        second = snapshot(os.path.join(project_dir, 'public'))

        assert first == second
        assert 'stale.html' not in second

    def test_output_override(self, project_dir):
        """Test the output directory can be overridden."""
        Builder(project_dir, quiet=True, output='dist').build()

        assert os.path.isfile(os.path.join(project_dir, 'dist', 'posts', 'hello', 'index.html'))

    def test_base_url(self, project_dir):
        """Test a base URL with a path prefixes assets and page URLs."""
        write_files(project_dir, {'content/links.html.j2': '{{ page.url }} {{ url_for("/posts/hello/") }}'})
        Builder(project_dir, quiet=True, url='https://example.com/blog/').build()

        hello = read(project_dir, 'public', 'posts', 'hello', 'index.html')
        links = read(project_dir, 'public', 'links', 'index.html')

        assert 'href="/blog/css/site.css"' in hello
        assert 'https://example.com/blog/links/ /blog/posts/hello/' in links

    def test_url_override_from_environment(self, project_dir, monkeypatch):
        """Test the environment URL override."""
        monkeypatch.setenv(URL_OVERRIDE_ENV, 'https://preview.example.org/site')
        builder = Builder(project_dir, quiet=True)
        builder.build()

        assert builder.settings['url'] == 'https://preview.example.org/site'
        assert 'href="/site/css/site.css"' in read(project_dir, 'public', 'posts', 'hello', 'index.html')

    def test_duplicate_output_warns(self, project_dir, caplog):
        """Test two pages writing the same file log a warning."""
        write_files(project_dir, {'content/pages/index.md': '---\ntitle: Pages Home\n---\nWelcome\n'})

        with caplog.at_level(logging.WARNING, logger='Leafpress'):
            Builder(project_dir, quiet=True).build()

        assert any('both write index.html' in record.getMessage() for record in caplog.records)
        assert 'Welcome' in read(project_dir, 'public', 'index.html')

    def test_date_description_in_collection_index(self, project_dir):
        """Test date-valued front matter does not break the JSON collection indexes."""
        write_files(project_dir, {'content/posts/2024-03-01-d.md': '---\ndescription: 2024-03-01\n---\nx\n'})
        Builder(project_dir, quiet=True).build()
        posts = json.loads(read(project_dir, 'public', 'leafpress', 'posts.json'))

        assert posts[2]['title'] == 'D'
        assert posts[2]['description'] == '2024-03-01'

    def test_impossible_date_keeps_front_matter(self, project_dir):
        """Test an impossible date only drops the date."""
        write_files(project_dir, {
            'content/posts/leap.md': '---\ntitle: Leap\npermalink: /custom/\ndate: 2024-02-30\n---\nx\n',
        })
        Builder(project_dir, quiet=True).build()
        html = read(project_dir, 'public', 'custom', 'index.html')

        assert '<title>Leap | Test Site</title>' in html
        assert '<p class="date">None</p>' in html

    def test_unknown_page_theme_is_ignored(self, project_dir):
        """Test a page naming a missing theme renders with the default theme."""
        write_files(project_dir, {
            'content/ghost.html.j2': "---\ntheme: ghost\n---\n{{ render_partial('header') }} {{ theme_asset_path('css/site.css') }}",
        })
        Builder(project_dir, quiet=True).build()
        html = read(project_dir, 'public', 'ghost', 'index.html')

        assert '<header>Test Site</header>' in html
        assert '/themes/default/css/site.css' in html
        assert '/themes/ghost/' not in html
        assert not os.path.exists(os.path.join(project_dir, 'public', 'themes', 'ghost'))

    def test_byte_order_mark(self, project_dir):
        """Test front matter is found in files saved with a byte order mark."""
        path = os.path.join(project_dir, 'content', 'pages', 'bom.md')
        with open(path, 'w', encoding='utf-8-sig') as f:
            f.write('---\ntitle: Marked\npermalink: /marked/\n---\nBody text\n')
        Builder(project_dir, quiet=True, normalize_quotes=False).build()
        html = read(project_dir, 'public', 'marked', 'index.html')

        assert '<title>Marked | Test Site</title>' in html
        assert 'title: Marked' not in html


class TestBuildFailures:
    """Test cases for fatal build errors."""

    def test_missing_theme(self, project_dir):
        """Test a missing theme fails before the output is touched."""
        sentinel = plant_sentinel(project_dir)
        write_files(project_dir, {'config.yml': yaml.dump({'title': 'Test Site', 'theme': 'nonexistent'})})

        with pytest.raises(ThemeNotFoundError):
            Builder(project_dir, quiet=True).build()
        assert os.path.isfile(sentinel)

    def test_theme_override_missing(self, project_dir):
        """Test a missing theme given as an override."""
        sentinel = plant_sentinel(project_dir)

        with pytest.raises(ThemeNotFoundError):
            Builder(project_dir, quiet=True, theme='ghost').build()
        assert os.path.isfile(sentinel)

    def test_missing_layout(self, project_dir):
        """Test a missing layout fails before the output is touched."""
        sentinel = plant_sentinel(project_dir)
        write_files(project_dir, {'content/posts/2024-03-01-broken.md': '---\nlayout: ghost\n---\nBody\n'})

        with pytest.raises(LayoutNotFoundError) as excinfo:
            Builder(project_dir, quiet=True).build()
        assert excinfo.value.layout_name == 'ghost'
        assert os.path.isfile(sentinel)

    def test_missing_parent_layout(self, project_dir):
        """Test a layout whose parent is missing fails before the output is touched."""
        sentinel = plant_sentinel(project_dir)
        write_files(project_dir, {'themes/default/layouts/post.html': '---\nlayout: ghost-base\n---\n{{ content }}'})

        with pytest.raises(LayoutNotFoundError):
            Builder(project_dir, quiet=True).build()
        assert os.path.isfile(sentinel)

    def test_bad_front_matter_is_not_fatal(self, project_dir):
        """Test malformed front matter degrades to defaults."""
        write_files(project_dir, {'content/posts/2024-04-01-broken.md': '---\ntitle: [unclosed\n---\nStill here\n'})
        Builder(project_dir, quiet=True).build()

        html = read(project_dir, 'public', 'posts', 'broken', 'index.html')
        assert 'Still here' in html
        assert '<title>Broken | Test Site</title>' in html


class TestThemes:
    """Test cases for multi-theme builds."""

    @pytest.fixture
    def alt_theme(self, project_dir):
        write_files(project_dir, {
            'themes/alt/layouts/page.html': '---\nlayout: base\n---\n<div class="alt">{{ content }}</div>',
            'themes/alt/css/alt.css': '.alt { color: blue; }\n',
        })
        return project_dir

    def test_section_theme(self, alt_theme):
        """Test a section theme with layouts falling back to the default theme."""
        write_files(alt_theme, {'config.yml': yaml.dump({
            'title': 'Test Site',
            'theme': {'default': 'default', 'sections': {'pages': 'alt'}},
        })})
        Builder(alt_theme, quiet=True).build()

        about = read(alt_theme, 'public', 'pages', 'about', 'index.html')
        hello = read(alt_theme, 'public', 'posts', 'hello', 'index.html')

        assert '<div class="alt">' in about
        assert '<footer>default footer</footer>' in about
        assert '<div class="alt">' not in hello
        assert os.path.isfile(os.path.join(alt_theme, 'public', 'themes', 'alt', 'css', 'alt.css'))

    def test_front_matter_theme(self, alt_theme):
        """Test a page can pick a theme in its front matter."""
        write_files(alt_theme, {'content/pages/special.md': '---\ntheme: alt\n---\nSpecial\n'})
        Builder(alt_theme, quiet=True).build()

        assert '<div class="alt">' in read(alt_theme, 'public', 'pages', 'special', 'index.html')
        assert '<div class="alt">' not in read(alt_theme, 'public', 'pages', 'about', 'index.html')

    def test_site_layout_override(self, project_dir):
        """Test site layouts override theme layouts."""
        write_files(project_dir, {'layouts/post.html': '<section>{{ content }}</section>'})
        Builder(project_dir, quiet=True).build()

        html = read(project_dir, 'public', 'posts', 'hello', 'index.html')
        assert html.startswith('<section>')
        assert '<article' not in html

    def test_site_include_override(self, project_dir):
        """Test site includes override theme includes."""
        write_files(project_dir, {'includes/footer.html': '<footer>site footer</footer>'})
        Builder(project_dir, quiet=True).build()

        assert '<footer>site footer</footer>' in read(project_dir, 'public', 'posts', 'hello', 'index.html')


class TestBuildOptions:
    """Test cases for optional build behavior."""

    def test_quote_normalization(self, project_dir):
        """Test typographic quotes are rewritten in markdown sources."""
        path = os.path.join(project_dir, 'content', 'posts', '2024-03-01-quotes.md')
        write_files(project_dir, {'content/posts/2024-03-01-quotes.md': 'He said “hi” — it’s fine\n'})
        Builder(project_dir, quiet=True).build()

        assert read(path) == 'He said "hi" - it\'s fine\n'
        assert 'He said "hi" - it\'s fine' in read(project_dir, 'public', 'posts', 'quotes', 'index.html')

    def test_quote_normalization_disabled(self, project_dir):
        """Test quote normalization can be switched off."""
        path = os.path.join(project_dir, 'content', 'posts', '2024-03-01-quotes.md')
        write_files(project_dir, {'content/posts/2024-03-01-quotes.md': 'He said “hi”\n'})
        Builder(project_dir, quiet=True, normalize_quotes=False).build()

        assert read(path) == 'He said “hi”\n'

    def test_minify(self, project_dir):
        """Test CSS and JS minification."""
        Builder(project_dir, quiet=True, minify=True).build()

        css = read(project_dir, 'public', 'css', 'site.min.css')
        assert css == 'body{color:black}'
        assert os.path.isfile(os.path.join(project_dir, 'public', 'js', 'site.min.js'))
        assert not os.path.exists(os.path.join(project_dir, 'public', 'css', 'site.min.min.css'))

    def test_project_helpers(self, project_dir):
        """Test helpers from the helpers directory and from the caller."""
        write_files(project_dir, {
            'helpers/text.py': 'HELPERS = {"shout": lambda value: str(value).upper()}\n',
            'content/helpers.html.j2': '{{ shout("hi") }} {{ wave() }}',
        })
        Builder(project_dir, quiet=True, helpers={'wave': lambda: 'o/'}).build()

        assert 'HI o/' in read(project_dir, 'public', 'helpers', 'index.html')

    def test_injected_formatter(self, project_dir):
        """Test a formatter passed to the builder reformats marked blocks."""
        write_files(project_dir, {
            'content/posts/2024-03-02-code.md': '#> ruby: format\nputs 1\n#!\n',
        })
        Builder(project_dir, quiet=True, formatter=lambda code: code.upper()).build()

        html = read(project_dir, 'public', 'posts', 'code', 'index.html')
        assert 'PUTS 1' in html
        assert 'code-window' in html

    def test_pipeline_steps_from_config(self, project_dir):
        """Test the configured step list drives rendering."""
        write_files(project_dir, {'config.yml': yaml.dump({
            'title': 'Test Site',
            'theme': 'default',
            'pipeline': {'steps': ['commonmark']},
        })})
        Builder(project_dir, quiet=True).build()

        html = read(project_dir, 'public', 'posts', 'second-post', 'index.html')
        assert '<em>text</em>' in html
        assert '<p>' in html
