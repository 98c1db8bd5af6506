"""
Collection indexing: sections, yearly archives and tags.

Every page is indexed before any page is rendered, so a template asking for
the full list of posts always gets the full list.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime

from .page import POSTS_SECTION


def _newest_first(pages):
    # Dateless posts sort as the oldest.
    return sorted(pages, key=lambda p: p.date or date.min, reverse=True)


def _summary_value(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class CollectionIndexer:
    """Groups parsed pages into per-section collections, archives and tag taxonomies."""

    def __init__(self, posts_section=POSTS_SECTION):
        self.posts_section = posts_section
        self.collections = OrderedDict()
        self.archives = {}
        self.tags = {}
        self.injected = False
        self.logger = logging.getLogger('Leafpress.indexer')

    def index(self, page):
        if not page.section:
            return
        self.collections.setdefault(page.section, []).append(page)

        if page.section != self.posts_section:
            return

        if page.date is not None:
            self.archives.setdefault(page.date.year, []).append(page)

        for tag in page.tags:
            self.tags.setdefault(tag, []).append(page)

    def archive_entries(self):
        return [
            {'year': year, 'posts': [p.to_context() for p in _newest_first(self.archives[year])]}
            for year in sorted(self.archives, reverse=True)
        ]

    def tag_entries(self):
        return [
            {'name': tag, 'posts': [p.to_context() for p in _newest_first(self.tags[tag])]}
            for tag in sorted(self.tags)
        ]

    def collection_entries(self):
        return {section: [p.to_context() for p in pages] for section, pages in self.collections.items()}

    def inject_into_site(self, site):
        """Publish the finished indexes into the site data. Only once per build."""
        if self.injected:
            raise RuntimeError("Collections have already been injected into the site context")
        site['collections'] = self.collection_entries()
        site['archives'] = self.archive_entries()
        site['tags'] = self.tag_entries()
        self.injected = True
        self.logger.debug(
            f"Indexed {sum(len(p) for p in self.collections.values())} pages in "
            f"{len(self.collections)} sections, {len(self.archives)} archive years, {len(self.tags)} tags"
        )
        return site

    def summaries(self):
        """Per-section JSON-ready summaries of every indexed page."""
        return {
            section: [
                {
                    'title': page.title,
                    'description': _summary_value(page.metadata.get('description')),
                    'permalink': page.permalink,
                    'url': page.url,
                    'date': page.date_iso,
                    'tags': list(page.tags),
                }
                for page in pages
            ]
            for section, pages in self.collections.items()
        }
