"""
Front matter parsing.

A document may open with a ``---`` line, a block of YAML, and a closing
``---`` line. Everything after the closing line is the body, untouched.
"""

import logging

import yaml

logger = logging.getLogger('Leafpress.frontmatter')

DELIMITER = '---'


class FrontMatterLoader(yaml.SafeLoader):
    """Safe loader that keeps impossible dates (2024-02-30) as plain strings."""

    def construct_yaml_timestamp(self, node):
        try:
            return super().construct_yaml_timestamp(node)
        except ValueError:
            return self.construct_scalar(node)


FrontMatterLoader.add_constructor('tag:yaml.org,2002:timestamp', FrontMatterLoader.construct_yaml_timestamp)


def _is_delimiter(line):
    return line.rstrip('\r\n') == DELIMITER


def split_front_matter(raw):
    """
    Split raw text into (block, body).

    Returns (None, raw) when there is no complete delimited block.
    """
    lines = raw.splitlines(keepends=True)
    if not lines or not _is_delimiter(lines[0]):
        return None, raw

    for index in range(1, len(lines)):
        if _is_delimiter(lines[index]):
            block = ''.join(lines[1:index])
            body = ''.join(lines[index + 1:])
            return block, body

    # No closing delimiter: treat the whole document as body.
    return None, raw


def parse_front_matter(raw, source=None):
    """
    Parse a document into a (metadata, body) pair.

    Never raises. Malformed or overly nested YAML, or YAML that is not a
    mapping, yields an empty mapping while the body is still split off.
    Impossible dates stay strings so the rest of the block survives.
    """
    if raw is None:
        return {}, ''
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8', errors='replace')

    block, body = split_front_matter(raw)
    if block is None:
        return {}, body

    try:
        metadata = yaml.load(block, Loader=FrontMatterLoader)
    except (yaml.YAMLError, ValueError, TypeError, RecursionError) as e:
        logger.warning(f"Invalid YAML front matter in {source or '(string)'}: {e}")
        return {}, body

    if metadata is None:
        return {}, body
    if not isinstance(metadata, dict):
        logger.warning(f"Front matter in {source or '(string)'} is not a mapping; ignoring it")
        return {}, body

    return {str(key): value for key, value in metadata.items()}, body


def read_front_matter(filepath):
    """Read a file from disk and parse its front matter."""
    with open(filepath, 'r', encoding='utf-8') as f:
        content = f.read()
    return parse_front_matter(content, source=filepath)
