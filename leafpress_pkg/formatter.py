"""
Adapters for external code formatters.

The pipeline only needs ``format(code) -> code``. Anything raised here is
caught by the caller, which keeps the original code.
"""

import logging
import shlex
import subprocess

logger = logging.getLogger('Leafpress.formatter')


def identity_formatter(code):
    return code


class CommandFormatter:
    """Pipe code through an external command and read the result from stdout."""

    def __init__(self, command, timeout=30):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command = list(command)
        self.timeout = timeout

    def __call__(self, code):
        result = subprocess.run(
            self.command,
            input=code,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=True,
        )
        formatted = result.stdout
        # An empty result means the tool had nothing useful to say.
        return formatted if formatted.strip() else code

    def __repr__(self):
        return f"CommandFormatter({self.command!r})"


def formatter_from_settings(pipeline_settings):
    """Build the formatter named in ``pipeline.formatter.command``, if any."""
    formatter_settings = (pipeline_settings or {}).get('formatter') or {}
    command = formatter_settings.get('command')
    if not command:
        return identity_formatter
    logger.debug(f"Using external formatter: {command}")
    return CommandFormatter(command, timeout=formatter_settings.get('timeout', 30))
