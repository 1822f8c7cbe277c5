"""Image-Watcher CLI.

Command line entry point: one-shot cycles, the long-running server and
inspection commands.
"""

from importlib.metadata import version as get_package_version

__version__ = get_package_version("image-watcher")
