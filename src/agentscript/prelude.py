"""Helper library evaluated into every fresh sandbox session.

The source below runs inside the sandbox with the same restrictions as a
user script, so it may only use safe builtins and the ``host`` table.
"""

from __future__ import annotations

PRELUDE_NAME = "<prelude>"

PRELUDE_SOURCE = '''
def map_list(items, fn):
    """Return [fn(item) for item in items]."""
    return [fn(item) for item in items]


def filter_list(items, fn):
    """Return the items for which fn(item) is truthy."""
    return [item for item in items if fn(item)]


def walk(path="."):
    """Relative paths of every file below path, depth first."""
    found = []
    for entry in host.list_dir(path):
        child = entry["name"] if path == "." else path + "/" + entry["name"]
        if entry["is_dir"]:
            found.extend(walk(child))
        else:
            found.append(child)
    return found


def grep(pattern, directory=None):
    """host.search() output as a list of "file:line:text" strings."""
    result = host.search(pattern, directory)
    return [line for line in result["stdout"].splitlines() if line]
'''
