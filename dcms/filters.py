# Dependencies
# ============
# Standard
# --------
import typing as t

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import current_app
from markupsafe import escape

FilterName = t.Union[str, t.Tuple[str, ...]]


def _normalize(name) -> FilterName:
    if isinstance(name, (list, tuple)):
        return tuple(str(part) for part in name)
    return str(name)


def html_escape(text):
    '''Default `html_escape` filter.'''
    if text is None:
        return ''
    return str(escape(text))


class FilterRegistry(object):
    '''Named, ordered chains of callbacks that may rewrite a value. Plugins
    register callbacks against a name such as `'html_escape'` or a tuple like
    `('Display', 'Item', 'Title', 'Dublin Core')`; each callback receives the
    value produced by the one before it, followed by any extra arguments
    passed to `apply`.
    '''

    def __init__(self):
        self._chains = dict()
        self._counter = 0

    def add(self, name, callback: t.Callable, priority: int = 10):
        key = _normalize(name)
        self._counter += 1
        chain = self._chains.setdefault(key, list())
        chain.append((priority, self._counter, callback))
        chain.sort(key=lambda k: (k[0], k[1]))

    def remove(self, name, callback: t.Callable):
        key = _normalize(name)
        chain = self._chains.get(key, list())
        self._chains[key] = [c for c in chain if c[2] is not callback]

    def has(self, name) -> bool:
        return bool(self._chains.get(_normalize(name)))

    def apply(self, name, value, *args):
        for _, _, callback in self._chains.get(_normalize(name), list()):
            value = callback(value, *args)
        return value

    @classmethod
    def default(cls):
        '''Returns a registry with the built-in filters installed.'''
        registry = cls()
        registry.add('html_escape', html_escape)
        return registry


def get_filters() -> FilterRegistry:
    '''Returns the filter registry of the current application.'''
    return current_app.extensions['filters']
