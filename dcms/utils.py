# Dependencies
# ============
# Standard
# --------
import os
import re
import typing as t
import unicodedata

# Non-standard
# ------------
from markupsafe import Markup

nested_key = re.compile(r'\[([^\[\]]*)\]')


# General data handling
# =====================
class Pluralizer:
    """Class for pluralizing nouns. Example uses:

        '{:N item/s}'.format(Pluralizer(0))
        '{:N error/s}'.format(Pluralizer(1))
        '{:N sheep}'.format(Pluralizer(2))

    From http://stackoverflow.com/a/27642538
    """

    def __init__(self, value: int):
        self.value = value

    def __format__(self, formatter: str) -> str:
        formatter = formatter.replace("N", str(self.value))
        start, _, suffixes = formatter.partition("/")
        singular, _, plural = suffixes.rpartition("/")

        return "{}{}".format(start, singular if self.value == 1 else plural)


def parse_nested_form(formdata: t.Mapping) -> t.Dict[str, t.Any]:
    """Turns flat form keys such as `Elements[3][0][text]` into nested
    dictionaries, so the example becomes
    `{'Elements': {'3': {'0': {'text': ...}}}}`. Keys without brackets are
    kept as they are. Where a key is repeated, the last value wins.
    """
    nested = dict()
    for key in formdata.keys():
        if hasattr(formdata, 'getlist'):
            values = formdata.getlist(key)
            value = values[-1] if values else ''
        else:
            value = formdata[key]
        head, bracket, _ = key.partition('[')
        if not bracket:
            nested[key] = value
            continue
        parts = [head] + nested_key.findall(key[len(head):])
        node = nested
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = dict()
                node[part] = child
            node = child
        node[parts[-1]] = value
    return nested


def name_to_id(name: str) -> str:
    """Derives an HTML id from a nested input name, so `Elements[3][0][text]`
    becomes `Elements-3-0-text`."""
    return re.sub(r'[\[\]]+', '-', name).strip('-')


# Text formatting
# ===============
def strip_formatting(text: str) -> str:
    '''Removes markup tags from text, leaving their contents.'''
    return re.sub(r'<[^>]*>', '', text)


def snippet(text: str, start: int, end: int, append: str = '…') -> str:
    '''Returns the portion of text between start and end with tags stripped.
    If the text had to be cut, the last partial word is removed and `append`
    is added, so words are never split.
    '''
    text = strip_formatting(text)
    length = len(text)
    start_pos = 0 if start > length else start
    end_pos = length if (end >= length or end < start_pos) else end
    cut = text[start_pos:end_pos]
    if end_pos < length:
        if not text[end_pos].isspace():
            cut = re.sub(r'\s\S+$', '', cut)
        cut = cut.rstrip() + append
    return cut


# HTML assembly
# =============
def join_markup(fragments: t.Iterable[str]) -> Markup:
    '''Joins already safe HTML fragments.'''
    return Markup('').join(Markup(f) for f in fragments)


# Utilities used in data
# ======================
def to_file_slug(filename: str, exists: t.Callable[[str], bool]) -> str:
    """Transforms filename into a safe name for the archive directory. The
    callback is used to ensure that the returned name is not already taken.
    """
    stem, ext = os.path.splitext(os.path.basename(filename))
    # Put to lower case, turn spaces to hyphens
    slug = stem.strip().lower().replace(" ", "-")
    # Fixes for problem entries
    slug = unicodedata.normalize("NFD", slug)
    slug = slug.encode("ascii", "ignore")
    slug = slug.decode("utf-8")
    # Strip out non-alphanumeric ASCII characters
    slug = re.sub(r"[^-A-Za-z0-9_.]+", "", slug)
    # Remove duplicate hyphens
    slug = re.sub(r"-+", "-", slug)
    # Truncate
    slug = slug[:71] or "file"
    ext = re.sub(r"[^A-Za-z0-9.]+", "", ext.lower())

    # Ensure uniqueness within directory
    i = ""
    while exists(f"{slug}{i}{ext}"):
        if i == "":
            i = 1
        else:
            i += 1
    return f"{slug}{i}{ext}"
