# Dependencies
# ============
# Standard
# --------
import typing as t

# Local
# -----
from .filters import FilterRegistry, get_filters
from .records import ElementText, ElementTextMixin, Item
from .utils import snippet


def get_options(options) -> t.Dict[str, t.Any]:
    '''Options can be given as an integer or a string instead of a
    dictionary: an integer is shorthand for `{'index': n}` and a string for
    `{'delimiter': s}`.
    '''
    if options is None:
        return dict()
    if isinstance(options, int) and not isinstance(options, bool):
        return {'index': options}
    if isinstance(options, str):
        return {'delimiter': options}
    return dict(options)


def get_element_text(record: Item, field: str, options: t.Mapping):
    '''Returns either the value of a built-in field, or a list of detached
    copies of the stored texts of the named element.'''
    if isinstance(record, Item) and record.has_other_field(field):
        return record.get_other_field(field)
    if not isinstance(record, ElementTextMixin):
        raise TypeError(
            f"{type(record).__name__} records do not have element texts.")
    texts = record.get_element_texts_by_element_name_and_set_name(
        field, options.get('element_set'))
    return [text.detach() for text in texts]


def filter_element_text(text, record, field: str, options: t.Mapping,
                        filters: FilterRegistry):
    filter_name = ['Display', 'Item', field]
    if options.get('element_set') is not None:
        filter_name.append(str(options['element_set']))
    if not isinstance(text, list):
        return filters.apply(filter_name, text, record, None)

    # Give filters the chance to say something about a missing value.
    if not text:
        text.append(ElementText(locked=True))
    if not isinstance(text[0], ElementText):
        raise TypeError(
            'Display filters need element text records, not '
            f'{type(text[0]).__name__}.')
    for element_text in text:
        element_text.text = filters.apply(
            filter_name, element_text.text, record, element_text)
    return text


def format_substring(text, length: int):
    if isinstance(text, bool):
        raise TypeError('Cannot make a text snippet of a bool.')
    if text is None or isinstance(text, int):
        return text
    if isinstance(text, str):
        return snippet(text, 0, length)
    if isinstance(text, list):
        for element_text in text:
            element_text.text = snippet(element_text.text, 0, length)
        return text
    raise TypeError(
        f'Cannot make a text snippet of a {type(text).__name__}.')


def escape_for_html(text, filters: FilterRegistry):
    '''Strings (such as the item type name) are always escaped; element
    texts only when they are not flagged as HTML.'''
    if isinstance(text, str):
        return filters.apply('html_escape', text)
    if isinstance(text, list):
        for element_text in text:
            if not element_text.html:
                element_text.text = filters.apply(
                    'html_escape', element_text.text)
    return text


def item_metadata(record: Item, field: str, options=None,
                  filters: FilterRegistry = None):
    '''Retrieves the value(s) of a field of an item, ready for display.

    Arguments:
        record (Item): Item to get the values from.
        field (str): Name of an element, or of a built-in field (`id`,
            `featured`, `public`, `item type name`, `date added`,
            `collection name`).
        options (dict|int|str): Formatting options:
            `delimiter`: join all values into one string with this;
            `index`: return only the value at this position;
            `no_filter`: do not run the display filters;
            `snippet`: trim each value to this many characters;
            `element_set`: only use the element from this set;
            `all`: return the list of all values.
            Flags count as set when present with any value but None.
        filters (FilterRegistry): Registry to use instead of the
            application's.

    Returns:
        str, list or None. A built-in field returns its own value.
    '''
    options = get_options(options)
    if filters is None:
        filters = get_filters()

    text = get_element_text(record, field, options)

    if options.get('no_filter') is None:
        text = filter_element_text(text, record, field, options, filters)

    # Must happen before escaping, so no entity is ever cut in half.
    snippet_length = int(options.get('snippet') or 0)
    if snippet_length > 0:
        text = format_substring(text, snippet_length)

    text = escape_for_html(text, filters)

    if isinstance(text, list):
        text = [v.text if isinstance(v, ElementText) else v for v in text]

    if options.get('delimiter') is not None:
        values = text if isinstance(text, list) else [text]
        return str(options['delimiter']).join(
            '' if v is None else str(v) for v in values)
    if options.get('index') is not None:
        values = text if isinstance(text, list) else [text]
        index = int(options['index'])
        if 0 <= index < len(values):
            return values[index]
        return None
    if options.get('all') is not None:
        return text
    if isinstance(text, list):
        return text[0] if text else None
    return text
