'''Element kinds decide how the value of an element is edited. Each kind
renders the form inputs for one value and turns the posted sub-fields back
into the flat text that is stored, e.g. `1999-12-31` for a date.
'''

# Dependencies
# ============
# Standard
# --------
import re
import typing as t

# Non-standard
# ------------
from markupsafe import Markup, escape
# See https://wtforms.readthedocs.io/
from wtforms.widgets import html_params

# Local
# -----
from .filters import FilterRegistry, get_filters
from .utils import join_markup, name_to_id

w3c_date = re.compile(
    r'^(?P<year>\d{4})'
    r'(?P<month>-0[1-9]|-1[0-2])?'
    r'(?(month)(?P<day>-0[1-9]|-[1-2][0-9]|-3[0-1])?)$')
w3c_time = re.compile(
    r'^(?P<hour>[01][0-9]|2[0-3])'
    r'(?P<minute>:[0-5][0-9])?'
    r'(?(minute)(?P<second>:[0-5][0-9])?)$')

ELEMENT_KINDS: t.Dict[str, 'ElementKind'] = dict()


class UnknownElementKindError(Exception):
    '''Raised when an element has a kind with no registered renderer.'''

    def __init__(self, kind: str, element_name: str = None):
        self.kind = kind
        self.element_name = element_name
        if element_name:
            message = (f'Cannot display a form input for "{element_name}":'
                       f' unknown element kind "{kind}".')
        else:
            message = f'Unknown element kind "{kind}".'
        super().__init__(message)


# Widgets
# =======
def text_input(name: str, value: str, **kwargs) -> Markup:
    kwargs.setdefault('class_', 'textinput')
    params = html_params(
        id=name_to_id(name), name=name, type='text',
        value=value or '', **kwargs)
    return Markup(f'<input {params}>')


def textarea(name: str, value: str, **kwargs) -> Markup:
    kwargs.setdefault('class_', 'textinput')
    params = html_params(id=name_to_id(name), name=name, **kwargs)
    return Markup(f'<textarea {params}>{escape(value or "")}</textarea>')


def _pad(parts: t.List[str], size: int) -> t.List[str]:
    return (parts + [''] * size)[:size]


def _join_parts(parts: t.List[str], separator: str) -> str:
    parts = [p.strip() for p in parts]
    while parts and not parts[-1]:
        parts.pop()
    return separator.join(parts)


# Registry
# ========
def register_kind(cls):
    '''Class decorator adding a kind to the registry under its name.'''
    ELEMENT_KINDS[cls.name] = cls()
    return cls


def get_kind(name: str) -> 'ElementKind':
    try:
        return ELEMENT_KINDS[name]
    except KeyError:
        raise UnknownElementKindError(name) from None


class ElementKind(object):
    name = None

    def render(self, name_stem: str, value: str,
               options: t.Mapping = None) -> Markup:  # pragma: no cover
        raise NotImplementedError

    def parse(self, posted: t.Mapping) -> str:
        text = posted.get('text', '')
        return text if isinstance(text, str) else ''

    def validate(self, text: str) -> t.List[str]:
        return list()


@register_kind
class TinyText(ElementKind):
    name = 'Tiny Text'

    def render(self, name_stem, value, options=None):
        return text_input(f'{name_stem}[text]', value, size=50)


@register_kind
class Text(ElementKind):
    name = 'Text'

    def render(self, name_stem, value, options=None):
        return textarea(f'{name_stem}[text]', value, rows=15, cols=50)


@register_kind
class Integer(ElementKind):
    name = 'Integer'

    def render(self, name_stem, value, options=None):
        return text_input(f'{name_stem}[text]', value, size=40)

    def validate(self, text):
        if re.match(r'^[-+]?\d+$', text.strip()):
            return list()
        return ['Please provide a whole number.']


@register_kind
class Date(ElementKind):
    '''yyyy-mm-dd'''
    name = 'Date'
    fields = [('year', 4), ('month', 2), ('day', 2)]

    def render(self, name_stem, value, options=None):
        parts = _pad((value or '').split('-'), 3)
        html = ['<div class="dateinput">']
        for (field, size), part in zip(self.fields, parts):
            html.append(text_input(f'{name_stem}[{field}]', part, size=size))
        html.append('</div>')
        return join_markup(html)

    def parse(self, posted):
        return _join_parts(
            [posted.get(field, '') for field, _ in self.fields], '-')

    def validate(self, text):
        if w3c_date.match(text):
            return list()
        return ['Please provide the date in yyyy-mm-dd format.']


@register_kind
class DateTime(ElementKind):
    '''yyyy-mm-dd hh:mm:ss'''
    name = 'Date Time'
    time_fields = [('hour', 2), ('minute', 2), ('second', 2)]

    def render(self, name_stem, value, options=None):
        date, _, time = (value or '').partition(' ')
        year, month, day = _pad(date.split('-'), 3)
        parts = [year, month, day] + _pad(time.split(':'), 3)
        html = ['<div class="dateinput">']
        for (field, size), part in zip(
                Date.fields + self.time_fields, parts):
            html.append(text_input(f'{name_stem}[{field}]', part, size=size))
        html.append('</div>')
        return join_markup(html)

    def parse(self, posted):
        date = ELEMENT_KINDS[Date.name].parse(posted)
        time = _join_parts(
            [posted.get(field, '') for field, _ in self.time_fields], ':')
        if time:
            return f'{date} {time}'
        return date

    def validate(self, text):
        date, _, time = text.partition(' ')
        if w3c_date.match(date) and (not time or w3c_time.match(time)):
            return list()
        return ['Please provide the date and time in yyyy-mm-dd hh:mm:ss'
                ' format.']


@register_kind
class DateRange(ElementKind):
    '''Two dates separated by a space.'''
    name = 'Date Range'

    def render(self, name_stem, value, options=None):
        start, _, end = (value or '').partition(' ')
        date = ELEMENT_KINDS[Date.name]
        return join_markup([
            '<div class="dates">',
            '<span>From</span>',
            date.render(f'{name_stem}[start]', start, options),
            '<span>To</span>',
            date.render(f'{name_stem}[end]', end, options),
            '</div>',
        ])

    def parse(self, posted):
        date = ELEMENT_KINDS[Date.name]
        dates = list()
        for key in ['start', 'end']:
            sub = posted.get(key)
            dates.append(date.parse(sub) if isinstance(sub, t.Mapping) else '')
        if not any(dates):
            return ''
        return ' '.join(dates)

    def validate(self, text):
        start, _, end = text.partition(' ')
        if not (w3c_date.match(start) and w3c_date.match(end)):
            return ['Please provide both dates in yyyy-mm-dd format.']
        if end < start:
            return ['End date is before start date.']
        return list()


# Entry points
# ============
def render_input(kind: str, name_stem: str, value: str,
                 options: t.Mapping = None, record=None, element=None,
                 filters: FilterRegistry = None) -> Markup:
    '''Returns the inputs for one value of an element. Plugins may supply
    the whole markup through the filter
    `('Form', <record class>, <element name>, <element set name>)`, in which
    case the kind is not consulted.
    '''
    if options is None:
        options = dict()
    if record is not None and element is not None:
        if filters is None:
            filters = get_filters()
        filter_name = ('Form', type(record).__name__, element.name,
                       element.set_name or '')
        html = filters.apply(filter_name, '', name_stem, value, options,
                             record, element)
        if html:
            return Markup(html)
    try:
        return get_kind(kind).render(name_stem, value, options)
    except UnknownElementKindError as e:
        if element is not None:
            raise UnknownElementKindError(kind, element.name) from e
        raise


def parse_posted_value(kind: str, posted: t.Mapping) -> str:
    '''Turns the posted sub-fields of one value back into its text.'''
    if not isinstance(posted, t.Mapping):
        return ''
    return get_kind(kind).parse(posted)
