# Dependencies
# ============
# Standard
# --------
import typing as t

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import has_request_context, request
from markupsafe import Markup, escape
# See https://wtforms.readthedocs.io/
from wtforms.widgets import html_params

# Local
# -----
from .element_kinds import parse_posted_value, render_input
from .filters import FilterRegistry, get_filters
from .records import Element, ElementText, ElementTextMixin
from .utils import join_markup, name_to_id, parse_nested_form


class ElementForm(object):
    '''Renders every value of one element of a record as a group of form
    inputs. If the current request posted values for the element (e.g. the
    form failed validation), those are shown instead of the stored ones.
    '''

    def __init__(self, element: Element, record: ElementTextMixin,
                 formdata: t.Mapping = None,
                 errors: t.Mapping[str, t.List[str]] = None,
                 filters: FilterRegistry = None):
        if not isinstance(record, ElementTextMixin):
            raise TypeError(
                f"{type(record).__name__} records do not have element texts.")
        record.load_elements_and_texts()
        self.element = element
        self.record = record
        self.errors = errors or dict()
        self.filters = filters if filters is not None else get_filters()
        if formdata is None and has_request_context() \
                and request.method == 'POST':
            formdata = request.form
        self.posted = dict()
        self.add_requested = False
        self.removed_index = None
        if formdata:
            self.add_requested = f'add_element_{element.doc_id}' in formdata
            prefix = f'remove_element_{element.doc_id}_'
            for key in formdata:
                if key.startswith(prefix) and key[len(prefix):].isdigit():
                    self.removed_index = int(key[len(prefix):])
                    break
            nested = parse_nested_form(formdata)
            elements = nested.get('Elements')
            if isinstance(elements, t.Mapping):
                slots = elements.get(str(element.doc_id))
                if isinstance(slots, t.Mapping):
                    self.posted = slots

    def __call__(self) -> Markup:
        return self.render()

    def __html__(self):
        return self.render()

    @property
    def element_id(self) -> int:
        return self.element.doc_id

    def get_element_texts(self) -> t.List[ElementText]:
        return self.record.get_texts_by_element(self.element)

    def get_element_text(self, index: int) -> t.Optional[ElementText]:
        texts = self.get_element_texts()
        if 0 <= index < len(texts):
            return texts[index]
        return None

    def get_field_count(self) -> int:
        '''How many input groups to show: one per stored value, or per posted
        value when more were submitted, and always at least one. Pressing the
        add button without scripts adds an empty group; pressing a remove
        button drops one.'''
        posted = [int(k) + 1 for k in self.posted if str(k).isdigit()]
        count = max([1, len(self.get_element_texts())] + posted)
        if self.add_requested:
            count += 1
        if self.removed_index is not None and self.removed_index < count:
            count = max(1, count - 1)
        return count

    def get_field_name_stem(self, index: int) -> str:
        return f"Elements[{self.element_id}][{index}]"

    def get_source_index(self, index: int) -> int:
        '''Maps a displayed group to the posted or stored slot it shows,
        skipping the slot whose remove button was pressed.'''
        if self.removed_index is not None and index >= self.removed_index:
            return index + 1
        return index

    def get_posted_slot(self, index: int) -> t.Optional[t.Mapping]:
        slot = self.posted.get(str(self.get_source_index(index)))
        if isinstance(slot, t.Mapping):
            return slot
        return None

    def get_value(self, index: int) -> str:
        slot = self.get_posted_slot(index)
        if slot is not None:
            return parse_posted_value(self.element.kind, slot)
        text = self.get_element_text(self.get_source_index(index))
        return text.text if text is not None else ''

    def get_html_flag(self, index: int) -> bool:
        slot = self.get_posted_slot(index)
        if slot is not None:
            flag = slot.get('html')
            return bool(flag) and flag != '0'
        text = self.get_element_text(self.get_source_index(index))
        return text.html if text is not None else False

    def render(self) -> Markup:
        return join_markup([
            '<div class="field">',
            self.render_label(),
            self.render_errors(),
            '<div class="inputs">',
            self.render_inputs(),
            '</div>',
            self.render_submit(
                f'add_element_{self.element_id}', 'Add Input', 'add-element'),
            self.render_description(),
            '</div>',
        ])

    def render_label(self) -> Markup:
        return Markup(f'<label>{escape(self.element.name)}</label>')

    def render_errors(self) -> Markup:
        messages = self.errors.get(self.element.name, list())
        return join_markup(
            Markup(f'<div class="error">{escape(m)}</div>') for m in messages)

    def render_description(self) -> Markup:
        return Markup(
            f'<p class="explanation">{escape(self.element.description)}</p>')

    def render_inputs(self) -> Markup:
        html = list()
        for i in range(self.get_field_count()):
            stem = self.get_field_name_stem(i)
            html.extend([
                '<div class="input-block">',
                '<div class="input">',
                render_input(
                    self.element.kind, stem, self.get_value(i),
                    record=self.record, element=self.element,
                    filters=self.filters),
                '</div>',
                '<div class="controls">',
                self.render_submit(
                    f'remove_element_{self.element_id}_{i}', 'Remove Input',
                    'remove-element'),
                '</div>',
                self.render_html_flag(stem, i),
                '</div>',
            ])
        return join_markup(html)

    def render_html_flag(self, stem: str, index: int) -> Markup:
        name = f'{stem}[html]'
        hidden = html_params(name=name, type='hidden', value='0')
        checkbox = html_params(
            checked=self.get_html_flag(index), id=name_to_id(name),
            name=name, type='checkbox', value='1')
        return Markup(
            f'<label class="use-html">Use HTML '
            f'<input {hidden}><input {checkbox}></label>')

    @staticmethod
    def render_submit(name: str, label: str, css_class: str) -> Markup:
        params = html_params(
            class_=css_class, name=name, type='submit', value=label)
        return Markup(f'<input {params}>')


def element_form(element: Element, record: ElementTextMixin,
                 formdata: t.Mapping = None,
                 errors: t.Mapping[str, t.List[str]] = None,
                 filters: FilterRegistry = None) -> Markup:
    '''Returns the edit markup for all values of element on record.'''
    return ElementForm(element, record, formdata, errors, filters).render()
