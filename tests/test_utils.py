from markupsafe import Markup
from werkzeug.datastructures import MultiDict

from dcms.utils import (
    Pluralizer, join_markup, name_to_id, parse_nested_form, snippet,
    strip_formatting, to_file_slug
)


def test_pluralizer():
    msg = 'there {:/was an error/were N errors}'
    assert msg.format(Pluralizer(1)) == 'there was an error'
    assert msg.format(Pluralizer(3)) == 'there were 3 errors'
    assert '{:N item/s}'.format(Pluralizer(0)) == '0 items'


def test_parse_nested_form():
    formdata = MultiDict([
        ('csrf_token', 'abc'),
        ('Elements[3][0][text]', 'First'),
        ('Elements[3][1][text]', 'Second'),
        ('Elements[3][1][html]', '0'),
        ('Elements[3][1][html]', '1'),
        ('Elements[5][0][start][year]', '1900'),
        ('add_element_3', 'Add Input'),
    ])
    assert parse_nested_form(formdata) == {
        'csrf_token': 'abc',
        'Elements': {
            '3': {
                '0': {'text': 'First'},
                '1': {'text': 'Second', 'html': '1'},
            },
            '5': {'0': {'start': {'year': '1900'}}},
        },
        'add_element_3': 'Add Input',
    }
    assert parse_nested_form({'a[b]': 'c'}) == {'a': {'b': 'c'}}
    assert parse_nested_form({}) == {}


def test_name_to_id():
    assert name_to_id('Elements[3][0][text]') == 'Elements-3-0-text'
    assert name_to_id('title') == 'title'


def test_snippet():
    assert strip_formatting('<p>A <b>bold</b> move</p>') == 'A bold move'
    assert snippet('A <b>bold</b> move', 0, 100) == 'A bold move'
    assert snippet('Hello world', 0, 5) == 'Hello…'
    assert snippet('Hello world', 0, 7) == 'Hello…'
    assert snippet('Hello world', 0, 7, append='...') == 'Hello...'
    assert snippet('Hello world', 6, 100) == 'world'
    assert snippet('Supercalifragilistic', 0, 5) == 'Super…'


def test_join_markup():
    html = join_markup(['<div>', Markup('<b>x</b>'), '</div>'])
    assert isinstance(html, Markup)
    assert html == '<div><b>x</b></div>'
    assert join_markup([]) == ''


def test_to_file_slug():
    taken = {'report.pdf', 'report1.pdf'}
    assert to_file_slug('My Letter.PDF', lambda n: False) == 'my-letter.pdf'
    assert to_file_slug('/tmp/in/Report.pdf', taken.__contains__) \
        == 'report2.pdf'
    assert to_file_slug('Café menu.txt', lambda n: False) == 'cafe-menu.txt'
    assert to_file_slug('***', lambda n: False) == 'file'
    assert to_file_slug('README', lambda n: False) == 'readme'
