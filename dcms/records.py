# Dependencies
# ============
# Standard
# --------
from datetime import datetime, timezone
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

# Non-standard
# ------------
# See https://github.com/eugene-eeo/tinyrecord
from tinyrecord import transaction
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import g
# See http://tinydb.readthedocs.io/
from tinydb import TinyDB, Query
from tinydb.database import Document
from tinydb.operations import delete

# Local
# -----
from .resources import Database, get_bootstrap

other_fields = (
    'id',
    'featured',
    'public',
    'item type name',
    'date added',
    'collection name',
)


class RecordLockedError(Exception):
    '''Raised when trying to save a record that was detached for display.'''


# Database wrapper classes
# ========================
class Record(Document):
    '''Abstract class with common methods for the helper classes
    for different types of record.'''
    table = None

    @classmethod
    def get_db(cls) -> TinyDB:
        return get_data_db()

    @classmethod
    def get_table(cls):
        return cls.get_db().table(get_database().table_name(cls.table))

    @classmethod
    def load(cls, doc_id: int):
        '''Returns an instance of the class, either blank or the existing
        record with the given doc_id.
        '''
        doc = cls.get_table().get(doc_id=doc_id) if doc_id else None
        if doc is not None:
            return cls(value=doc, doc_id=doc.doc_id)
        return cls(value=dict(), doc_id=0)

    @classmethod
    def all(cls):
        '''Returns a list of all instances of the class from the database, in
        storage order.'''
        docs = cls.get_table().all()
        return [cls(value=doc, doc_id=doc.doc_id)
                for doc in sorted(docs, key=lambda k: k.doc_id)]

    @classmethod
    def search(cls, cond: Query):
        '''Performs a TinyDB search on the corresponding table and converts
        the results into instances of the class, in storage order.'''
        docs = cls.get_table().search(cond)
        return [cls(value=doc, doc_id=doc.doc_id)
                for doc in sorted(docs, key=lambda k: k.doc_id)]

    @classmethod
    def get_choices(cls):
        choices = [('', '')]
        for record in cls.all():
            choices.append((str(record.doc_id), record.get('name', '')))
        choices.sort(key=lambda k: k[1].lower())
        return choices

    @property
    def id(self) -> int:
        return self.doc_id

    @property
    def name(self) -> str:
        return self.get('name', '')

    def _save(self, value: Mapping) -> str:
        '''Saves record to database. Keys missing from value are removed from
        an existing record. Returns error message if a problem arises.'''
        tb = self.get_table()
        if self.doc_id:
            with transaction(tb) as t:
                for key in (k for k in self if k not in value):
                    t.update(delete(key), doc_ids=[self.doc_id])
                t.update(dict(value), doc_ids=[self.doc_id])
        else:
            self.doc_id = tb.insert(dict(value))
        self.clear()
        self.update(value)

        return ''

    def remove(self):
        if self.doc_id:
            self.get_table().remove(doc_ids=[self.doc_id])
            self.doc_id = 0


class ElementSet(Record):
    table = 'element_sets'

    @classmethod
    def load_by_name(cls, name: str):
        results = cls.search(Query().name == name)
        if results:
            return results[0]
        return cls(value=dict(), doc_id=0)

    def applies_to(self, record_type: str) -> bool:
        return self.get('record_type') in (None, '', record_type)


class Element(Record):
    table = 'elements'

    def __init__(self, value: Mapping, doc_id: int):
        super().__init__(value, doc_id)
        self._set_name = None

    @classmethod
    def for_record_type(cls, record_type: str) -> List['Element']:
        '''Returns every element usable by the given type of record, ordered
        by element set and then by the order within the set.'''
        sets = [s for s in ElementSet.all() if s.applies_to(record_type)]
        set_order = {s.doc_id: i for i, s in enumerate(sets)}
        set_names = {s.doc_id: s.name for s in sets}
        elements = list()
        for element in cls.all():
            set_id = element.get('element_set_id')
            if set_id not in set_order:
                continue
            element._set_name = set_names[set_id]
            elements.append(element)
        elements.sort(key=lambda k: (
            set_order[k['element_set_id']], k.get('order', 0), k.doc_id))
        return elements

    @property
    def description(self) -> str:
        return self.get('description', '')

    @property
    def kind(self) -> str:
        return self.get('data_type_name', '')

    @property
    def set_name(self) -> Optional[str]:
        if self._set_name is None and self.get('element_set_id'):
            self._set_name = ElementSet.load(self['element_set_id']).name
        return self._set_name


class ElementText(Record):
    '''One stored value of an element for a record. Copies made with
    `detach` are locked and can be changed freely in memory.'''
    table = 'element_texts'

    def __init__(self, value: Mapping = None, doc_id: int = 0,
                 locked: bool = False):
        super().__init__(value or dict(), doc_id)
        self.locked = locked

    @property
    def text(self) -> str:
        return self.get('text', '')

    @text.setter
    def text(self, value: str):
        self['text'] = value

    @property
    def html(self) -> bool:
        return bool(self.get('html', False))

    def detach(self) -> 'ElementText':
        return ElementText(dict(self), self.doc_id, locked=True)

    def _save(self, value: Mapping) -> str:
        if self.locked:
            raise RecordLockedError(
                f"Element text {self.doc_id} is locked and cannot be saved.")
        return super()._save(value)


class ElementTextMixin(object):
    '''Gives a record type the ability to hold element texts. The record
    class name is used as the record type of its texts.'''

    @property
    def record_type(self) -> str:
        return type(self).__name__

    def load_elements_and_texts(self, reload: bool = False):
        if getattr(self, '_texts_by_element', None) is not None \
                and not reload:
            return
        self._elements = Element.for_record_type(self.record_type)
        self._texts_by_element = {e.doc_id: list() for e in self._elements}
        if not self.doc_id:
            return
        Q = Query()
        texts = ElementText.search(
            (Q.record_type == self.record_type)
            & (Q.record_id == self.doc_id))
        for text in texts:
            self._texts_by_element.setdefault(
                text.get('element_id'), list()).append(text)

    def get_elements(self) -> List[Element]:
        self.load_elements_and_texts()
        return list(self._elements)

    def get_texts_by_element(self, element: Element) -> List[ElementText]:
        self.load_elements_and_texts()
        return list(self._texts_by_element.get(element.doc_id, list()))

    def get_element_texts_by_element_name_and_set_name(
            self, name: str, set_name: str = None) -> List[ElementText]:
        texts = list()
        for element in self.get_elements():
            if element.name != name:
                continue
            if set_name is not None and element.set_name != set_name:
                continue
            texts.extend(self.get_texts_by_element(element))
        return texts

    def _posted_slots(self, posted: Mapping, element: Element):
        slots = posted.get(str(element.doc_id), posted.get(element.doc_id))
        if not isinstance(slots, Mapping):
            return list()
        keys = sorted(slots.keys(), key=lambda k: (
            0, int(k)) if str(k).isdigit() else (1, str(k)))
        return [slots[k] for k in keys if isinstance(slots[k], Mapping)]

    def validate_element_texts(self, posted: Mapping) -> Dict[str, List[str]]:
        '''Checks posted element values against the kind of each element.
        Returns error messages keyed by element name.'''
        from .element_kinds import get_kind, parse_posted_value
        errors = dict()
        for element in self.get_elements():
            for slot in self._posted_slots(posted, element):
                text = parse_posted_value(element.kind, slot)
                if not text:
                    continue
                messages = get_kind(element.kind).validate(text)
                if messages:
                    errors.setdefault(element.name, list()).extend(messages)
        return errors

    def save_element_texts(self, posted: Mapping) -> str:
        '''Replaces the stored texts of every posted element with the
        non-empty posted values, in submitted order.'''
        from .element_kinds import parse_posted_value
        if not self.doc_id:
            return 'Record must be saved before its element texts.'
        tb = ElementText.get_table()
        Q = Query()
        with transaction(tb) as t:
            for element in self.get_elements():
                if str(element.doc_id) not in posted \
                        and element.doc_id not in posted:
                    continue
                for text in self.get_texts_by_element(element):
                    t.remove(doc_ids=[text.doc_id])
                for slot in self._posted_slots(posted, element):
                    text = parse_posted_value(element.kind, slot)
                    if not text:
                        continue
                    t.insert({
                        'record_type': self.record_type,
                        'record_id': self.doc_id,
                        'element_id': element.doc_id,
                        'text': text,
                        'html': bool(slot.get('html'))
                        and slot.get('html') != '0',
                    })
        self.load_elements_and_texts(reload=True)
        return ''


class ItemType(Record):
    table = 'item_types'


class Collection(Record):
    table = 'collections'


class File(Record):
    table = 'files'

    @property
    def original_filename(self) -> str:
        return self.get('original_filename', '')


class Item(ElementTextMixin, Record):
    table = 'items'

    def __init__(self, value: Mapping, doc_id: int):
        super().__init__(value, doc_id)
        self._texts_by_element = None
        self._elements = None

    @property
    def collection(self) -> Optional[Collection]:
        if self.get('collection_id'):
            collection = Collection.load(self['collection_id'])
            if collection.doc_id:
                return collection
        return None

    @property
    def files(self) -> List[File]:
        if not self.doc_id:
            return list()
        return File.search(Query().item_id == self.doc_id)

    @property
    def item_type(self) -> Optional[ItemType]:
        if self.get('item_type_id'):
            item_type = ItemType.load(self['item_type_id'])
            if item_type.doc_id:
                return item_type
        return None

    @staticmethod
    def has_other_field(field: str) -> bool:
        '''Whether field names a built-in attribute rather than an
        element.'''
        return field.lower() in other_fields

    def get_other_field(self, field: str) -> Any:
        field = field.lower()
        if field == 'id':
            return self.doc_id
        if field == 'featured':
            return bool(self.get('featured', False))
        if field == 'public':
            return bool(self.get('public', False))
        if field == 'item type name':
            item_type = self.item_type
            return item_type.name if item_type else None
        if field == 'date added':
            return self.get('added')
        if field == 'collection name':
            collection = self.collection
            return collection.name if collection else None
        return None

    def _save(self, value: Mapping) -> str:
        value = dict(value)
        if not value.get('added'):
            value['added'] = self.get('added') or datetime.now(
                timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        return super()._save(value)


# Utility functions
# =================
def get_database() -> Database:
    return get_bootstrap().get_resource('db')


def get_data_db() -> TinyDB:
    if 'data_db' not in g:
        g.data_db = get_database().connect()

    return g.data_db


def close_data_db(e=None):
    data_db = g.pop('data_db', None)
    if data_db is not None:
        data_db.close()
