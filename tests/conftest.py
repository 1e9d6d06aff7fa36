import json
import os
import re
import tempfile

from passlib.apps import custom_app_context as pwd_context
import pytest

from dcms import create_app


class AuthActions(object):
    def __init__(self, client, page, user_db):
        self._client = client
        self._page = page
        self._user_db = user_db

    def login(self, userid=None, password=None):
        self._user_db.write_db()
        r = self._client.get('/login')
        csrf = self._page.get_csrf(r.get_data(as_text=True))
        return self._client.post(
            '/login',
            data={
                'csrf_token': csrf,
                'userid': userid or self._user_db.users1['userid'],
                'password': password or self._user_db.pwd1},
            follow_redirects=True)

    def logout(self):
        return self._client.get('/logout', follow_redirects=True)


class DataDBActions(object):
    prefix = 'dc_'
    tables = ["element_sets", "elements", "item_types", "collections",
              "items", "element_texts"]

    def __init__(self, app):
        self._app = app
        self.element_sets1 = {
            "name": "Dublin Core",
            "description": "The Dublin Core metadata element set."}
        self.element_sets2 = {
            "name": "Item Type Metadata",
            "description": "Elements specific to types of item.",
            "record_type": "Item"}
        self.element_sets3 = {
            "name": "Collection Notes",
            "description": "Only applies to collections.",
            "record_type": "Collection"}
        self.elements1 = {
            "name": "Title",
            "description": "A name given to the resource.",
            "data_type_name": "Text",
            "element_set_id": 1,
            "order": 1}
        self.elements2 = {
            "name": "Subject",
            "description": "The topic of the resource.",
            "data_type_name": "Tiny Text",
            "element_set_id": 1,
            "order": 2}
        self.elements3 = {
            "name": "Description",
            "description": "An account of the resource & its <contents>.",
            "data_type_name": "Text",
            "element_set_id": 1,
            "order": 3}
        self.elements4 = {
            "name": "Date",
            "description": "A point in time.",
            "data_type_name": "Date",
            "element_set_id": 1,
            "order": 4}
        self.elements5 = {
            "name": "Coverage",
            "description": "The temporal extent of the resource.",
            "data_type_name": "Date Range",
            "element_set_id": 1,
            "order": 5}
        self.elements6 = {
            "name": "Recorded",
            "description": "When the recording was made.",
            "data_type_name": "Date Time",
            "element_set_id": 2,
            "order": 1}
        self.elements7 = {
            "name": "Pages",
            "description": "Number of pages.",
            "data_type_name": "Integer",
            "element_set_id": 2,
            "order": 2}
        self.elements8 = {
            "name": "Title",
            "description": "Title given by the type of item.",
            "data_type_name": "Tiny Text",
            "element_set_id": 2,
            "order": 3}
        self.elements9 = {
            "name": "Curator",
            "description": "Only for collections.",
            "data_type_name": "Tiny Text",
            "element_set_id": 3,
            "order": 1}
        self.item_types1 = {
            "name": "Document",
            "description": "A written record."}
        self.collections1 = {
            "name": "Letters & Papers",
            "description": "Correspondence.",
            "public": True,
            "featured": False}
        self.items1 = {
            "public": True,
            "featured": False,
            "item_type_id": 1,
            "collection_id": 1,
            "added": "2020-01-01 10:00:00"}
        self.items2 = {
            "public": False,
            "featured": True,
            "added": "2020-02-01 12:30:00"}
        self.items3 = {
            "public": True,
            "featured": False,
            "added": "2020-03-01 09:15:00"}
        self.element_texts1 = {
            "record_type": "Item", "record_id": 1, "element_id": 1,
            "text": "A", "html": False}
        self.element_texts2 = {
            "record_type": "Item", "record_id": 1, "element_id": 3,
            "text": "<b>bold</b>", "html": False}
        self.element_texts3 = {
            "record_type": "Item", "record_id": 1, "element_id": 1,
            "text": "B", "html": False}
        self.element_texts4 = {
            "record_type": "Item", "record_id": 1, "element_id": 3,
            "text": "<b>trusted</b>", "html": True}
        self.element_texts5 = {
            "record_type": "Item", "record_id": 1, "element_id": 4,
            "text": "1999-12-31", "html": False}
        self.element_texts6 = {
            "record_type": "Item", "record_id": 1, "element_id": 5,
            "text": "1900-01-01 1950-12-31", "html": False}
        self.element_texts7 = {
            "record_type": "Item", "record_id": 1, "element_id": 2,
            "text": "Tom & Jerry forever", "html": False}
        self.element_texts8 = {
            "record_type": "Item", "record_id": 2, "element_id": 1,
            "text": "Second item", "html": False}
        self.element_texts9 = {
            "record_type": "Item", "record_id": 2, "element_id": 8,
            "text": "Alternative", "html": False}
        self.element_texts10 = {
            "record_type": "Item", "record_id": 2, "element_id": 6,
            "text": "2001-02-03 04:05:06", "html": False}
        self.element_texts11 = {
            "record_type": "Item", "record_id": 2, "element_id": 7,
            "text": "12", "html": False}
        self.element_texts12 = {
            "record_type": "Collection", "record_id": 1, "element_id": 9,
            "text": "Not an item value", "html": False}

    def rows(self, table: str) -> dict:
        '''Collects fixture rows `<table>1`, `<table>2`, ... into a TinyDB
        table mapping.'''
        found = dict()
        n = 1
        while hasattr(self, f'{table}{n}'):
            found[str(n)] = getattr(self, f'{table}{n}')
            n += 1
        return found

    def write_db(self):
        '''Writes main database file, replacing any fixture tables already
        in it.'''
        db_file = os.path.join(
            self._app.config['DATA_DIR'], 'archive_test.json')
        db = {"_default": {}}
        if os.path.isfile(db_file):
            with open(db_file) as f:
                db.update(json.load(f))
        for table in self.tables:
            db[self.prefix + table] = self.rows(table)

        os.makedirs(os.path.dirname(db_file), exist_ok=True)
        with open(db_file, 'w') as f:
            json.dump(db, f, indent=1, ensure_ascii=False)


class PageActions(object):
    csrf_pattern = re.compile(
        r'<input id="csrf_token" name="csrf_token" type="hidden"'
        r' value="([^"]+)">')

    def __init__(self):
        self.html = ''

    def read(self, html):
        '''Keeps page source for the checks below.'''
        self.html = html

    def get_csrf(self, html=None) -> str:
        '''Returns the CSRF token of the form on the page, if any.'''
        if html is not None:
            self.read(html)
        m = self.csrf_pattern.search(self.html)
        return m.group(1) if m else None

    def assert_contains(self, substring, html=None):
        __tracebackhide__ = True
        if html is not None:
            self.read(html)
        if substring not in self.html:
            pytest.fail(f"Expected ‘{substring}’ in page:\n{self.html}")

    def assert_lacks(self, substring, html=None):
        __tracebackhide__ = True
        if html is not None:
            self.read(html)
        if substring in self.html:
            pytest.fail(f"Unexpected ‘{substring}’ in page:\n{self.html}")


class UserDBActions(object):
    def __init__(self, app):
        self._app = app
        self.pwd1 = 'Not a great password'
        self.users1 = {
            'userid': 'editor',
            'name': 'Test Editor',
            'email': 'editor@localhost.test',
            'password_hash': pwd_context.hash(self.pwd1),
        }
        self.pwd2 = 'An even worse password'
        self.users2 = {
            'userid': 'compromised',
            'name': 'Blocked User',
            'email': 'blocked@localhost.test',
            'password_hash': pwd_context.hash(self.pwd2),
            'blocked': True,
        }

    def write_db(self):
        '''Writes user database file.'''
        db = {"_default": {
            "1": self.users1,
            "2": self.users2,
        }}
        db_file = self._app.config['USER_DATABASE_PATH']
        os.makedirs(os.path.dirname(db_file), exist_ok=True)
        with open(db_file, 'w') as f:
            json.dump(db, f, indent=2, ensure_ascii=False)


def write_db_ini(path, host='localhost', port='3306', extra=''):
    with open(path, 'w') as f:
        f.write(
            "[database]\n"
            f"host = {host}\n"
            "username = archivist\n"
            "password = secret\n"
            "name = archive_test\n"
            f"prefix = {DataDBActions.prefix}\n"
            + (f"port = {port}\n" if port else '')
            + extra)


@pytest.fixture
def app():
    with tempfile.TemporaryDirectory() as inst_path:
        db_ini = os.path.join(inst_path, 'db.ini')
        write_db_ini(db_ini)
        app = create_app({
            'TESTING': True,
            'DB_INI_PATH': db_ini,
            'DATA_DIR': os.path.join(inst_path, 'data'),
            'ARCHIVE_DIR': os.path.join(inst_path, 'archive'),
            'USER_DATABASE_PATH': os.path.join(inst_path, 'users', 'db.json'),
            'BASE_DIR': inst_path,
        })

        yield app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def auth(client, page, user_db):
    return AuthActions(client, page, user_db)


@pytest.fixture
def data_db(app):
    data_db = DataDBActions(app)
    data_db.write_db()
    return data_db


@pytest.fixture
def user_db(app):
    return UserDBActions(app)


@pytest.fixture
def page():
    return PageActions()
