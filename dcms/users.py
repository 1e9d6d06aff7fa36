# Dependencies
# ============
# Standard
# --------
from typing import Mapping, Optional

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import current_app, g
# See https://flask-login.readthedocs.io/
from flask_login import UserMixin
# See https://passlib.readthedocs.io/
from passlib.apps import custom_app_context as pwd_context
# See http://tinydb.readthedocs.io/
from tinydb import TinyDB, Query
from tinydb.database import Document
from tinydb.operations import delete
from tinyrecord import transaction

# Local
# -----
from .db_utils import JSONStorageWithGit


# User database
# =============
def get_user_db() -> TinyDB:
    '''Opens the account database once per application context.'''
    if 'user_db' not in g:
        g.user_db = TinyDB(
            current_app.config['USER_DATABASE_PATH'],
            storage=JSONStorageWithGit,
            create_dirs=True,
            indent=2,
            ensure_ascii=False)
    return g.user_db


def close_user_db(e=None):
    db = g.pop('user_db', None)
    if db is not None:
        db.close()


# Accounts
# ========
class User(UserMixin, Document):
    '''Archive account, stored as a document in the user database. Unsaved
    accounts have a `doc_id` of 0 and can never sign in.'''
    __hash__ = Document.__hash__
    table = '_default'

    @classmethod
    def _accounts(cls):
        return get_user_db().table(cls.table)

    @classmethod
    def _wrap(cls, doc) -> Optional['User']:
        if not doc:
            return None
        return cls(value=doc, doc_id=doc.doc_id)

    @classmethod
    def load(cls, doc_id: int):
        return cls._wrap(cls._accounts().get(doc_id=doc_id))

    @classmethod
    def load_by_userid(cls, userid: str):
        '''Looks up an account by sign-in name. An unknown name gives a blank,
        inactive account rather than None.'''
        found = cls._wrap(cls._accounts().get(Query().userid == userid))
        return found or cls(value=dict(), doc_id=0)

    @property
    def is_active(self):
        return bool(self.doc_id) and not self.get('blocked')

    def get_id(self):
        return str(self.doc_id)

    def _save(self, mapping: Mapping):
        '''Merges `mapping` into the stored account, or stores it as a new
        account. Keys set to None are deleted; absent keys are kept.'''
        accounts = self._accounts()
        kept = {k: v for k, v in mapping.items() if v is not None}
        dropped = [k for k, v in mapping.items() if v is None and k in self]
        if not self.doc_id:
            self.doc_id = accounts.insert(kept)
        else:
            with transaction(accounts) as t:
                for key in dropped:
                    t.update(delete(key), doc_ids=[self.doc_id])
                t.update(kept, doc_ids=[self.doc_id])
        for key in dropped:
            del self[key]
        self.update(kept)
        return ''

    def _store_hash(self, new_hash: str) -> bool:
        error = self._save({'password_hash': new_hash})
        if error:  # pragma: no cover
            current_app.logger.error(
                "Password hash for account %s not saved: %s.",
                self.get('userid'), error)
            return False
        return True

    def hash_password(self, password):
        return self._store_hash(pwd_context.hash(password))

    def verify_password(self, password):
        '''Checks `password`, upgrading the stored hash if passlib asks.'''
        stored = self.get('password_hash')
        if not stored:
            return False
        ok, upgraded = pwd_context.verify_and_update(password, stored)
        if upgraded and not self._store_hash(upgraded):
            return False
        return ok
