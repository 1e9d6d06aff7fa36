'''Bootstrap resources. Each resource builds one shared service (config,
logger, authentication, database, session) the first time it is asked for,
and the result is kept for the lifetime of the application.
'''

# Dependencies
# ============
# Standard
# --------
import configparser
from datetime import timedelta
import hashlib
import logging
import os
import typing as t

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import Flask, current_app
# See http://tinydb.readthedocs.io/
from tinydb import TinyDB

# Local
# -----
from .db_utils import JSONStorageWithGit

placeholder_host = 'XXXXXXX'


class ConfigurationError(Exception):
    '''Raised when the application cannot start because its configuration is
    missing or incomplete.'''


class Database(object):
    '''Connection settings for the main database. The data itself lives in a
    TinyDB JSON file named after the database; every table name is prefixed
    with the configured table prefix.
    '''

    def __init__(self, path: str, params: t.Mapping[str, t.Any],
                 prefix: str = '', committer: str = None):
        self.path = path
        self.params = dict(params)
        self.prefix = prefix or ''
        self.committer = committer
        self.logger = None

    def __repr__(self):
        return (f"<Database {self.params.get('dbname')!r} at "
                f"{self.params.get('host')!r}>")

    def connect(self) -> TinyDB:
        kwargs = dict()
        if self.committer:
            kwargs['committer'] = self.committer
        return TinyDB(
            self.path,
            storage=JSONStorageWithGit,
            create_dirs=True,
            indent=1,
            ensure_ascii=False,
            **kwargs)

    def table_name(self, name: str) -> str:
        if self.logger is not None:
            self.logger.debug("Database %s: table %s%s",
                              self.params.get('dbname'), self.prefix, name)
        return f"{self.prefix}{name}"


class Resource(object):
    '''Base class for bootstrap resources. Subclasses set `name` and
    implement `init`, whose return value becomes the resource.'''
    name = None

    def __init__(self, bootstrap: 'Bootstrap', **options):
        self.bootstrap = bootstrap
        self.options = options

    @property
    def app(self) -> Flask:
        return self.bootstrap.app

    def init(self):  # pragma: no cover
        raise NotImplementedError


class ConfigResource(Resource):
    name = 'config'

    def init(self):
        return self.app.config


class LoggerResource(Resource):
    name = 'logger'

    def init(self):
        config = self.bootstrap.bootstrap('config')
        level = config.get('LOG_LEVEL')
        if level:
            if isinstance(level, str):
                level = logging.getLevelName(level.upper())
            self.app.logger.setLevel(level)
        return self.app.logger


class AuthResource(Resource):
    '''Returns the shared login manager, attached to the application.'''
    name = 'auth'

    def init(self):
        from .auth import lm
        lm.init_app(self.app)
        return lm


class DbResource(Resource):
    name = 'db'

    def init(self) -> Database:
        config = self.bootstrap.bootstrap('config')
        db_file = config.get('DB_INI_PATH')

        if not db_file or not os.path.isfile(db_file):
            raise ConfigurationError(
                'Your database configuration file is missing.')

        if not os.access(db_file, os.R_OK):
            raise ConfigurationError(
                'Your database configuration file cannot be read by the'
                ' application.')

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(db_file, encoding='utf8')
        except configparser.Error as e:
            raise ConfigurationError(
                'Your database configuration file could not be parsed.'
            ) from e
        db_ini = (parser['database'] if parser.has_section('database')
                  else dict())

        host = db_ini.get('host', '').strip().strip('"')
        if not host or host == placeholder_host:
            raise ConfigurationError(
                'Your database configuration file has not been set up'
                ' properly. Please edit the configuration and reload this'
                ' page.')

        def value(key):
            return db_ini.get(key, '').strip().strip('"')

        params = {
            'host': host,
            'username': value('username'),
            'password': value('password'),
            'dbname': value('name') or 'archive',
        }
        if value('port'):
            try:
                params['port'] = int(value('port'))
            except ValueError as e:
                raise ConfigurationError(
                    f"Database port must be a number, not {value('port')}."
                ) from e

        db = Database(
            os.path.join(config['DATA_DIR'], f"{params['dbname']}.json"),
            params,
            prefix=value('prefix'),
            committer=config.get('GIT_COMMITTER'))

        if config.get('LOG_SQL'):
            db.logger = self.bootstrap.bootstrap('logger')
        return db


class SessionResource(Resource):
    '''Applies session settings. If no session name is configured, one is
    derived from the base directory so that installations sharing a host do
    not share cookies.'''
    name = 'session'
    key_map = {
        'path': 'SESSION_COOKIE_PATH',
        'domain': 'SESSION_COOKIE_DOMAIN',
        'secure': 'SESSION_COOKIE_SECURE',
        'httponly': 'SESSION_COOKIE_HTTPONLY',
        'samesite': 'SESSION_COOKIE_SAMESITE',
    }

    def init(self) -> t.Dict[str, t.Any]:
        config = self.bootstrap.bootstrap('config')
        session_config = dict(config.get('SESSION') or dict())
        if not session_config.get('name'):
            session_config['name'] = self.build_session_name(
                config.get('BASE_DIR') or os.path.dirname(self.app.root_path))

        config['SESSION_COOKIE_NAME'] = session_config['name']
        for key, flask_key in self.key_map.items():
            if key in session_config:
                config[flask_key] = session_config[key]
        if 'lifetime' in session_config:
            config['PERMANENT_SESSION_LIFETIME'] = timedelta(
                seconds=int(session_config['lifetime']))
        return session_config

    @staticmethod
    def build_session_name(base_dir: str) -> str:
        return hashlib.md5(base_dir.encode('utf8')).hexdigest()


class Bootstrap(object):
    '''Container for the resources of one application.'''

    def __init__(self, app: Flask):
        self.app = app
        self._classes = dict()
        self._options = dict()
        self._container = dict()
        app.extensions['bootstrap'] = self

    def register(self, resource_class: t.Type[Resource], **options):
        self._classes[resource_class.name] = resource_class
        self._options[resource_class.name] = options

    def bootstrap(self, name: str):
        if name not in self._container:
            resource_class = self._classes.get(name)
            if resource_class is None:
                raise KeyError(f"No such resource: {name}.")
            resource = resource_class(self, **self._options[name])
            self._container[name] = resource.init()
        return self._container[name]

    def get_resource(self, name: str):
        return self.bootstrap(name)

    def has_resource(self, name: str) -> bool:
        return name in self._container


def get_bootstrap() -> Bootstrap:
    return current_app.extensions['bootstrap']
