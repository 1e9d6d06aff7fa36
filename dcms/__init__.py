#!/usr/bin/env python3

# Dependencies
# ============
# Standard
# --------
import os
import typing as t

# Non-standard
# ------------
import click
from flask import Flask

# Local
# -----
from .element_form import element_form
from .filters import FilterRegistry
from .item_display import item_metadata
from .resources import (
    AuthResource, Bootstrap, ConfigResource, DbResource, LoggerResource,
    SessionResource
)
from .utils import snippet


def create_app(test_config: t.Mapping[str, t.Any] = None) -> Flask:
    """Factory for initialising the Flask application."""

    # Create the app:
    app = Flask(__name__, instance_relative_config=True)

    # Set default configuration:
    app.config.from_mapping(
        SECRET_KEY="Do not use this in production.",
        DB_INI_PATH=os.path.join(app.instance_path, "db.ini"),
        DATA_DIR=os.path.join(app.instance_path, "data"),
        ARCHIVE_DIR=os.path.join(app.instance_path, "archive"),
        USER_DATABASE_PATH=os.path.join(app.instance_path, "users", "db.json"),
        BASE_DIR=os.path.dirname(app.root_path),
        SESSION=dict(),
        GIT_COMMITTER="Archive <archive@localhost>",
        LOG_LEVEL="INFO",
        LOG_SQL=False,
        DEBUG=False,
        TESTING=False,
    )

    # Override these settings as appropriate:
    if test_config is None:
        # Load the instance config, if it exists:
        app.config.from_pyfile("config.py", silent=True)
    else:
        # Load the test configuration that was passed in:
        app.config.from_mapping(test_config)

    # Override with environment variable if set:
    app.config.from_envvar("DCMS_SETTINGS", silent=True)

    # Storage locations; failures surface later, when they are written to:
    for key in ["DATA_DIR", "ARCHIVE_DIR"]:
        try:
            os.makedirs(app.config[key], exist_ok=True)
        except OSError as e:
            app.logger.warning("Cannot create %s: %s", key, e)
    try:
        os.makedirs(os.path.dirname(app.config["USER_DATABASE_PATH"]),
                    exist_ok=True)
    except OSError as e:
        app.logger.warning("Cannot create user database directory: %s", e)

    # Template option settings:
    app.jinja_env.trim_blocks = True
    app.jinja_env.lstrip_blocks = True

    # Resources are initialised on first use; the database waits until a
    # request needs it.
    bootstrap = Bootstrap(app)
    for resource in [ConfigResource, LoggerResource, AuthResource,
                     DbResource, SessionResource]:
        bootstrap.register(resource)
    bootstrap.bootstrap('logger')
    bootstrap.bootstrap('session')
    bootstrap.bootstrap('auth')

    app.extensions['filters'] = FilterRegistry.default()

    from .records import close_data_db
    from .users import close_user_db

    app.teardown_appcontext(close_data_db)
    app.teardown_appcontext(close_user_db)

    # Dynamic pages:
    from . import auth

    app.register_blueprint(auth.bp)

    from . import items

    app.register_blueprint(items.bp)

    # Command line:
    @app.cli.command("ingest-files")
    @click.argument("item_id", type=int)
    @click.argument("paths", nargs=-1, required=True)
    @click.option("--rename", is_flag=True,
                  help="Move the files instead of copying them.")
    @click.option("--skip-invalid", is_flag=True,
                  help="Skip files that cannot be read instead of stopping.")
    def ingest_files(item_id, paths, rename, skip_invalid):
        """Copies local files into the archive and attaches them to an
        item."""
        from .ingest import FilesystemIngest, InvalidSourceError
        from .records import Item

        item = Item.load(item_id)
        if item.doc_id == 0:
            raise click.ClickException(f"No such item: {item_id}.")
        ingester = FilesystemIngest(ignore_invalid_files=skip_invalid)
        try:
            files = ingester.ingest(
                [{"source": p, "rename": rename} for p in paths], item=item)
        except InvalidSourceError as e:
            raise click.ClickException(str(e))
        for f in files:
            click.echo(f"{f.original_filename} -> {f['archive_filename']}")

    # Utility functions used in templates:
    @app.context_processor
    def utility_processor():
        return {
            "element_form": element_form,
            "item": item_metadata,
            "snippet": snippet,
        }

    return app
