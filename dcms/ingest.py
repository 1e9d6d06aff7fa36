'''Ingest of files into the archive directory. A source describes where
files come from; `FilesystemIngest` takes them from paths on the local
filesystem, copying them by default or moving them when asked to rename.
'''

# Dependencies
# ============
# Standard
# --------
from datetime import datetime, timezone
import mimetypes
import os
import shutil
from typing import Any, Dict, List, Mapping, Union

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import current_app

# Local
# -----
from .records import File, Item
from .utils import to_file_slug

FileInfo = Union[str, Mapping[str, Any]]


class InvalidSourceError(Exception):
    '''Raised when a file cannot be ingested from the given source. Nothing
    has been changed on the filesystem when this is raised.'''


class AbstractIngest(object):
    '''Base class for ingest sources. Subclasses implement `transfer` and
    `validate_source`, and may refine how file info is parsed.'''

    def __init__(self, archive_dir: str = None, ignore_invalid_files=False):
        if archive_dir is None:
            archive_dir = current_app.config['ARCHIVE_DIR']
        self.archive_dir = archive_dir
        self.ignore_invalid_files = ignore_invalid_files

    def parse_file_info(self, file_info) -> List[Dict[str, Any]]:
        '''Normalizes file info into a list of dictionaries, each with at
        least a `source` key. Accepts a path, a dictionary or a list of
        either.'''
        if isinstance(file_info, (str, os.PathLike)):
            file_info = [{'source': os.fspath(file_info)}]
        elif isinstance(file_info, Mapping):
            file_info = [file_info]
        info_list = list()
        for info in file_info:
            if isinstance(info, (str, os.PathLike)):
                info = {'source': os.fspath(info)}
            info = dict(info)
            if not info.get('source'):
                raise InvalidSourceError('File info must include a source.')
            info_list.append(info)
        return info_list

    def get_file_source(self, info: Mapping) -> str:
        return info['source']

    def get_original_filename(self, info: Mapping) -> str:
        return info.get('name') or ''

    def get_file_mime_type(self, info: Mapping) -> str:
        return 'application/octet-stream'

    @staticmethod
    def strip_charset(mime_type: str) -> str:
        return mime_type.split(';')[0].strip()

    def get_destination(self, info: Mapping) -> str:
        os.makedirs(self.archive_dir, exist_ok=True)
        filename = to_file_slug(
            self.get_original_filename(info),
            lambda name: os.path.exists(os.path.join(self.archive_dir, name)))
        return os.path.join(self.archive_dir, filename)

    def validate_source(self, source: str, info: Mapping):  # pragma: no cover
        raise NotImplementedError

    def transfer(self, source: str, destination: str,
                 info: Mapping):  # pragma: no cover
        raise NotImplementedError

    def ingest(self, file_info, item: Item = None) -> List[File]:
        '''Transfers every described file into the archive directory and
        records it. All sources are validated before anything is moved. An
        invalid source aborts the whole batch unless `ignore_invalid_files`
        is set, in which case it is logged and skipped.'''
        valid = list()
        for info in self.parse_file_info(file_info):
            source = self.get_file_source(info)
            try:
                self.validate_source(source, info)
            except InvalidSourceError as e:
                if not self.ignore_invalid_files:
                    raise
                current_app.logger.warning("Skipping file: %s", e)
                continue
            valid.append(info)

        files = list()
        for info in valid:
            source = self.get_file_source(info)
            mime_type = self.get_file_mime_type(info)
            destination = self.get_destination(info)
            self.transfer(source, destination, info)
            current_app.logger.info(
                "Ingested %s as %s.", source, os.path.basename(destination))
            record = File(value=dict(), doc_id=0)
            record._save({
                'item_id': item.doc_id if item is not None else None,
                'archive_filename': os.path.basename(destination),
                'original_filename': self.get_original_filename(info),
                'mime_type': mime_type,
                'size': os.path.getsize(destination),
                'added': datetime.now(timezone.utc).strftime(
                    '%Y-%m-%d %H:%M:%S'),
            })
            files.append(record)
        return files


class FilesystemIngest(AbstractIngest):
    '''Ingests files from the local filesystem.'''

    def parse_file_info(self, file_info) -> List[Dict[str, Any]]:
        '''In addition to the defaults, each entry may have a `rename` flag,
        false unless given, saying whether to move the file instead of
        copying it.'''
        info_list = super().parse_file_info(file_info)
        for info in info_list:
            info.setdefault('rename', False)
        return info_list

    def get_original_filename(self, info: Mapping) -> str:
        original = super().get_original_filename(info)
        if not original:
            original = os.path.basename(self.get_file_source(info))
        return original

    def get_file_mime_type(self, info: Mapping) -> str:
        mime_type, _ = mimetypes.guess_type(self.get_file_source(info))
        return self.strip_charset(mime_type or 'application/octet-stream')

    def validate_source(self, source: str, info: Mapping):
        if info.get('rename'):
            parent = os.path.dirname(os.path.abspath(source))
            if not (os.path.isdir(parent) and os.access(parent, os.W_OK)):
                raise InvalidSourceError(
                    "File's parent directory is not writable or does not"
                    f" exist: {source}")
            if not (os.path.isfile(source) and os.access(source, os.W_OK)):
                raise InvalidSourceError(
                    f"File is not writable or does not exist: {source}")
        else:
            if not (os.path.isfile(source) and os.access(source, os.R_OK)):
                raise InvalidSourceError(
                    f"File is not readable or does not exist: {source}")

    def transfer(self, source: str, destination: str, info: Mapping):
        '''Moves the file if `rename` is set, otherwise copies it.'''
        self.validate_source(source, info)
        if info.get('rename'):
            shutil.move(source, destination)
        else:
            shutil.copy2(source, destination)


def transfer(source: str, destination: str, rename: bool = False):
    '''Copies (or, with rename, moves) a single file after checking the
    source, raising InvalidSourceError before touching anything.'''
    FilesystemIngest(
        archive_dir=os.path.dirname(destination) or '.'
    ).transfer(source, destination, {'rename': rename})
