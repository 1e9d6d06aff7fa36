import logging
import os

from flask import Flask
import pytest

from dcms.ingest import (
    AbstractIngest, FilesystemIngest, InvalidSourceError, transfer
)
from dcms.records import File, Item


@pytest.fixture
def source(tmp_path):
    path = tmp_path / 'incoming' / 'My Letter.pdf'
    path.parent.mkdir()
    path.write_bytes(b'%PDF-')
    return str(path)


@pytest.fixture
def deny_access(monkeypatch):
    '''Makes os.access report the given paths as inaccessible.'''
    real_access = os.access
    denied = set()

    def fake_access(path, mode, *args, **kwargs):
        if os.fspath(path) in denied:
            return False
        return real_access(path, mode, *args, **kwargs)

    monkeypatch.setattr(os, 'access', fake_access)
    return denied


def snapshot(*dirs):
    return {d: sorted(os.listdir(d)) for d in dirs}


def test_parse_file_info(app: Flask):
    with app.app_context():
        ingester = FilesystemIngest()
        assert ingester.archive_dir == app.config['ARCHIVE_DIR']
        assert ingester.parse_file_info('a.txt') == [
            {'source': 'a.txt', 'rename': False}]
        assert ingester.parse_file_info({'source': 'a.txt', 'rename': True}) \
            == [{'source': 'a.txt', 'rename': True}]
        assert ingester.parse_file_info(['a.txt', {'source': 'b.txt'}]) == [
            {'source': 'a.txt', 'rename': False},
            {'source': 'b.txt', 'rename': False}]
        with pytest.raises(InvalidSourceError):
            ingester.parse_file_info([{'name': 'a.txt'}])

        assert ingester.get_original_filename({'source': '/tmp/x/a.txt'}) \
            == 'a.txt'
        assert ingester.get_original_filename(
            {'source': '/tmp/x/a.txt', 'name': 'Report.txt'}) == 'Report.txt'
        assert ingester.get_file_mime_type({'source': 'table.csv'}) \
            == 'text/csv'
        assert ingester.get_file_mime_type({'source': 'mystery'}) \
            == 'application/octet-stream'

    assert AbstractIngest.strip_charset('text/plain; charset=utf-8') \
        == 'text/plain'


def test_ingest_copy(app: Flask, data_db, source):
    archive_dir = app.config['ARCHIVE_DIR']
    with app.app_context():
        item = Item.load(1)
        files = FilesystemIngest().ingest(source, item=item)
        assert len(files) == 1
        record = files[0]
        assert isinstance(record, File)
        assert record.doc_id
        assert record['item_id'] == 1
        assert record['archive_filename'] == 'my-letter.pdf'
        assert record.original_filename == 'My Letter.pdf'
        assert record['mime_type'] == 'application/pdf'
        assert record['size'] == 5
        assert record['added']

        # Source is left alone:
        assert os.path.isfile(source)
        with open(os.path.join(archive_dir, 'my-letter.pdf'), 'rb') as f:
            assert f.read() == b'%PDF-'

        # Archive names stay unique:
        files = FilesystemIngest().ingest(
            {'source': source, 'name': 'My Letter.pdf'}, item=item)
        assert files[0]['archive_filename'] == 'my-letter1.pdf'

    with app.app_context():
        assert [f['archive_filename'] for f in Item.load(1).files] == [
            'my-letter.pdf', 'my-letter1.pdf']
        assert Item.load(2).files == []


def test_ingest_rename(app: Flask, data_db, source):
    with app.app_context():
        files = FilesystemIngest().ingest(
            [{'source': source, 'rename': True}])
        assert files[0]['item_id'] is None
        assert not os.path.exists(source)
        assert os.path.isfile(os.path.join(
            app.config['ARCHIVE_DIR'], 'my-letter.pdf'))


def test_ingest_unreadable(app: Flask, data_db, source, deny_access):
    archive_dir = app.config['ARCHIVE_DIR']
    incoming = os.path.dirname(source)
    deny_access.add(source)
    before = snapshot(archive_dir, incoming)
    with app.app_context():
        with pytest.raises(InvalidSourceError) as e:
            FilesystemIngest().ingest(source, item=Item.load(1))
        assert str(e.value) == \
            f"File is not readable or does not exist: {source}"
        assert Item.load(1).files == []
    assert snapshot(archive_dir, incoming) == before


def test_ingest_missing(app: Flask, data_db, tmp_path):
    missing = str(tmp_path / 'missing.txt')
    with app.app_context():
        with pytest.raises(InvalidSourceError) as e:
            FilesystemIngest().ingest(missing)
        assert str(e.value) == \
            f"File is not readable or does not exist: {missing}"

        with pytest.raises(InvalidSourceError) as e:
            FilesystemIngest().ingest({'source': missing, 'rename': True})
        assert str(e.value) == \
            f"File is not writable or does not exist: {missing}"


def test_ingest_rename_read_only(app: Flask, data_db, source, deny_access):
    archive_dir = app.config['ARCHIVE_DIR']
    incoming = os.path.dirname(source)
    before = snapshot(archive_dir, incoming)
    with app.app_context():
        deny_access.add(incoming)
        with pytest.raises(InvalidSourceError) as e:
            FilesystemIngest().ingest({'source': source, 'rename': True})
        assert str(e.value) == ("File's parent directory is not writable or"
                                f" does not exist: {source}")

        deny_access.clear()
        deny_access.add(source)
        with pytest.raises(InvalidSourceError) as e:
            FilesystemIngest().ingest({'source': source, 'rename': True})
        assert str(e.value) == \
            f"File is not writable or does not exist: {source}"

        # Copying only needs to read the file:
        deny_access.clear()
        deny_access.add(incoming)
        files = FilesystemIngest().ingest({'source': source})
        assert files[0]['archive_filename'] == 'my-letter.pdf'
    assert os.path.isfile(source)
    assert snapshot(archive_dir)[archive_dir] == \
        before[archive_dir] + ['my-letter.pdf']


def test_ingest_batch(app: Flask, data_db, source, tmp_path, caplog):
    archive_dir = app.config['ARCHIVE_DIR']
    missing = str(tmp_path / 'missing.txt')
    with app.app_context():
        # Everything is checked before anything is transferred:
        with pytest.raises(InvalidSourceError):
            FilesystemIngest().ingest([source, missing])
        assert os.listdir(archive_dir) == []

        with caplog.at_level(logging.WARNING):
            files = FilesystemIngest(ignore_invalid_files=True).ingest(
                [source, missing])
        assert [f.original_filename for f in files] == ['My Letter.pdf']
        assert os.listdir(archive_dir) == ['my-letter.pdf']
    assert "Skipping file: File is not readable or does not exist:" \
        f" {missing}" in caplog.text


def test_transfer(tmp_path, source, deny_access):
    destination = str(tmp_path / 'archive' / 'letter.pdf')
    os.makedirs(os.path.dirname(destination))

    transfer(source, destination)
    assert os.path.isfile(source)
    assert os.path.isfile(destination)
    os.remove(destination)

    transfer(source, destination, rename=True)
    assert not os.path.exists(source)
    assert os.path.isfile(destination)

    # Nothing changes when the source is invalid:
    other = str(tmp_path / 'archive' / 'other.pdf')
    deny_access.add(destination)
    with pytest.raises(InvalidSourceError):
        transfer(destination, other)
    with pytest.raises(InvalidSourceError):
        transfer(destination, other, rename=True)
    assert os.listdir(os.path.dirname(destination)) == ['letter.pdf']


def test_ingest_command(runner, data_db, app: Flask, source):
    result = runner.invoke(args=['ingest-files', '1', source])
    assert result.exit_code == 0
    assert 'My Letter.pdf -> my-letter.pdf' in result.output
    assert os.path.isfile(source)

    result = runner.invoke(args=['ingest-files', '1', '--rename', source])
    assert result.exit_code == 0
    assert 'My Letter.pdf -> my-letter1.pdf' in result.output
    assert not os.path.exists(source)

    result = runner.invoke(args=['ingest-files', '99', source])
    assert result.exit_code != 0
    assert 'No such item: 99.' in result.output

    result = runner.invoke(args=['ingest-files', '1', source])
    assert result.exit_code != 0
    assert 'File is not readable or does not exist' in result.output

    result = runner.invoke(
        args=['ingest-files', '1', '--skip-invalid', source])
    assert result.exit_code == 0
    assert ' -> ' not in result.output

    with app.app_context():
        assert len(Item.load(1).files) == 2
