# Dependencies
# ============
# Standard
# --------
import json
import logging
import os
import typing as t

# Non-standard
# ------------
# See https://www.dulwich.io/docs/
from dulwich.repo import Repo
from dulwich.errors import NotGitRepository
import dulwich.porcelain as git
# See https://flask-login.readthedocs.io/
from flask_login import current_user
# See http://tinydb.readthedocs.io/
from tinydb.storages import Storage, touch

default_committer = "Archive <archive@localhost>"
logger = logging.getLogger(__name__)


def open_repo(directory: str) -> Repo:
    '''Opens the Git repository at the given directory, initialising one if
    the directory is not yet under version control.'''
    try:
        return Repo(directory)
    except NotGitRepository:
        logger.info("Starting new history repository in %s.", directory)
        return Repo.init(directory)


def count_staged(repo: Repo) -> int:
    '''Number of paths with changes waiting to be committed.'''
    staged = git.status(repo=repo).staged
    return sum(len(paths) for paths in staged.values())


def describe_change(table_name: str, committer: str) -> t.Tuple[bytes, bytes]:
    '''Returns author and commit message for a write to `table_name`, crediting
    the signed in user if there is one.'''
    if not (current_user and current_user.is_authenticated):
        return (committer.encode("utf8"),
                "Update to {}".format(table_name).encode("utf8"))

    userid = current_user["userid"]
    display_name = current_user.get("name", userid)
    author = "{} <{}>".format(display_name, current_user.get("email", ""))
    message = "Update to {} from {}\n\nUser ID:\n{}".format(
        table_name, display_name, userid)
    return author.encode("utf8"), message.encode("utf8")


class JSONStorageWithGit(Storage):
    """TinyDB storage that keeps a JSON file under version control, turning
    each write into a commit in the repository that holds the file."""

    def __init__(self, path: str, create_dirs=False, encoding="utf8",
                 committer: str = default_committer, **kwargs):
        """Opens the JSON file, creating it (and optionally its parent
        directories) on first use.

        Arguments:
            path (str): Location of the JSON file. Its directory doubles as
                the Git working tree.
            committer (str): Identity recorded as committer, written as
                `Name <email>`.
            kwargs: Passed through to `json.dumps`.
        """
        super(JSONStorageWithGit, self).__init__()
        touch(path, create_dirs=create_dirs)
        self.filename = path
        self.name = os.path.splitext(os.path.basename(path))[0]
        self.committer = committer
        self.kwargs = kwargs
        self.repo = open_repo(os.path.dirname(path))
        self._handle = open(path, "r+", encoding=encoding)

    def close(self):
        self._handle.close()
        self.repo.close()

    def read(self) -> t.Optional[t.Dict[str, t.Dict[str, t.Any]]]:
        # Empty file means empty database
        if not os.fstat(self._handle.fileno()).st_size:
            return None
        self._handle.seek(0)
        return json.load(self._handle)

    def write(self, data: t.Dict[str, t.Dict[str, t.Any]]):
        self._handle.seek(0)
        self._handle.write(json.dumps(data, **self.kwargs))
        self._handle.flush()
        os.fsync(self._handle.fileno())
        self._handle.truncate()
        self._record()

    def _record(self):
        added, ignored = git.add(repo=self.repo, paths=[self.filename])
        if not added:
            logger.warning("Could not stage %s for commit%s.", self.filename,
                           " (ignored by Git)" if ignored else "")
            return

        if not count_staged(self.repo):
            return

        author, message = describe_change(self.name, self.committer)
        git.commit(self.repo, message=message, author=author,
                   committer=self.committer.encode("utf8"))
