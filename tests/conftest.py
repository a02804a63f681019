import logging

import pytest

import inbox_mirror


@pytest.fixture(autouse=True)
def isolated_logger():
    """main() installs handlers on the inbox_mirror logger; undo that after each test."""
    logger = logging.getLogger("inbox_mirror")
    handlers = list(logger.handlers)
    propagate = logger.propagate
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = propagate
    logger.setLevel(level)


@pytest.fixture
def roots(tmp_path):
    inbox = (tmp_path / "INBOX").resolve()
    clone = (tmp_path / "CLONE").resolve()
    inbox.mkdir()
    clone.mkdir()
    return inbox, clone


@pytest.fixture
def inbox(roots):
    return roots[0]


@pytest.fixture
def clone(roots):
    return roots[1]


@pytest.fixture
def engine(roots):
    return inbox_mirror.MirrorEngine(inbox_mirror.PathTranslator(*roots), workers=4)


@pytest.fixture
def mirror_logs(caplog):
    """The inbox_mirror logger does not propagate to root, so hook caplog in directly."""
    logger = logging.getLogger("inbox_mirror")
    propagate = logger.propagate
    logger.propagate = False
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="inbox_mirror")
    yield caplog
    logger.removeHandler(caplog.handler)
    logger.propagate = propagate


def write(path, data=b"data"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
