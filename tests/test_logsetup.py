import logging
from types import SimpleNamespace

import pytest

from lmd.logsetup import TRACE, LogWriter, init_logging, log_with


@pytest.fixture(autouse=True)
def _reset_logger():
    logger = logging.getLogger("lmd")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def test_logger_prefixes(caplog):
    caplog.set_level(logging.ERROR, logger="lmd")
    log_with(None).error("nil")
    log_with(SimpleNamespace(name="")).error("peer")
    log_with({"client": "testclient"}).error("context")
    text = caplog.text
    assert "[nil] nil" in text
    assert "[] peer" in text
    assert "testclient" in text


def test_prefix_kinds():
    prefixer = log_with(
        "a",
        SimpleNamespace(name="peer1"),
        SimpleNamespace(remote_addr="r", local_addr="l"),
        SimpleNamespace(peer_name="store"),
        {"peer": "p", "request": "q"},
    )
    assert prefixer.prefix() == "[a][peer1][r->l][store][p][q]"


def test_prefix_unsupported_type():
    with pytest.raises(TypeError):
        log_with(5).prefix()


def test_levels_and_formatting(caplog):
    caplog.set_level(logging.INFO, logger="lmd")
    log = log_with("x")
    log.debug("hidden")
    log.info("value %d", 5)
    log.warning("warn")
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["[x] value 5", "[x] warn"]


def test_trace_level(caplog):
    caplog.set_level(TRACE, logger="lmd")
    log_with("t").trace("deep")
    assert caplog.records[0].levelno == TRACE
    assert caplog.records[0].getMessage() == "[t] deep"


def test_log_errors_only_exceptions(caplog):
    caplog.set_level(logging.DEBUG, logger="lmd")
    log_with("x").log_errors(None, "text", ValueError("bad"))
    messages = [r.getMessage() for r in caplog.records]
    assert messages[0] == "[x] got error: bad"
    assert len(messages) == 2
    assert messages[1].startswith("[x] Stacktrace:")


def test_log_errors_silent_without_debug(caplog):
    caplog.set_level(logging.INFO, logger="lmd")
    log_with("x").log_errors(ValueError("bad"))
    assert caplog.records == []


def test_log_writer(caplog):
    caplog.set_level(logging.INFO, logger="lmd")
    assert LogWriter("Error").write(b"  boom \n") == 8
    LogWriter("unknown").write("ignored")
    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [(logging.ERROR, "boom")]


def test_init_logging_file(tmp_path):
    path = tmp_path / "lmd.log"
    init_logging(str(path), "Error")
    log = log_with("tag")
    log.warning("no")
    log.error("yes %d", 5)
    content = path.read_text()
    assert "[tag] yes 5" in content
    assert "[ERROR]" in content
    assert "[pid:" in content
    assert "no" not in content.replace("[tag] yes 5", "")


def test_init_logging_off(tmp_path):
    path = tmp_path / "off.log"
    init_logging(str(path), "off")
    log_with("tag").error("hidden")
    assert path.read_text() == ""


def test_init_logging_stdout_colors(capsys):
    init_logging("stdout", "Warn")
    log_with("c").warning("careful")
    out = capsys.readouterr().out
    assert "\x1b[33m" in out
    assert "[WARN]" in out
    assert "[c] careful" in out


def test_init_logging_journal_has_no_colors(capsys):
    init_logging("stdout-journal", "info")
    log_with("j").info("plain")
    out = capsys.readouterr().out
    assert out.startswith("[INFO]")
    assert "\x1b[" not in out


def test_init_logging_unknown_level(tmp_path):
    with pytest.raises(ValueError):
        init_logging(str(tmp_path / "x.log"), "loud")