import pytest

from shared.domain.notifications import (
    GENERIC_ERROR_TOAST,
    RECOVERABLE_KINDS,
    TOAST_BY_KIND,
    ErrorKind,
    ToastType,
    toast_for,
)

pytestmark = pytest.mark.unit


class TestToastFor:
    def test_every_kind_but_unknown_has_a_toast(self):
        assert set(TOAST_BY_KIND) == set(ErrorKind) - {ErrorKind.UNKNOWN}

    def test_accepts_string_values(self):
        assert toast_for("declined") is TOAST_BY_KIND[ErrorKind.DECLINED]

    @pytest.mark.parametrize("kind", [None, "boom", ErrorKind.UNKNOWN])
    def test_falls_back_to_generic(self, kind):
        assert toast_for(kind) is GENERIC_ERROR_TOAST

    def test_as_dict(self):
        data = toast_for(ErrorKind.SETUP_EXHAUSTED).as_dict()
        assert data["type"] == "error"
        assert data["title"] == "Please refresh the page"

    def test_offline_is_informational(self):
        assert toast_for(ErrorKind.OFFLINE).type == ToastType.INFO


class TestRecoverable:
    @pytest.mark.parametrize("kind", sorted(RECOVERABLE_KINDS))
    def test_recoverable_kinds(self, kind):
        assert kind.recoverable is True

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.DECLINED, ErrorKind.VALIDATION, ErrorKind.SETUP_EXHAUSTED, ErrorKind.OFFLINE],
    )
    def test_terminal_kinds(self, kind):
        assert kind.recoverable is False
