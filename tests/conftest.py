"""Pytest configuration and shared fixtures."""
import pytest

from objectchangeset import reset_default_options


def _is_present(value):
    return value is not None and value != '' and value != []


def _name(ctx):
    return (_is_present(ctx.new_value) and len(ctx.new_value) > 3) or 'too short'


def _password(ctx):
    return bool(ctx.new_value) or ['foo', 'bar']


def _password_confirmation(ctx):
    changed_password = ctx.changes.get('password')
    saved_password = ctx.content.get('password') if ctx.content else None
    matches = ctx.new_value in (changed_password, saved_password)
    return (_is_present(ctx.new_value) and matches) or "password doesn't match"


def _ny(ctx):
    return _is_present(ctx.new_value) or 'must be present'


DUMMY_VALIDATIONS = {
    'name': _name,
    'password': _password,
    'password_confirmation': _password_confirmation,
    'org': {
        'usa': {
            'ny': _ny,
        },
    },
}


@pytest.fixture(autouse=True)
def reset_options():
    """Restore built-in default options around each test."""
    reset_default_options()
    yield
    reset_default_options()


@pytest.fixture
def validations():
    """Provide a nested validation map."""
    return DUMMY_VALIDATIONS


@pytest.fixture
def content():
    """Provide nested content."""
    return {
        'name': None,
        'password': 'secret',
        'org': {
            'usa': {
                'ny': 'NY',
                'ca': 'CA',
            },
        },
    }
