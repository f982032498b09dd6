"""
Example: staging and validating a signup form over an existing account.

Demonstrates sync and async validators, nested relays, and rollback.
Run with: python examples/signup_form.py
"""
import asyncio
import logging
from dataclasses import dataclass, field

from objectchangeset import PROPERTY_CHANGED, new_changeset


@dataclass
class Address:
    city: str = 'Paris'
    postcode: str = '75001'


@dataclass
class Account:
    username: str = 'jamie'
    email: str = 'jamie@example.com'
    address: Address = field(default_factory=Address)


TAKEN_USERNAMES = {'admin', 'root'}


async def username_available(ctx):
    """Pretend to ask a remote service."""
    await asyncio.sleep(0.05)
    if not ctx.new_value or len(ctx.new_value) < 3:
        return 'too short'
    return ctx.new_value not in TAKEN_USERNAMES or f'{ctx.new_value!r} is taken'


def email_format(ctx):
    return '@' in (ctx.new_value or '') or ['missing @']


def postcode_digits(ctx):
    return str(ctx.new_value).isdigit() or 'digits only'


VALIDATIONS = {
    'username': username_available,
    'email': email_format,
    'address': {
        'postcode': postcode_digits,
    },
}


async def main():
    account = Account()
    changeset = new_changeset(account, validation_map=VALIDATIONS)
    changeset.on(PROPERTY_CHANGED, lambda key: logging.debug(f"changed: {key}"))

    # Typing quickly: only the last username dispatch counts
    changeset.set('username', 'ad')
    changeset.set('username', 'admin')
    await changeset.set('username', 'jamie_l')

    changeset.set('email', 'not-an-email')
    changeset.get('address').set('postcode', 'ABC')

    print('changes:', changeset.changes)
    print('errors: ', changeset.errors)
    print('account untouched:', account)

    await changeset.validate()
    print('valid after validate()?', changeset.is_valid)

    changeset.rollback()
    print('after rollback:', changeset.changes, changeset.errors)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
