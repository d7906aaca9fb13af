"""Flask CLI commands for operating the registration saga."""

from __future__ import annotations

import json
import logging

import click
from flask.cli import with_appcontext

from identity_service.core.extensions import get_registration_saga
from identity_service.services._shared.errors import NotFoundError
from identity_service.services.registration import (
    PublishError,
    RegistrationCommand,
    RegistrationError,
    RegistrationResult,
)

LOGGER = logging.getLogger(__name__)


def _parse_fields(values: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated ``--field key=value`` options into a mapping."""
    data: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--field")
        data[key.strip()] = value
    return data


def _echo_result(result: RegistrationResult) -> None:
    click.echo(json.dumps(result.to_dict(), sort_keys=True))


def _echo_failure(exc: RegistrationError) -> None:
    for line in exc.cause_chain():
        click.echo(f"  {line}", err=True)
    for failure in exc.compensation_failures:
        click.echo(f"  compensation failed: {failure}", err=True)


@click.group("registrations")
@click.option("--verbose", is_flag=True, help="Log every saga step.")
def registrations_cli(verbose: bool) -> None:
    """Register identities and retry event publication."""
    if verbose:
        logging.getLogger("identity_service.services.registration").setLevel(logging.DEBUG)


@registrations_cli.command("register")
@click.option("--email", required=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=False)
@click.option("--first-name", default=None)
@click.option("--last-name", default=None)
@click.option("--phone", "phone_number", default=None)
@click.option(
    "--field",
    "fields",
    multiple=True,
    help="Domain field as KEY=VALUE; repeat for several fields.",
)
@with_appcontext
def register_command(
    email: str,
    password: str,
    first_name: str | None,
    last_name: str | None,
    phone_number: str | None,
    fields: tuple[str, ...],
) -> None:
    """Register one identity for the configured domain."""
    command = RegistrationCommand(
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        additional_data=_parse_fields(fields),
    )
    saga = get_registration_saga()
    try:
        result = saga.execute(command)
    except PublishError as exc:
        _echo_result(exc.result)
        click.echo(
            f"Warning: event not published; retry with "
            f"'flask registrations republish {exc.result.user_id}'.",
            err=True,
        )
        raise click.exceptions.Exit(2) from exc
    except RegistrationError as exc:
        click.echo(f"Registration failed at {exc.step}: {exc.message}", err=True)
        _echo_failure(exc)
        raise click.exceptions.Exit(1) from exc
    _echo_result(result)


@registrations_cli.command("republish")
@click.argument("user_id", type=int)
@with_appcontext
def republish_command(user_id: int) -> None:
    """Publish the registration event of USER_ID again."""
    saga = get_registration_saga()
    try:
        result = saga.republish(user_id)
    except NotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    except PublishError as exc:
        raise click.ClickException(f"Event still not published: {exc.message}") from exc
    LOGGER.info("Registration event republished for user_id=%s", user_id)
    _echo_result(result)
